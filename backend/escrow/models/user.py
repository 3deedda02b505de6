# backend/escrow/models/user.py

from sqlalchemy import Boolean, Column, Integer, String, Enum
from .base import BaseModel
import enum


class UserType(str, enum.Enum):
    """Enumeration of all supported user roles."""

    SERVICE_PROVIDER = "service_provider"
    CLIENT = "client"


class User(BaseModel):
    __tablename__ = "users"

    id           = Column(Integer, primary_key=True, index=True)
    email        = Column(String, unique=True, index=True, nullable=False)
    first_name   = Column(String, nullable=False, default="")
    last_name    = Column(String, nullable=False, default="")
    phone_number = Column(String, nullable=True)
    user_type    = Column(Enum(UserType), nullable=False)
    is_active    = Column(Boolean, default=True)

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email
