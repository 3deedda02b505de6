from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel


class AdminUser(BaseModel):
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String, nullable=False, default="admin")  # support|payments|admin

    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_admin_users_user_id"),
    )
