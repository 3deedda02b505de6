from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from ..models.dispute import DisputeParty, DisputeStatus
from ..models.transaction import LedgerParty, TransactionStatus, TransactionType
from .booking import BookingResponse


class ReleaseReason(str, enum.Enum):
    IMMEDIATE_TWO_PARTY_CONFIRMATION = "IMMEDIATE_TWO_PARTY_CONFIRMATION"
    AUTO_RELEASE_NO_CLIENT_RESPONSE = "AUTO_RELEASE_NO_CLIENT_RESPONSE"


class SettlementEventType(str, enum.Enum):
    PAYMENT_RELEASED = "PAYMENT_RELEASED"
    DISPUTE_CREATED = "DISPUTE_CREATED"


class ConfirmAction(str, enum.Enum):
    ACCEPT = "ACCEPT"
    DISPUTE = "DISPUTE"


# ─── Ledger metadata, one shape per release reason ──────────────────────────


class _ReleaseMetadataBase(BaseModel):
    original_amount: Decimal
    commission: Decimal
    provider_amount: Decimal
    provider_completed_at: Optional[datetime] = None


class ClientConfirmationMetadata(_ReleaseMetadataBase):
    release_reason: Literal["IMMEDIATE_TWO_PARTY_CONFIRMATION"] = "IMMEDIATE_TWO_PARTY_CONFIRMATION"
    client_confirmed_at: datetime
    confirmed_by: Optional[int] = None


class AutoReleaseMetadata(_ReleaseMetadataBase):
    release_reason: Literal["AUTO_RELEASE_NO_CLIENT_RESPONSE"] = "AUTO_RELEASE_NO_CLIENT_RESPONSE"
    auto_accepted_at: datetime
    deadline_passed: datetime


ReleaseMetadata = Annotated[
    Union[ClientConfirmationMetadata, AutoReleaseMetadata],
    Field(discriminator="release_reason"),
]
release_metadata_adapter: TypeAdapter = TypeAdapter(ReleaseMetadata)


# ─── Notifier contract ──────────────────────────────────────────────────────


class SettlementEvent(BaseModel):
    booking_id: int
    provider_id: int
    client_id: int
    event_type: SettlementEventType
    amount: Optional[Decimal] = None
    currency: str
    release_reason: Optional[ReleaseReason] = None
    dispute_id: Optional[int] = None
    timestamp: datetime


# ─── API payloads ───────────────────────────────────────────────────────────


class DisputeResponse(BaseModel):
    id: int
    booking_id: int
    raised_by: int
    raised_by_type: DisputeParty
    subject: str
    description: Optional[str] = None
    status: DisputeStatus
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TransactionResponse(BaseModel):
    id: int
    reference: str
    booking_id: int
    user_type: LedgerParty
    type: TransactionType
    amount: Decimal
    currency: str
    status: TransactionStatus
    description: Optional[str] = None
    details: Optional[dict] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TransactionListResponse(BaseModel):
    items: List[TransactionResponse]
    total: int


class WalletResponse(BaseModel):
    provider_id: int
    balance: Decimal
    currency: str
    can_withdraw: bool


class ConfirmCompletionRequest(BaseModel):
    action: ConfirmAction
    reason: Optional[str] = Field(default=None, max_length=2000)


class ConfirmCompletionResponse(BaseModel):
    success: bool
    booking: BookingResponse
    transaction_created: bool = False
    dispute: Optional[DisputeResponse] = None
    message: str = ""


class AutoReleaseSummary(BaseModel):
    released_count: int = 0
    total_released: Decimal = Decimal("0.00")
    errors: List[str] = Field(default_factory=list)
    skipped_count: int = 0


class AutoReleaseCandidate(BaseModel):
    booking_id: int
    title: str
    provider_name: str
    client_name: str
    amount: Decimal
    currency: str
    completed_at: Optional[datetime] = None
    client_confirm_deadline: datetime
    hours_overdue: int
    releasable: bool = True


class AutoReleasePreview(BaseModel):
    """Bookings the next auto-release run would pick up."""

    checked_at: datetime
    eligible_count: int
    total_amount: Decimal = Decimal("0.00")
    bookings: List[AutoReleaseCandidate] = Field(default_factory=list)
