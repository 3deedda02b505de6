from .booking import BookingResponse, BookingStatusUpdate
from .settlement import (
    ReleaseReason,
    SettlementEventType,
    ConfirmAction,
    ClientConfirmationMetadata,
    AutoReleaseMetadata,
    ReleaseMetadata,
    release_metadata_adapter,
    SettlementEvent,
    DisputeResponse,
    TransactionResponse,
    TransactionListResponse,
    WalletResponse,
    ConfirmCompletionRequest,
    ConfirmCompletionResponse,
    AutoReleaseSummary,
    AutoReleaseCandidate,
    AutoReleasePreview,
)

__all__ = [
    "BookingResponse",
    "BookingStatusUpdate",
    "ReleaseReason",
    "SettlementEventType",
    "ConfirmAction",
    "ClientConfirmationMetadata",
    "AutoReleaseMetadata",
    "ReleaseMetadata",
    "release_metadata_adapter",
    "SettlementEvent",
    "DisputeResponse",
    "TransactionResponse",
    "TransactionListResponse",
    "WalletResponse",
    "ConfirmCompletionRequest",
    "ConfirmCompletionResponse",
    "AutoReleaseSummary",
    "AutoReleaseCandidate",
    "AutoReleasePreview",
]
