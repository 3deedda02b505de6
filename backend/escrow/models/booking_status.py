import enum


class BookingStatus(str, enum.Enum):
    """Booking lifecycle states, from request to settlement."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    AWAITING_CLIENT_CONFIRMATION = "awaiting_client_confirmation"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
