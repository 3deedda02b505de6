from .user import User, UserType
from .admin_user import AdminUser
from .booking import Booking
from .booking_status import BookingStatus
from .dispute import Dispute, DisputeStatus, DisputeParty
from .transaction import Transaction, TransactionType, TransactionStatus, LedgerParty
from .provider_wallet import ProviderWallet
from .notification import Notification, NotificationType

__all__ = [
    "User",
    "UserType",
    "AdminUser",
    "Booking",
    "BookingStatus",
    "Dispute",
    "DisputeStatus",
    "DisputeParty",
    "Transaction",
    "TransactionType",
    "TransactionStatus",
    "LedgerParty",
    "ProviderWallet",
    "Notification",
    "NotificationType",
]
