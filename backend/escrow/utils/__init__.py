from .errors import (
    error_response,
    SettlementError,
    BookingNotFound,
    PreconditionFailed,
    PersistenceFailure,
    NotifierFailure,
)
from .clock import Clock, SystemClock, FrozenClock, utcnow
