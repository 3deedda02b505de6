from .crud_booking import booking
from . import crud_dispute
from . import crud_transaction
from . import crud_wallet
from . import crud_notification
