from sqlalchemy.orm import Session
from typing import Optional

from .. import models


class CRUDBooking:
    def get_booking(self, db: Session, booking_id: int) -> Optional[models.Booking]:
        return db.query(models.Booking).filter(models.Booking.id == booking_id).first()


booking = CRUDBooking()
