from typing import Optional

from sqlalchemy.orm import Session

from .. import models


def add_dispute(
    db: Session,
    *,
    booking_id: int,
    raised_by: int,
    raised_by_type: models.DisputeParty,
    description: Optional[str] = None,
) -> models.Dispute:
    """Stage a dispute row. The caller owns the transaction."""
    dispute = models.Dispute(
        booking_id=booking_id,
        raised_by=raised_by,
        raised_by_type=raised_by_type,
        description=description or "Client disputes the completion of the service",
        status=models.DisputeStatus.OPEN,
    )
    db.add(dispute)
    db.flush()
    return dispute
