from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models


def add_transaction(
    db: Session,
    *,
    booking_id: int,
    user_id: int,
    user_type: models.LedgerParty,
    type: models.TransactionType,
    amount: Decimal,
    currency: str,
    status: models.TransactionStatus,
    description: Optional[str] = None,
    details: Optional[dict] = None,
) -> models.Transaction:
    """Append a ledger row. The caller owns the transaction.

    Flushes immediately so unique-index violations surface inside the
    caller's unit of work rather than at commit.
    """
    txn = models.Transaction(
        booking_id=booking_id,
        user_id=user_id,
        user_type=user_type,
        type=type,
        amount=amount,
        currency=currency,
        status=status,
        description=description,
        details=details,
    )
    db.add(txn)
    db.flush()
    return txn


def count_completed_releases(db: Session, booking_id: int) -> int:
    return (
        db.query(func.count(models.Transaction.id))
        .filter(
            models.Transaction.booking_id == booking_id,
            models.Transaction.type == models.TransactionType.ESCROW_RELEASE,
            models.Transaction.status == models.TransactionStatus.COMPLETED,
        )
        .scalar()
        or 0
    )


def get_transactions_for_user(
    db: Session,
    user_id: int,
    skip: int = 0,
    limit: int = 50,
    type: Optional[models.TransactionType] = None,
) -> Tuple[List[models.Transaction], int]:
    """Return a page of ledger rows (newest first) and the unpaged total."""
    query = db.query(models.Transaction).filter(models.Transaction.user_id == user_id)
    if type is not None:
        query = query.filter(models.Transaction.type == type)
    total = query.count()
    rows = (
        query.order_by(models.Transaction.created_at.desc(), models.Transaction.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    return rows, total
