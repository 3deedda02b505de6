import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models

logger = logging.getLogger(__name__)


def get_wallet(db: Session, provider_id: int) -> Optional[models.ProviderWallet]:
    return (
        db.query(models.ProviderWallet)
        .filter(models.ProviderWallet.provider_id == provider_id)
        .first()
    )


def _increment(db: Session, provider_id: int, amount: Decimal, now: datetime) -> bool:
    stmt = (
        update(models.ProviderWallet)
        .where(models.ProviderWallet.provider_id == provider_id)
        .values(balance=models.ProviderWallet.balance + amount, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1


def credit_wallet(
    db: Session,
    *,
    provider_id: int,
    amount: Decimal,
    currency: str,
    now: datetime,
) -> bool:
    """Add ``amount`` to the provider's wallet, creating it on first credit.

    The balance is only ever changed by a single ``balance = balance + x``
    statement, never read-modify-write. Returns True when a wallet was
    created. The caller owns the transaction.
    """
    if _increment(db, provider_id, amount, now):
        return False
    try:
        with db.begin_nested():
            db.add(
                models.ProviderWallet(
                    provider_id=provider_id,
                    balance=amount,
                    currency=currency,
                    can_withdraw=True,
                    created_at=now,
                    updated_at=now,
                )
            )
        return True
    except IntegrityError:
        # Another settlement created the wallet between our UPDATE and INSERT
        logger.info("wallet_create_raced provider_id=%s; retrying increment", provider_id)
        if not _increment(db, provider_id, amount, now):
            raise
        return False
