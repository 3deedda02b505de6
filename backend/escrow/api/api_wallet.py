from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.config import settings
from ..crud import crud_transaction, crud_wallet
from ..database import get_db
from ..models import TransactionType, User
from ..schemas import TransactionListResponse, TransactionResponse, WalletResponse
from .dependencies import get_current_service_provider

router = APIRouter(tags=["provider-wallet"])


@router.get("/wallet", response_model=WalletResponse)
def read_wallet(
    db: Session = Depends(get_db),
    current_provider: User = Depends(get_current_service_provider),
) -> Any:
    """Current escrow earnings balance. Providers with no releases yet see zero."""
    wallet = crud_wallet.get_wallet(db, current_provider.id)
    if wallet is None:
        return WalletResponse(
            provider_id=current_provider.id,
            balance=Decimal("0.00"),
            currency=settings.DEFAULT_CURRENCY,
            can_withdraw=False,
        )
    return WalletResponse(
        provider_id=wallet.provider_id,
        balance=wallet.balance,
        currency=wallet.currency,
        can_withdraw=bool(wallet.can_withdraw),
    )


@router.get("/earnings/transactions", response_model=TransactionListResponse)
def read_earnings_transactions(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    type: Optional[TransactionType] = Query(None),
    db: Session = Depends(get_db),
    current_provider: User = Depends(get_current_service_provider),
) -> Any:
    rows, total = crud_transaction.get_transactions_for_user(
        db, current_provider.id, skip=skip, limit=limit, type=type
    )
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(r) for r in rows],
        total=total,
    )
