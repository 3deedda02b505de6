from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..core.config import settings
from ..database import get_db, get_session_factory
from ..models import User
from ..schemas import AutoReleasePreview
from ..services.auto_release import preview_auto_release, run_auto_release
from ..services.settlement import SettlementEngine, get_settlement_engine
from .dependencies import get_current_admin

router = APIRouter(tags=["ops"])


@router.get("/ops/escrow/auto-release", response_model=AutoReleasePreview)
def ops_auto_release_preview(
    batch_size: Optional[int] = Query(None, ge=1, le=1000),
    db: Session = Depends(get_db),
    engine: SettlementEngine = Depends(get_settlement_engine),
    _: User = Depends(get_current_admin),
):
    """List bookings past their confirmation deadline that the next run would release."""
    return preview_auto_release(
        db, engine.clock.now(), batch_size, commission_rate=engine.commission_rate
    )


@router.post("/ops/escrow/auto-release", status_code=status.HTTP_202_ACCEPTED)
def ops_auto_release(
    batch_size: Optional[int] = Query(None, ge=1, le=1000),
    engine: SettlementEngine = Depends(get_settlement_engine),
    session_factory=Depends(get_session_factory),
    _: User = Depends(get_current_admin),
):
    """Run one auto-release batch and return its summary.

    Useful for manual testing or external cron when the background loop is disabled.
    """
    summary = run_auto_release(batch_size, session_factory=session_factory, engine=engine)
    return {
        "status": "ok",
        "batch_size_limit": settings.AUTO_RELEASE_MAX_BATCH_SIZE,
        **summary.model_dump(mode="json"),
    }
