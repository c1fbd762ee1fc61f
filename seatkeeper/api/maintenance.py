"""
Operational endpoints.
"""

from fastapi import APIRouter, Depends

from ..schemas.seat import SweepResponse
from ..services.expiry_reaper import ExpiryReaper
from ..utils.dependencies import get_expiry_reaper

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("/sweep-expired", response_model=SweepResponse)
async def sweep_expired_holds(reaper: ExpiryReaper = Depends(get_expiry_reaper)):
    """Reclaim expired holds across every show now, without waiting for beat."""
    reclaimed = await reaper.sweep_all()
    return SweepResponse(
        released_count=sum(len(seat_ids) for seat_ids in reclaimed.values()),
        show_ids=list(reclaimed)
    )
