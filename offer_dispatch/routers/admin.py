"""
号池管理路由
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from offer_dispatch.config import get_settings
from offer_dispatch.routers.offer import get_allocator
from offer_dispatch.schemas.offer import PoolStatsResponse, ReplenishRequest, ReplenishResponse
from offer_dispatch.services.allocator import Allocator
from offer_dispatch.services.errors import AllocationError
from offer_dispatch.utils.security import verify_admin_token
from offer_dispatch.utils.timezone import utc_now_naive

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(dependencies=[Depends(verify_admin_token)])


@router.get("/pool", response_model=PoolStatsResponse)
async def get_pool_stats(allocator: Allocator = Depends(get_allocator)):
    """号池概况"""
    now = utc_now_naive()
    try:
        stats = await allocator.store.pool_stats(not_expiring_before=now + allocator.safety_buffer)
    except AllocationError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    return PoolStatsResponse(
        available=stats.available,
        claimed=stats.claimed,
        expiring=stats.expiring,
        total=stats.total,
    )


@router.post("/pool/replenish", response_model=ReplenishResponse)
async def replenish_pool(
    data: Optional[ReplenishRequest] = None,
    allocator: Allocator = Depends(get_allocator),
):
    """手动补货"""
    batch_size = (data.batch_size if data else None) or allocator.replenish_batch_size
    try:
        inserted = await allocator.issuer.replenish(batch_size, allocator.code_validity_days)
    except AllocationError as e:
        logger.error("Manual replenish failed [%s]: %s", e.error_code, e.message)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)

    logger.info("Manual replenish inserted %d codes", inserted)
    return ReplenishResponse(inserted=inserted)
