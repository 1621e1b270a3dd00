"""
优惠码领取路由
"""
import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from offer_dispatch.config import get_settings
from offer_dispatch.database import AsyncSessionLocal
from offer_dispatch.schemas.offer import OfferCodeRequest, OfferCodeResponse
from offer_dispatch.services.allocator import (
    Allocator,
    Exhausted,
    NotEligible,
    build_allocator,
    normalize_requester,
)
from offer_dispatch.services.alert_service import notify_developer_of_error
from offer_dispatch.services.email_service import (
    mask_email,
    send_already_redeemed_email,
    send_not_eligible_email,
    send_offer_code_email,
    send_technical_issue_email,
)
from offer_dispatch.services.errors import AllocationError
from offer_dispatch.utils.email_domains import is_educational_address
from offer_dispatch.utils.redis_client import redis_client
from offer_dispatch.utils.security import verify_request_key

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


def get_allocator() -> Allocator:
    """分配器依赖（无状态，每个请求独立组装）"""
    return build_allocator(AsyncSessionLocal, settings)


async def _enforce_request_rate_limit(address: str) -> None:
    if not redis_client:
        return

    key = f"rate_limit:offer_request:{normalize_requester(address)}"
    current = await redis_client.get(key)

    if current and int(current) >= settings.request_rate_limit:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="请求过于频繁，请稍后再试",
        )

    async with redis_client.pipeline() as pipe:
        await pipe.incr(key)
        if not current:
            await pipe.expire(key, settings.request_rate_window_seconds)
        await pipe.execute()


async def _report_failure(address: str, message: str) -> None:
    """通知开发者并告知用户出现技术问题"""
    await notify_developer_of_error(message, address)
    await asyncio.to_thread(send_technical_issue_email, address)


@router.post(
    "/request",
    response_model=OfferCodeResponse,
    dependencies=[Depends(verify_request_key)],
)
async def request_offer_code(
    data: OfferCodeRequest,
    allocator: Allocator = Depends(get_allocator),
):
    """为教育邮箱发放一个优惠码"""
    address = data.receiver_address
    await _enforce_request_rate_limit(address)

    educational = is_educational_address(address, settings.edu_suffixes)
    logger.info("Offer code requested by %s (educational=%s)", mask_email(address), educational)

    if not educational:
        delivered = await asyncio.to_thread(send_not_eligible_email, address)
        return OfferCodeResponse(
            status="not_eligible",
            message="邮箱不符合教育优惠要求",
            email_delivered=delivered,
        )

    try:
        result = await allocator.allocate(address)
    except AllocationError as e:
        logger.error("Allocation failed [%s]: %s", e.error_code, e.message)
        await _report_failure(address, e.message)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Error sending offer code: {e.message}",
        )

    if isinstance(result, Exhausted):
        message = "No available offer code."
        await _report_failure(address, message)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Error sending offer code: {message}",
        )

    if isinstance(result, NotEligible):
        delivered = await asyncio.to_thread(
            send_already_redeemed_email, address, result.last_claimed_at
        )
        return OfferCodeResponse(
            status="already_redeemed",
            message="一年内已领取过教育优惠",
            last_claimed_at=result.last_claimed_at,
            email_delivered=delivered,
        )

    delivered = await asyncio.to_thread(
        send_offer_code_email, address, result.code, result.expires_at
    )
    if not delivered:
        # 码已领取，需人工补发
        await notify_developer_of_error("Offer code claimed but email delivery failed", address)

    return OfferCodeResponse(
        status="sent",
        message="优惠码已发送",
        expires_at=result.expires_at,
        email_delivered=delivered,
    )
