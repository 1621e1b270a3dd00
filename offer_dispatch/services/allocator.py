"""
优惠码分配器

单次调用的状态流转（不持久化）：

    CHECK_ELIGIBILITY -> TRY_CLAIM -[命中]-> Allocated
                            |
                          [未命中]
                            v
                        REPLENISH -> RETRY_CLAIM -[命中]-> Allocated
                                          |
                                        [未命中] -> Exhausted

补货最多一次，重试领取最多一次。签发方或数据库异常原样向上抛出。
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

from offer_dispatch.services.code_store import ClaimedCode, CodeStore
from offer_dispatch.services.eligibility import EligibilityChecker
from offer_dispatch.services.issuer_client import IssuerClient
from offer_dispatch.utils.metrics import ALLOCATIONS
from offer_dispatch.utils.timezone import utc_now_naive

logger = logging.getLogger(__name__)


class AllocationStep(str, Enum):
    TRY_CLAIM = "try_claim"
    REPLENISH = "replenish"
    RETRY_CLAIM = "retry_claim"


@dataclass(frozen=True)
class Allocated:
    code: str
    expires_at: datetime


@dataclass(frozen=True)
class NotEligible:
    last_claimed_at: datetime


@dataclass(frozen=True)
class Exhausted:
    pass


AllocationResult = Union[Allocated, NotEligible, Exhausted]

# 资格检查通过后的固定步骤：领取，补货一次，再领取一次
CLAIM_PLAN = (AllocationStep.TRY_CLAIM, AllocationStep.REPLENISH, AllocationStep.RETRY_CLAIM)


def normalize_requester(requester_id: str) -> str:
    return requester_id.strip().lower()


class Allocator:
    """
    使用方式:
        allocator = Allocator(store, checker, issuer)
        result = await allocator.allocate("student@pku.edu.cn")
    """

    def __init__(
        self,
        store: CodeStore,
        checker: EligibilityChecker,
        issuer: IssuerClient,
        *,
        safety_buffer_days: int = 7,
        replenish_batch_size: int = 500,
        code_validity_days: int = 177,
    ):
        self.store = store
        self.checker = checker
        self.issuer = issuer
        self.safety_buffer = timedelta(days=safety_buffer_days)
        self.replenish_batch_size = replenish_batch_size
        self.code_validity_days = code_validity_days

    async def try_claim(self, requester_id: str, now: datetime) -> Optional[ClaimedCode]:
        return await self.store.claim(requester_id, now, not_expiring_before=now + self.safety_buffer)

    async def allocate(self, requester_id: str, now: Optional[datetime] = None) -> AllocationResult:
        now = now or utc_now_naive()
        requester_id = normalize_requester(requester_id)

        last_claimed_at = await self.checker.last_claim_in_window(requester_id, now)
        if last_claimed_at is not None:
            logger.info("Requester already claimed within window (last=%s)", last_claimed_at.isoformat())
            ALLOCATIONS.labels("not_eligible").inc()
            return NotEligible(last_claimed_at=last_claimed_at)

        for step in CLAIM_PLAN:
            if step is AllocationStep.REPLENISH:
                logger.info("Pool empty, replenishing %d codes", self.replenish_batch_size)
                await self.issuer.replenish(
                    self.replenish_batch_size,
                    self.code_validity_days,
                    now=now,
                )
                continue

            claimed = await self.try_claim(requester_id, now)
            if claimed is not None:
                ALLOCATIONS.labels("allocated").inc()
                return Allocated(code=claimed.code, expires_at=claimed.expires_at)

        logger.warning("No claimable code after replenishment")
        ALLOCATIONS.labels("exhausted").inc()
        return Exhausted()


def build_allocator(sessions, settings) -> Allocator:
    """按配置组装存储、资格检查、签发客户端和分配器"""
    store = CodeStore(sessions)
    issuer = IssuerClient(
        store,
        api_base=settings.asc_api_base,
        offer_code_id=settings.asc_offer_code_id,
        timeout=settings.issuer_timeout_seconds,
    )
    return Allocator(
        store,
        EligibilityChecker(store, window_days=settings.eligibility_window_days),
        issuer,
        safety_buffer_days=settings.claim_safety_buffer_days,
        replenish_batch_size=settings.replenish_batch_size,
        code_validity_days=settings.code_validity_days,
    )
