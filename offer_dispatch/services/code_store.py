"""
优惠码存储 - 号池的唯一事实来源

提供：
1. 批量入库（单事务，全部成功或全部回滚）
2. 原子领取（一条带条件的 UPDATE ... RETURNING）
3. 按请求者和时间窗口查询领取历史
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from offer_dispatch.models.offer_code import OfferCode
from offer_dispatch.services.errors import StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimedCode:
    code: str
    expires_at: datetime
    claimed_at: datetime


@dataclass(frozen=True)
class PoolStats:
    available: int
    claimed: int
    expiring: int
    total: int


class CodeStore:
    """
    优惠码存储

    使用方式:
        store = CodeStore(AsyncSessionLocal)
        claimed = await store.claim("a@b.edu", now, now + timedelta(days=7))

    每个操作使用独立的会话和事务，返回时结果已提交。
    """

    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self._sessions = sessions

    async def bulk_insert(
        self,
        codes: Iterable[str],
        expires_at: datetime,
        created_at: datetime,
        batch_id: Optional[str] = None,
    ) -> int:
        """批量写入新码，任意一行失败则整批回滚"""
        rows = [
            {
                "code": code,
                "created_at": created_at,
                "expires_at": expires_at,
                "is_redeemed": False,
                "batch_id": batch_id,
            }
            for code in codes
        ]
        if not rows:
            return 0

        try:
            async with self._sessions() as session:
                async with session.begin():
                    await session.execute(insert(OfferCode), rows)
        except SQLAlchemyError as e:
            logger.error("Bulk insert of %d codes failed: %s", len(rows), type(e).__name__)
            raise StoreError(f"批量写入优惠码失败: {type(e).__name__}") from e

        logger.info("Inserted %d offer codes (batch=%s)", len(rows), batch_id)
        return len(rows)

    async def claim(
        self,
        requester_id: str,
        now: datetime,
        not_expiring_before: datetime,
    ) -> Optional[ClaimedCode]:
        """
        原子领取一个未使用且未过期的码

        候选子查询与条件更新在同一条语句中完成，外层 WHERE 再次校验 is_redeemed，
        因此两个并发请求不可能领到同一行。PostgreSQL 下子查询带 SKIP LOCKED，
        并发请求会各自选中不同的行。

        Returns:
            领取到的码；号池中没有可用码时返回 None
        """
        candidate = (
            select(OfferCode.id)
            .where(
                OfferCode.is_redeemed.is_(False),
                OfferCode.expires_at > not_expiring_before,
            )
            .order_by(OfferCode.expires_at.asc(), OfferCode.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(OfferCode)
            .where(OfferCode.id == candidate, OfferCode.is_redeemed.is_(False))
            .values(is_redeemed=True, claimed_by=requester_id, claimed_at=now)
            .returning(OfferCode.code, OfferCode.expires_at, OfferCode.claimed_at)
            .execution_options(synchronize_session=False)
        )

        try:
            async with self._sessions() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                    row = result.first()
        except SQLAlchemyError as e:
            logger.error("Claim failed: %s", type(e).__name__)
            raise StoreError(f"领取优惠码失败: {type(e).__name__}") from e

        if row is None:
            return None
        return ClaimedCode(code=row.code, expires_at=row.expires_at, claimed_at=row.claimed_at)

    async def history(
        self,
        requester_id: str,
        since: datetime,
        until: datetime,
    ) -> list[datetime]:
        """请求者在 (since, until] 内的领取时间，按时间倒序"""
        stmt = (
            select(OfferCode.claimed_at)
            .where(
                OfferCode.claimed_by == requester_id,
                OfferCode.is_redeemed.is_(True),
                OfferCode.claimed_at > since,
                OfferCode.claimed_at <= until,
            )
            .order_by(OfferCode.claimed_at.desc())
        )
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("History query failed: %s", type(e).__name__)
            raise StoreError(f"查询领取记录失败: {type(e).__name__}") from e

    async def pool_stats(self, not_expiring_before: datetime) -> PoolStats:
        """号池概况：可用 / 已领取 / 临期或已过期未领取 / 总数"""
        try:
            async with self._sessions() as session:
                total = await self._count(session)
                claimed = await self._count(session, OfferCode.is_redeemed.is_(True))
                available = await self._count(
                    session,
                    OfferCode.is_redeemed.is_(False),
                    OfferCode.expires_at > not_expiring_before,
                )
        except SQLAlchemyError as e:
            logger.error("Pool stats query failed: %s", type(e).__name__)
            raise StoreError(f"查询号池失败: {type(e).__name__}") from e

        return PoolStats(
            available=available,
            claimed=claimed,
            expiring=total - claimed - available,
            total=total,
        )

    @staticmethod
    async def _count(session: AsyncSession, *criteria) -> int:
        result = await session.execute(
            select(func.count()).select_from(OfferCode).where(*criteria)
        )
        return result.scalar_one()
