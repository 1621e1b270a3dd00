"""
领取资格检查 - 同一请求者在窗口期内只能领取一次
"""
from datetime import datetime, timedelta
from typing import Optional

from offer_dispatch.services.code_store import CodeStore


class EligibilityChecker:
    def __init__(self, store: CodeStore, window_days: int = 365):
        self.store = store
        self.window = timedelta(days=window_days)

    async def last_claim_in_window(self, requester_id: str, now: datetime) -> Optional[datetime]:
        """窗口 (now - window, now] 内最近一次领取时间，没有则为 None"""
        claims = await self.store.history(requester_id, since=now - self.window, until=now)
        return claims[0] if claims else None

    async def is_eligible(self, requester_id: str, now: datetime) -> bool:
        return await self.last_claim_in_window(requester_id, now) is None
