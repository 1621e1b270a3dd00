"""
App Store Connect 优惠码签发客户端

补货流程分两步：
1. POST 创建一批一次性优惠码，响应中只包含一个延迟导出链接（PendingExport）
2. 校验链接前缀后 GET 导出内容（CSV 文本），解析后整批写入号池
"""
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Optional

import httpx
from jose.exceptions import JOSEError

from offer_dispatch.services.code_store import CodeStore
from offer_dispatch.services.errors import (
    IssuerAuthError,
    IssuerHTTPError,
    IssuerPayloadError,
    UnexpectedExportLocationError,
)
from offer_dispatch.utils.metrics import CODES_INGESTED, REPLENISHMENTS
from offer_dispatch.utils.security import create_issuer_token
from offer_dispatch.utils.timezone import start_of_day_utc, utc_now_naive

logger = logging.getLogger(__name__)

ONE_TIME_CODES_PATH = "/v1/subscriptionOfferCodeOneTimeUseCodes"
CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{2,64}$")


@dataclass(frozen=True)
class PendingExport:
    """签发方返回的延迟导出，尚未取回实际的码"""
    url: str
    expiration_date: date


class IssuerClient:
    """
    签发客户端

    使用方式:
        client = IssuerClient(store, api_base=..., offer_code_id=...)
        inserted = await client.replenish(batch_size=500, validity_days=177)
    """

    def __init__(
        self,
        store: CodeStore,
        *,
        api_base: str,
        offer_code_id: str,
        token_factory: Callable[[], str] = create_issuer_token,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.api_base = api_base.rstrip("/")
        self.offer_code_id = offer_code_id
        self.token_factory = token_factory
        self.timeout = timeout
        self.transport = transport

    @property
    def mint_url(self) -> str:
        return f"{self.api_base}{ONE_TIME_CODES_PATH}"

    @property
    def export_prefix(self) -> str:
        return f"{self.mint_url}/"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def mint_batch(
        self,
        client: httpx.AsyncClient,
        token: str,
        batch_size: int,
        expiration_date: date,
    ) -> PendingExport:
        """创建一批一次性优惠码，返回待取回的导出"""
        body = {
            "data": {
                "type": "subscriptionOfferCodeOneTimeUseCodes",
                "attributes": {
                    "expirationDate": expiration_date.isoformat(),
                    "numberOfCodes": batch_size,
                },
                "relationships": {
                    "offerCode": {
                        "data": {
                            "id": self.offer_code_id,
                            "type": "subscriptionOfferCodes",
                        },
                    },
                },
            }
        }
        try:
            response = await client.post(
                self.mint_url,
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise IssuerHTTPError(f"Request to create codes failed: {type(e).__name__}") from e

        if not response.is_success:
            raise IssuerHTTPError(
                f"Received a non-OK HTTP status code when creating codes: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            link = response.json()["data"]["relationships"]["values"]["links"]["related"]
        except (ValueError, KeyError, TypeError) as e:
            raise IssuerPayloadError("Create codes response did not contain an export link") from e
        if not isinstance(link, str):
            raise IssuerPayloadError("Create codes response did not contain an export link")

        if not link.startswith(self.export_prefix):
            raise UnexpectedExportLocationError(
                f"Offer code export URL didn't start with {self.export_prefix}"
            )
        return PendingExport(url=link, expiration_date=expiration_date)

    async def fetch_export(
        self,
        client: httpx.AsyncClient,
        token: str,
        pending: PendingExport,
    ) -> str:
        """取回导出的 CSV 文本"""
        try:
            response = await client.get(
                pending.url,
                headers={"Authorization": f"Bearer {token}", "Accept": "text/csv"},
            )
        except httpx.HTTPError as e:
            raise IssuerHTTPError(f"Request to fetch codes failed: {type(e).__name__}") from e

        if not response.is_success:
            raise IssuerHTTPError(
                f"Received a non-OK HTTP status code when fetching codes: {response.status_code}",
                status_code=response.status_code,
            )
        return response.text

    def _issue_token(self) -> str:
        try:
            return self.token_factory()
        except JOSEError as e:
            raise IssuerAuthError(f"Failed to sign issuer request: {type(e).__name__}") from e

    @staticmethod
    def parse_export(payload: str) -> list[str]:
        """每行一个码（取第一列），丢弃空行、格式不对的行和重复值"""
        codes: list[str] = []
        seen: set[str] = set()
        for line in payload.splitlines():
            value = line.split(",", 1)[0].strip().strip('"')
            if not CODE_PATTERN.match(value) or value in seen:
                continue
            seen.add(value)
            codes.append(value)
        return codes

    async def replenish(
        self,
        batch_size: int,
        validity_days: int,
        now: Optional[datetime] = None,
    ) -> int:
        """
        签发并入库一批新码

        Returns:
            写入号池的数量

        Raises:
            IssuerError: 签发方调用失败或导出内容无效
            StoreError: 写库失败（整批回滚）
        """
        now = now or utc_now_naive()
        expiration_date = (now + timedelta(days=validity_days)).date()
        try:
            token = self._issue_token()
            async with self._client() as client:
                pending = await self.mint_batch(client, token, batch_size, expiration_date)
                payload = await self.fetch_export(client, token, pending)

            codes = self.parse_export(payload)
            if not codes:
                raise IssuerPayloadError("Offer code export contained no valid codes")

            inserted = await self.store.bulk_insert(
                codes,
                expires_at=start_of_day_utc(pending.expiration_date),
                created_at=now,
                batch_id=str(uuid.uuid4()),
            )
        except Exception:
            REPLENISHMENTS.labels("failure").inc()
            raise

        REPLENISHMENTS.labels("success").inc()
        CODES_INGESTED.inc(inserted)
        logger.info("Replenished pool with %d codes expiring %s", inserted, expiration_date)
        return inserted
