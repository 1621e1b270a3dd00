"""
安全相关工具：请求鉴权、管理员令牌、App Store Connect JWT
"""
import base64
import logging
import secrets
import time
from typing import Optional

from jose import jwt
from fastapi import Header, HTTPException, status

from offer_dispatch.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

ASC_AUDIENCE = "appstoreconnect-v1"
ASC_ALGORITHM = "ES256"


def _load_private_key(raw: str) -> str:
    """环境变量中的 PEM 可能把换行写成字面量 \\n"""
    return raw.replace("\\n", "\n").strip()


def create_issuer_token(
    key_id: Optional[str] = None,
    issuer_id: Optional[str] = None,
    private_key: Optional[str] = None,
    ttl_seconds: Optional[int] = None,
) -> str:
    """
    创建 App Store Connect API 短期令牌 (ES256)

    Returns:
        签名后的 JWT 字符串
    """
    key_id = key_id or settings.asc_key_id
    issuer_id = issuer_id or settings.asc_issuer_id
    private_key = private_key or settings.asc_private_key
    ttl_seconds = ttl_seconds or settings.issuer_token_ttl_seconds

    issued_at = int(time.time())
    claims = {
        "iss": issuer_id,
        "iat": issued_at,
        "exp": issued_at + ttl_seconds,
        "aud": ASC_AUDIENCE,
    }
    return jwt.encode(
        claims,
        _load_private_key(private_key),
        algorithm=ASC_ALGORITHM,
        headers={"kid": key_id, "typ": "JWT"},
    )


def _matches(provided: Optional[str], expected: str) -> bool:
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())


async def verify_request_key(authorization: Optional[str] = Header(None)) -> None:
    """校验上游转发请求携带的 Authorization 头"""
    if not _matches(authorization, settings.request_auth_key):
        logger.warning("Request authentication failed")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized.",
        )


async def verify_admin_token(x_admin_token: Optional[str] = Header(None)) -> None:
    """校验管理接口的 X-Admin-Token 头"""
    if not _matches(x_admin_token, settings.admin_api_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="需要管理员权限",
        )


async def verify_metrics_basic_auth(authorization: Optional[str] = Header(None)) -> None:
    """Prometheus 指标端点的 Basic Auth（未配置时不校验）"""
    if not settings.metrics_basic_auth_user:
        return

    expected = base64.b64encode(
        f"{settings.metrics_basic_auth_user}:{settings.metrics_basic_auth_password}".encode()
    ).decode()
    if not _matches(authorization, f"Basic {expected}"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )
