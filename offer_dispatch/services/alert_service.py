"""
告警服务 - 发放失败时通过飞书机器人通知开发者
"""
import logging
from datetime import datetime
from typing import Optional

import httpx

from offer_dispatch.config import get_settings
from offer_dispatch.utils.timezone import format_china_time, utc_now_naive

logger = logging.getLogger(__name__)
settings = get_settings()


def build_failure_card(message: str, requester: str, occurred_at: datetime) -> dict:
    """构建飞书交互卡片"""
    return {
        "msg_type": "interactive",
        "card": {
            "elements": [
                {"tag": "markdown", "content": f"**错误信息**: {message}"},
                {"tag": "markdown", "content": f"**请求的邮件地址**: {requester}"},
                {"tag": "markdown", "content": f"**时间**: {format_china_time(occurred_at)}"},
            ],
            "header": {
                "template": "red",
                "title": {
                    "content": f"服务出现问题 - {settings.app_name} 教育优惠分发",
                    "tag": "plain_text",
                },
            },
        },
    }


async def notify_developer_of_error(
    message: str,
    requester: Optional[str],
    occurred_at: Optional[datetime] = None,
) -> bool:
    """
    发送失败告警

    告警本身失败只记录日志，不影响原始错误的处理。

    Returns:
        是否发送成功
    """
    if not settings.feishu_robot_url:
        logger.warning("Feishu robot not configured, skipping alert: %s", message)
        return False

    payload = build_failure_card(message, requester or "null", occurred_at or utc_now_naive())
    try:
        async with httpx.AsyncClient(timeout=settings.alert_timeout_seconds) as client:
            response = await client.post(settings.feishu_robot_url, json=payload)
    except httpx.HTTPError as e:
        logger.error("Failed to send Feishu alert: %s", type(e).__name__)
        return False

    if not response.is_success:
        logger.error("Feishu alert rejected with status %s", response.status_code)
        return False
    return True
