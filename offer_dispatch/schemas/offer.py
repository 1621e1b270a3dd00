"""
优惠码相关 Schemas
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OfferCodeRequest(BaseModel):
    """领取优惠码请求"""
    model_config = ConfigDict(populate_by_name=True)

    receiver_address: str = Field(alias="receiverAddress", max_length=320)

    @field_validator("receiver_address")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("No receiver address found")
        return value


class OfferCodeResponse(BaseModel):
    """领取结果（优惠码本身只通过邮件发送）"""
    status: str  # sent / already_redeemed / not_eligible
    message: str
    expires_at: Optional[datetime] = None
    last_claimed_at: Optional[datetime] = None
    email_delivered: Optional[bool] = None


class PoolStatsResponse(BaseModel):
    """号池概况"""
    available: int  # 可领取
    claimed: int  # 已领取
    expiring: int  # 临期或已过期未领取
    total: int


class ReplenishRequest(BaseModel):
    """手动补货请求"""
    batch_size: Optional[int] = Field(default=None, ge=1, le=10000)


class ReplenishResponse(BaseModel):
    inserted: int
