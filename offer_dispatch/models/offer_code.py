"""
优惠码模型
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, Boolean, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column
from offer_dispatch.database import Base
from offer_dispatch.utils.timezone import utc_now_naive


class OfferCode(Base):
    """一次性订阅优惠码表

    is_redeemed / claimed_by / claimed_at 三个字段只在领取时由同一条 UPDATE 一次性写入。
    """
    __tablename__ = "offer_codes"
    __table_args__ = (
        Index("ix_offer_codes_claimable", "is_redeemed", "expires_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    claimed_by: Mapped[Optional[str]] = mapped_column(String(320), nullable=True, index=True)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_redeemed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    batch_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)  # 补充批次ID
