"""
数据库模型
"""
from offer_dispatch.models.offer_code import OfferCode

__all__ = [
    "OfferCode",
]
