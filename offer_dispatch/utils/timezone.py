"""
统一时区处理模块

- 数据库存储 UTC 时间（不带时区信息的 naive datetime）
- 邮件和告警中展示北京时间（东八区，UTC+8）
"""
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

# 东八区时区（中国北京时间）
CHINA_TZ = ZoneInfo("Asia/Shanghai")


def utc_now_naive() -> datetime:
    """
    获取当前 UTC 时间（naive，不带时区信息）

    这是数据库存储的标准格式
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_china_time(dt: datetime) -> datetime:
    """
    将 UTC 时间转换为北京时间

    Args:
        dt: UTC 时间（naive 或 aware）

    Returns:
        带时区信息的北京时间
    """
    if dt.tzinfo is None:
        # 假设是 UTC 时间，添加时区信息
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(CHINA_TZ)



def start_of_day_utc(day: date) -> datetime:
    """日期对应的 UTC 零点（naive）"""
    return datetime.combine(day, time.min)


def format_china_time(dt: datetime, fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
    """格式化时间为北京时间字符串"""
    return to_china_time(dt).strftime(fmt) + " (UTC+8)"


def format_cn_date(dt: datetime) -> str:
    """格式化为中文日期，例如 2025年3月7日"""
    china_dt = to_china_time(dt)
    return f"{china_dt.year}年{china_dt.month}月{china_dt.day}日"
