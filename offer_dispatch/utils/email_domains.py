"""
教育邮箱判断
"""
from typing import Iterable


def is_educational_address(address: str, suffixes: Iterable[str]) -> bool:
    """邮箱是否以任一教育机构后缀结尾（忽略大小写）"""
    address = address.strip().lower()
    if "@" not in address:
        return False
    return any(address.endswith(suffix) for suffix in suffixes)
