"""共享工具函数（时间戳）。"""
from __future__ import annotations

from datetime import datetime, timezone


def now_utc() -> datetime:
    """返回当前 UTC 时间（timezone-aware）。"""
    return datetime.now(timezone.utc)


def to_rfc3339(value: datetime) -> str:
    """将 datetime 格式化为 RFC3339 UTC 字符串（以 Z 结尾）；naive 值按 UTC 解释。"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
