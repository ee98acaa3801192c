from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime_param(value: str | int | None) -> datetime | None:
    """解析 RFC3339 字符串或毫秒时间戳；无法解析返回 None。"""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return _from_epoch_ms(value)

    s = str(value).strip()
    if not s:
        return None

    if s.lstrip("-").isdigit():
        return _from_epoch_ms(int(s))

    # fromisoformat 在 3.11+ 才接受 "Z"，这里统一替换
    if s.endswith(("Z", "z")):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _from_epoch_ms(ms: int) -> datetime | None:
    try:
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def to_epoch_ms(dt: datetime | None) -> int | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def as_aware(dt: datetime | None) -> datetime | None:
    """SQLite 读回来的 DateTime 不带时区，统一按 UTC 补齐。"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt
