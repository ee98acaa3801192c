from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from ..config import settings


ALGORITHM = "HS256"

DEVICE_WEB = "WEB"
DEVICE_API = "API"

# 按优先级依次尝试的声明名（兼容旧版本签发的 token）
USER_ID_CLAIMS = ("loginId", "userId", "id", "sub", "login_id")
DEVICE_CLAIMS = ("device", "loginType", "login_type", "deviceType")


def issue_token(user_id: int, device: str = DEVICE_WEB) -> str:
    """签发 HS256 token：`loginId` / `device` / `exp`。"""
    expire = datetime.now(timezone.utc) + timedelta(days=settings.token_valid_days)
    # jti 保证同一秒内重复签发（例如重置 API token）得到不同的字符串
    claims = {
        "loginId": int(user_id),
        "device": device,
        "exp": int(expire.timestamp()),
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str) -> dict[str, Any] | None:
    """校验签名并返回 payload；签名不对/格式不对返回 None。

    注意：exp 不做校验，token 实际上不会过期（API token 靠 t_dev_token 撤销）。
    sub 允许是整数，不做 RFC 7519 的字符串校验。
    """
    if not token or not isinstance(token, str):
        return None
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[ALGORITHM],
            options={"verify_exp": False, "verify_sub": False},
        )
    except JWTError:
        return None
    return payload if isinstance(payload, dict) else None


def claim_user_id(payload: dict[str, Any]) -> int | None:
    """按优先级取第一个能解析成整数的用户 id 声明。"""
    for key in USER_ID_CLAIMS:
        value = payload.get(key)
        if value is None:
            continue
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                continue
    return None


def claim_device(payload: dict[str, Any]) -> str:
    for key in DEVICE_CLAIMS:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return DEVICE_WEB
