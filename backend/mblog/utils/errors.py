from __future__ import annotations

import re
from typing import Any


_CONTROL_RE = re.compile(r"[\r\n\t]+")


class MBlogError(Exception):
    """业务错误基类：携带对外的数字 code 与可展示的 msg。

    所有错误都以 HTTP 200 + `{code, msg, data}` 的形式返回，调用方以 code != 0 判断失败。
    """

    code: int = 2
    default_msg: str = "fail"

    def __init__(self, msg: str | None = None) -> None:
        self.msg = msg or self.default_msg
        super().__init__(self.msg)


class ParamError(MBlogError):
    """参数缺失/格式错误。"""

    code = 1
    default_msg = "param error"


class BusinessFail(MBlogError):
    """业务规则不满足：无权限、不存在、重复、功能未开启等。"""

    code = 2
    default_msg = "fail"


class NeedLogin(MBlogError):
    code = 3
    default_msg = "please login first"


class ApiTokenInvalid(MBlogError):
    """签名有效，但 API 设备 token 已被重置/禁用。"""

    code = 3
    default_msg = "api token is no longer valid"


class SystemException(MBlogError):
    """存储/基础设施异常：消息固定，不泄露内部细节。"""

    code = 99
    default_msg = "system_exception"

    def __init__(self, msg: str | None = None) -> None:
        super().__init__(msg or self.default_msg)


def _sanitize_text(text: str, *, max_len: int) -> str:
    """把异常文本压缩成更适合日志/落盘的短字符串（避免换行、控制字符、超长）。"""
    if max_len <= 0:
        return ""
    cleaned = _CONTROL_RE.sub(" ", text).strip()
    if len(cleaned) > max_len:
        return f"{cleaned[:max_len]}…"
    return cleaned


def exception_summary(exc: BaseException, *, max_len: int = 200) -> str:
    """生成对外更安全的异常摘要：默认仅保留异常类型 + 截断后的消息。"""
    name = type(exc).__name__
    msg = _sanitize_text(str(exc), max_len=max_len)
    return f"{name}: {msg}" if msg else name


def safe_str(value: Any, *, max_len: int = 200) -> str:
    """把任意值转换为适合对外/日志展示的短文本。"""
    return _sanitize_text(str(value), max_len=max_len)
