from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import database
from ..config import settings
from ..models import Memo, Resource, User
from ..models.memo import VISIBILITY_PUBLIC
from ..utils.dates import to_epoch_ms
from ..utils.errors import safe_str
from . import sys_config

logger = logging.getLogger(__name__)

# 进行中的推送任务（持有引用，避免任务被提前回收）。进程重启后不会保留。
_webhook_tasks: set[asyncio.Task] = set()


async def build_webhook_request(
    session: AsyncSession, memo_id: int
) -> tuple[str, dict[str, str], dict[str, Any]] | None:
    """组装推送请求 (url, headers, payload)；非公开 memo 或未配置 URL 时返回 None。"""
    url = (await sys_config.get_string(session, sys_config.WEB_HOOK_URL)).strip()
    if not url:
        return None

    memo = await session.get(Memo, memo_id)
    if memo is None or memo.visibility != VISIBILITY_PUBLIC:
        return None

    author = await session.get(User, memo.user_id)
    domain = await sys_config.get_string(session, sys_config.DOMAIN)
    result = await session.execute(
        select(Resource.public_id)
        .where(Resource.memo_id == memo_id)
        .order_by(Resource.created.asc(), Resource.public_id.asc())
    )
    resource_urls = [f"{domain}/api/resource/{public_id}" for public_id in result.scalars().all()]

    payload: dict[str, Any] = {
        "content": memo.content,
        "tags": memo.tags,
        "created": to_epoch_ms(memo.created) or 0,
        "authorName": author.display_name if author is not None else None,
        "resources": resource_urls,
    }

    headers: dict[str, str] = {}
    token = await sys_config.get_string(session, sys_config.WEB_HOOK_TOKEN)
    if token:
        headers["token"] = token
    return url, headers, payload


async def notify_memo_created(
    memo_id: int, *, transport: httpx.AsyncBaseTransport | None = None
) -> bool:
    """推送一次新 memo 通知；失败只记日志，不重试、不抛出。返回是否真正发送成功。"""
    try:
        async with database.AsyncSessionLocal() as session:
            built = await build_webhook_request(session, memo_id)
    except Exception:
        logger.exception("[WEBHOOK] Failed to build payload memo_id=%s", memo_id)
        return False

    if built is None:
        return False
    url, headers, payload = built

    timeout = float(settings.webhook_timeout_seconds or 10)
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.post(url, json=payload, headers=headers)
            resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        status_code = getattr(getattr(e, "response", None), "status_code", None)
        logger.warning("[WEBHOOK] Subscriber rejected memo_id=%s status=%s", memo_id, status_code)
        return False
    except httpx.TimeoutException:
        logger.warning("[WEBHOOK] Timeout memo_id=%s url=%s", memo_id, safe_str(url))
        return False
    except httpx.RequestError as e:
        logger.warning("[WEBHOOK] Request failed memo_id=%s: %s", memo_id, safe_str(e))
        return False

    logger.info("[WEBHOOK] Delivered memo_id=%s", memo_id)
    return True


def schedule_memo_webhook(memo_id: int) -> asyncio.Task:
    """在事务提交后把推送交给后台任务，不阻塞、不影响当前请求。"""
    task = asyncio.create_task(notify_memo_created(memo_id))
    _webhook_tasks.add(task)

    def _on_done(t: asyncio.Task) -> None:
        _webhook_tasks.discard(t)
        try:
            t.result()
        except asyncio.CancelledError:
            return
        except Exception:
            logger.exception("[WEBHOOK] Task error memo_id=%s", memo_id)

    task.add_done_callback(_on_done)
    return task
