from __future__ import annotations

import asyncio
import json
import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path
from typing import cast, override
from unittest.mock import AsyncMock, patch

import httpx
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeMeta
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from mblog import database
from mblog.database import Base as _Base, seed_sys_config
from mblog.models import Memo, Resource, User
from mblog.services import sys_config, webhook

Base = cast(DeclarativeMeta, _Base)

CREATED = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


class WebhookTests(unittest.IsolatedAsyncioTestCase):
    engine: AsyncEngine | None = None
    session_factory: async_sessionmaker[AsyncSession] | None = None

    @override
    async def asyncSetUp(self):
        engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        self.engine = engine
        self.session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with self.session_factory() as session:
            await seed_sys_config(session)
            await sys_config.save(
                session,
                {
                    sys_config.WEB_HOOK_URL: "https://hook.example.com/memo",
                    sys_config.WEB_HOOK_TOKEN: "hook-secret",
                    sys_config.DOMAIN: "https://blog.example.com",
                },
            )
            session.add_all(
                [
                    User(id=1, username="alice", password_hash="x", display_name="Alice"),
                    Memo(id=1, user_id=1, content="hello", tags="#a,", visibility="PUBLIC", created=CREATED),
                    Memo(id=2, user_id=1, content="secret", visibility="PRIVATE", created=CREATED),
                    Resource(public_id="img1", memo_id=1, user_id=1),
                ]
            )
            await session.commit()

        # 后台任务使用 database.AsyncSessionLocal，这里指向内存库
        patcher = patch.object(database, "AsyncSessionLocal", self.session_factory)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.requests: list[httpx.Request] = []

    @override
    async def asyncTearDown(self):
        if self.engine is not None:
            await self.engine.dispose()

    def _transport(self, status_code: int = 200) -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(status_code, json={"ok": status_code == 200})

        return httpx.MockTransport(handler)

    async def test_public_memo_is_posted_with_token_header(self):
        delivered = await webhook.notify_memo_created(1, transport=self._transport())
        self.assertTrue(delivered)
        self.assertEqual(len(self.requests), 1)

        request = self.requests[0]
        self.assertEqual(str(request.url), "https://hook.example.com/memo")
        self.assertEqual(request.headers.get("token"), "hook-secret")
        body = json.loads(request.content)
        self.assertEqual(
            body,
            {
                "content": "hello",
                "tags": "#a,",
                "created": int(CREATED.timestamp() * 1000),
                "authorName": "Alice",
                "resources": ["https://blog.example.com/api/resource/img1"],
            },
        )

    async def test_private_memo_or_missing_url_is_skipped(self):
        self.assertFalse(await webhook.notify_memo_created(2, transport=self._transport()))
        self.assertFalse(await webhook.notify_memo_created(404, transport=self._transport()))

        assert self.session_factory is not None
        async with self.session_factory() as session:
            await sys_config.save(session, {sys_config.WEB_HOOK_URL: ""})
        self.assertFalse(await webhook.notify_memo_created(1, transport=self._transport()))
        self.assertEqual(self.requests, [])

    async def test_empty_token_sends_no_header(self):
        assert self.session_factory is not None
        async with self.session_factory() as session:
            await sys_config.save(session, {sys_config.WEB_HOOK_TOKEN: ""})
        await webhook.notify_memo_created(1, transport=self._transport())
        self.assertNotIn("token", self.requests[0].headers)

    async def test_failures_are_logged_not_raised(self):
        with self.assertLogs("mblog.services.webhook", level="WARNING"):
            self.assertFalse(await webhook.notify_memo_created(1, transport=self._transport(500)))

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with self.assertLogs("mblog.services.webhook", level="WARNING"):
            self.assertFalse(
                await webhook.notify_memo_created(1, transport=httpx.MockTransport(refuse))
            )

    async def test_schedule_runs_in_background_and_logs_errors(self):
        with patch.object(webhook, "notify_memo_created", AsyncMock(side_effect=RuntimeError("boom"))):
            with self.assertLogs("mblog.services.webhook", level="ERROR"):
                task = webhook.schedule_memo_webhook(1)
                self.assertIn(task, webhook._webhook_tasks)
                await asyncio.wait([task])
                await asyncio.sleep(0)
        self.assertNotIn(task, webhook._webhook_tasks)


if __name__ == "__main__":
    unittest.main()
