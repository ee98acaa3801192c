from __future__ import annotations

import sys
import unittest
from pathlib import Path
from typing import cast, override
from unittest.mock import patch

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

from mblog.database import Base as _Base, get_db, seed_sys_config
from mblog.main import app
from mblog.services import memo_service

Base = cast(DeclarativeMeta, _Base)


class ApiEnvelopeTests(unittest.IsolatedAsyncioTestCase):
    engine: AsyncEngine | None = None
    session_factory: async_sessionmaker[AsyncSession] | None = None
    client: httpx.AsyncClient | None = None

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

        session_factory = self.session_factory

        async def _override_get_db():
            async with session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        app.dependency_overrides[get_db] = _override_get_db
        self.addCleanup(app.dependency_overrides.clear)

        patcher = patch.object(memo_service, "schedule_memo_webhook")
        self.scheduled = patcher.start()
        self.addCleanup(patcher.stop)

        self.client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://testserver",
        )

    @override
    async def asyncTearDown(self):
        if self.client is not None:
            await self.client.aclose()
        if self.engine is not None:
            await self.engine.dispose()

    async def _login(self, username: str = "neo", password: str = "matrix") -> str:
        assert self.client is not None
        resp = await self.client.post(
            "/api/user/register", json={"username": username, "password": password}
        )
        self.assertEqual(resp.json()["code"], 0)
        resp = await self.client.post(
            "/api/user/login", json={"username": username, "password": password}
        )
        body = resp.json()
        self.assertEqual(body["code"], 0)
        self.assertIn("userId", body["data"])
        return body["data"]["token"]

    async def test_missing_token_is_code_3_with_http_200(self):
        assert self.client is not None
        resp = await self.client.post("/api/memo/save", json={"content": "hello"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"code": 3, "msg": "please login first", "data": None})

    async def test_invalid_body_is_param_error(self):
        assert self.client is not None
        token = await self._login()
        resp = await self.client.post(
            "/api/memo/setPriority", params={"id": "abc"}, headers={"token": token}
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["code"], 1)

    async def test_param_error_keeps_message(self):
        assert self.client is not None
        token = await self._login()
        resp = await self.client.post(
            "/api/memo/save", json={"content": "   "}, headers={"token": token}
        )
        self.assertEqual(resp.json(), {"code": 1, "msg": "content and resources both empty", "data": None})

    async def test_request_id_is_echoed(self):
        assert self.client is not None
        resp = await self.client.post(
            "/api/memo/save", json={"content": "x"}, headers={"X-Request-Id": "abc-123"}
        )
        self.assertEqual(resp.headers.get("x-request-id"), "abc-123")

        resp = await self.client.post("/api/memo/list", json={})
        self.assertTrue(resp.headers.get("x-request-id"))

    async def test_save_then_list_uses_camel_case(self):
        assert self.client is not None
        token = await self._login()
        resp = await self.client.post(
            "/api/memo/save",
            json={"content": "#py first line\nbody", "visibility": "PUBLIC"},
            headers={"token": token},
        )
        body = resp.json()
        self.assertEqual(body["code"], 0)
        memo_id = body["data"]
        self.scheduled.assert_called_once_with(memo_id)

        resp = await self.client.post("/api/memo/list", json={"page": 1, "size": 10})
        body = resp.json()
        self.assertEqual(body["code"], 0)
        self.assertEqual(body["data"]["total"], 1)
        self.assertEqual(body["data"]["totalPage"], 1)
        item = body["data"]["items"][0]
        self.assertEqual(item["id"], memo_id)
        self.assertEqual(item["tags"], "#py,")
        self.assertEqual(item["authorName"], "neo")
        self.assertIn("commentCount", item)

        resp = await self.client.post("/api/tag/list", headers={"token": token})
        tags = resp.json()["data"]
        self.assertEqual([(t["name"], t["memoCount"]) for t in tags], [("#py", 1)])

    async def test_bad_token_is_need_login(self):
        assert self.client is not None
        resp = await self.client.post("/api/user/logout", headers={"token": "not-a-jwt"})
        self.assertEqual(resp.json()["code"], 3)


if __name__ == "__main__":
    unittest.main()
