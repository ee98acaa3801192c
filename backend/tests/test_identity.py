from __future__ import annotations

import sys
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import cast, override
from unittest.mock import AsyncMock

from jose import jwt
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeMeta
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from mblog.config import settings
from mblog.database import Base as _Base
from mblog.models import User
from mblog.services.dev_token_service import DevTokenService
from mblog.services.identity import (
    Principal,
    extract_token,
    resolve_optional_principal,
    resolve_principal,
)
from mblog.utils.errors import ApiTokenInvalid, BusinessFail, NeedLogin, SystemException
from mblog.utils.token import decode_token, issue_token

Base = cast(DeclarativeMeta, _Base)


class IdentityResolverTests(unittest.IsolatedAsyncioTestCase):
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
            session.add_all(
                [
                    User(id=1, username="admin", password_hash="x", display_name="Admin", role="ADMIN"),
                    User(id=2, username="dev", password_hash="x", display_name="Dev", role="USER"),
                ]
            )
            await session.commit()

    @override
    async def asyncTearDown(self):
        if self.engine is not None:
            await self.engine.dispose()

    async def _resolve(self, token: str | None) -> Principal:
        assert self.session_factory is not None
        async with self.session_factory() as session:
            return await resolve_principal(session, token)

    async def test_web_token_is_trusted_on_signature(self):
        principal = await self._resolve(issue_token(1))
        self.assertEqual(principal, Principal(user_id=1, role="ADMIN", device="WEB"))
        self.assertTrue(principal.is_admin)

    async def test_missing_or_bad_credentials_need_login(self):
        for token in (None, "", "not-a-jwt"):
            with self.assertRaises(NeedLogin):
                await self._resolve(token)

        forged = jwt.encode({"loginId": 1, "device": "WEB"}, "another-secret", algorithm="HS256")
        with self.assertRaises(NeedLogin):
            await self._resolve(forged)

        no_user = jwt.encode({"device": "WEB"}, settings.jwt_secret, algorithm="HS256")
        with self.assertRaises(NeedLogin):
            await self._resolve(no_user)

        bad_user = jwt.encode({"sub": "abc"}, settings.jwt_secret, algorithm="HS256")
        with self.assertRaises(NeedLogin):
            await self._resolve(bad_user)

    async def test_alternate_claim_names_and_expired_exp(self):
        expired = int((datetime.now(timezone.utc) - timedelta(days=3)).timestamp())
        token = jwt.encode(
            {"userId": "2", "loginType": "WEB", "exp": expired}, settings.jwt_secret, algorithm="HS256"
        )
        principal = await self._resolve(token)
        self.assertEqual(principal.user_id, 2)
        self.assertEqual(principal.device, "WEB")

        token = jwt.encode({"login_id": 2}, settings.jwt_secret, algorithm="HS256")
        self.assertEqual((await self._resolve(token)).device, "WEB")

    async def test_integer_sub_and_claim_fallthrough(self):
        token = jwt.encode({"sub": 2}, settings.jwt_secret, algorithm="HS256")
        payload = decode_token(token)
        assert payload is not None
        self.assertEqual(payload["sub"], 2)
        self.assertEqual((await self._resolve(token)).user_id, 2)

        # 排在前面的声明无法解析时，继续看后面的声明
        token = jwt.encode({"loginId": "abc", "userId": 2}, settings.jwt_secret, algorithm="HS256")
        self.assertEqual((await self._resolve(token)).user_id, 2)

        token = jwt.encode({"loginId": True, "id": "1"}, settings.jwt_secret, algorithm="HS256")
        self.assertEqual((await self._resolve(token)).user_id, 1)

    async def test_issued_token_claims(self):
        payload = decode_token(issue_token(2, "API"))
        assert payload is not None
        self.assertEqual(payload["loginId"], 2)
        self.assertEqual(payload["device"], "API")
        exp = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        self.assertGreater(exp, datetime.now(timezone.utc) + timedelta(days=365 * 99))

    async def test_api_token_is_revocable(self):
        assert self.session_factory is not None
        dev = Principal(user_id=2, role="USER", device="WEB")

        # 签名有效但从未签发过的 API token
        with self.assertRaises(ApiTokenInvalid):
            await self._resolve(issue_token(2, "API"))

        async with self.session_factory() as session:
            issued = await DevTokenService(session).enable(dev)
            again = await DevTokenService(session).enable(dev)
        self.assertEqual(issued.token, again.token)
        self.assertEqual(issued.name, "default")

        principal = await self._resolve(issued.token)
        self.assertEqual(principal.device, "API")
        self.assertEqual(principal.user_id, 2)

        async with self.session_factory() as session:
            rotated = await DevTokenService(session).reset(dev, issued.id)
        self.assertNotEqual(rotated.token, issued.token)

        with self.assertRaises(ApiTokenInvalid):
            await self._resolve(issued.token)
        self.assertEqual((await self._resolve(rotated.token)).user_id, 2)

        async with self.session_factory() as session:
            await DevTokenService(session).disable(dev)
            self.assertIsNone(await DevTokenService(session).get(dev))
            with self.assertRaises(BusinessFail):
                await DevTokenService(session).reset(dev, issued.id)

        with self.assertRaises(ApiTokenInvalid):
            await self._resolve(rotated.token)

    async def test_api_token_of_another_user_is_rejected(self):
        assert self.session_factory is not None
        async with self.session_factory() as session:
            issued = await DevTokenService(session).enable(Principal(user_id=2, role="USER", device="WEB"))

        forged = jwt.encode({"loginId": 1, "device": "API"}, settings.jwt_secret, algorithm="HS256")
        with self.assertRaises(ApiTokenInvalid):
            await self._resolve(forged)
        self.assertEqual((await self._resolve(issued.token)).user_id, 2)

    async def test_optional_mode_discards_auth_failures_only(self):
        assert self.session_factory is not None
        async with self.session_factory() as session:
            self.assertIsNone(await resolve_optional_principal(session, None))
            self.assertIsNone(await resolve_optional_principal(session, "garbage"))
            self.assertIsNone(await resolve_optional_principal(session, issue_token(2, "API")))
            principal = await resolve_optional_principal(session, issue_token(2))
        self.assertIsNotNone(principal)

        broken = AsyncMock()
        broken.scalar.side_effect = OperationalError("select", {}, Exception("db down"))
        with self.assertRaises(SystemException):
            await resolve_optional_principal(broken, issue_token(2))

    def test_extract_token(self):
        self.assertIsNone(extract_token(None))
        self.assertIsNone(extract_token("   "))
        self.assertEqual(extract_token("  abc "), "abc")


if __name__ == "__main__":
    unittest.main()
