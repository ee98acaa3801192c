from __future__ import annotations

import sys
import unittest
from pathlib import Path
from typing import cast, override

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeMeta
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from mblog.database import Base as _Base, seed_sys_config
from mblog.models import Comment, CommentMention, Memo, User
from mblog.schemas import QueryCommentRequest, SaveCommentRequest
from mblog.services import sys_config
from mblog.services.comment_service import CommentService, parse_mention_names
from mblog.services.identity import Principal
from mblog.utils.errors import BusinessFail, ParamError

Base = cast(DeclarativeMeta, _Base)

ADMIN = Principal(user_id=1, role="ADMIN", device="WEB")
OWNER = Principal(user_id=2, role="USER", device="WEB")
READER = Principal(user_id=3, role="USER", device="WEB")


class CommentTests(unittest.IsolatedAsyncioTestCase):
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
                    sys_config.OPEN_COMMENT: "true",
                    sys_config.ANONYMOUS_COMMENT: "true",
                    sys_config.COMMENT_APPROVED: "true",
                },
            )
            session.add_all(
                [
                    User(id=1, username="admin", password_hash="x", display_name="Admin", role="ADMIN"),
                    User(id=2, username="owner", password_hash="x", display_name="Owner", role="USER"),
                    User(id=3, username="reader", password_hash="x", display_name=None, role="USER"),
                    Memo(id=10, user_id=2, content="open", enable_comment=1),
                    Memo(id=11, user_id=2, content="closed", enable_comment=0),
                ]
            )
            await session.commit()

    @override
    async def asyncTearDown(self):
        if self.engine is not None:
            await self.engine.dispose()

    async def _add(self, principal: Principal | None, **kwargs) -> int:
        assert self.session_factory is not None
        async with self.session_factory() as session:
            return await CommentService(session).add(principal, SaveCommentRequest(**kwargs))

    async def _visible_ids(self, principal: Principal | None, memo_id: int = 10) -> list[int]:
        assert self.session_factory is not None
        async with self.session_factory() as session:
            page = await CommentService(session).query(principal, QueryCommentRequest(memo_id=memo_id))
        return [c.id for c in page.items]

    async def _comment_count(self, memo_id: int = 10) -> int:
        assert self.session_factory is not None
        async with self.session_factory() as session:
            return int(await session.scalar(select(Memo.comment_count).where(Memo.id == memo_id)) or 0)

    async def test_pending_anonymous_comment_is_hidden_from_other_viewers(self):
        comment_id = await self._add(
            None, memo_id=10, content="nice post", username="guest", email="g@example.com"
        )

        assert self.session_factory is not None
        async with self.session_factory() as session:
            row = await session.get(Comment, comment_id)
            assert row is not None
            self.assertEqual(row.approved, 0)
            self.assertEqual(row.user_id, -1)
            self.assertEqual(row.user_name, "guest")
        self.assertEqual(await self._comment_count(), 1)

        self.assertEqual(await self._visible_ids(None), [])
        self.assertEqual(await self._visible_ids(READER), [])
        self.assertEqual(await self._visible_ids(OWNER), [comment_id])
        self.assertEqual(await self._visible_ids(ADMIN), [comment_id])

        async with self.session_factory() as session:
            await CommentService(session).approve_memo(OWNER, 10)
        self.assertEqual(await self._visible_ids(None), [comment_id])

    async def test_anonymous_comment_without_approval_setting(self):
        assert self.session_factory is not None
        async with self.session_factory() as session:
            await sys_config.save(session, {sys_config.COMMENT_APPROVED: "false"})
        comment_id = await self._add(None, memo_id=10, content="hello", username="guest")
        self.assertEqual(await self._visible_ids(None), [comment_id])

    async def test_single_approve_requires_moderator(self):
        comment_id = await self._add(None, memo_id=10, content="hello", username="guest")
        assert self.session_factory is not None
        async with self.session_factory() as session:
            with self.assertRaises(BusinessFail):
                await CommentService(session).approve_one(READER, comment_id)
            await CommentService(session).approve_one(ADMIN, comment_id)
        self.assertEqual(await self._visible_ids(READER), [comment_id])

    async def test_member_comment_uses_display_name_and_records_mentions(self):
        comment_id = await self._add(READER, memo_id=10, content="@Owner @Nobody thanks for this")

        assert self.session_factory is not None
        async with self.session_factory() as session:
            row = await session.get(Comment, comment_id)
            assert row is not None
            # display_name 为空时用 username
            self.assertEqual(row.user_name, "reader")
            self.assertEqual(row.user_id, 3)
            self.assertEqual(row.mentioned, "Owner")
            self.assertEqual(row.mentioned_user_id, "#2,")
            mentions = (await session.execute(select(CommentMention.user_id))).scalars().all()
        self.assertEqual(list(mentions), [2])
        self.assertEqual(await self._visible_ids(None), [comment_id])

    async def test_comment_without_mentions_keeps_empty_id_list(self):
        comment_id = await self._add(OWNER, memo_id=10, content="no mentions")
        assert self.session_factory is not None
        async with self.session_factory() as session:
            row = await session.get(Comment, comment_id)
            assert row is not None
            self.assertIsNone(row.mentioned)
            self.assertEqual(row.mentioned_user_id, "")

    async def test_comment_gates(self):
        with self.assertRaises(BusinessFail):
            await self._add(OWNER, memo_id=11, content="closed memo")
        with self.assertRaises(BusinessFail):
            await self._add(OWNER, memo_id=404, content="missing memo")
        with self.assertRaises(ParamError):
            await self._add(OWNER, memo_id=10, content="   ")
        with self.assertRaises(ParamError):
            await self._add(None, memo_id=10, content="who am i")

        assert self.session_factory is not None
        async with self.session_factory() as session:
            await sys_config.save(session, {sys_config.ANONYMOUS_COMMENT: "false"})
        with self.assertRaises(BusinessFail):
            await self._add(None, memo_id=10, content="hi", username="guest")

        async with self.session_factory() as session:
            await sys_config.save(session, {sys_config.OPEN_COMMENT: "false"})
        with self.assertRaises(BusinessFail):
            await self._add(OWNER, memo_id=10, content="comments are off")

        self.assertEqual(await self._comment_count(), 0)

    async def test_remove_keeps_comment_count(self):
        comment_id = await self._add(READER, memo_id=10, content="@Owner bye now")
        assert self.session_factory is not None

        async with self.session_factory() as session:
            with self.assertRaises(BusinessFail):
                await CommentService(session).remove(READER, comment_id)

        async with self.session_factory() as session:
            await CommentService(session).remove(OWNER, comment_id)
            self.assertEqual(await session.scalar(select(func.count()).select_from(Comment)), 0)
            self.assertEqual(await session.scalar(select(func.count()).select_from(CommentMention)), 0)

        # 删除评论不回退 comment_count
        self.assertEqual(await self._comment_count(), 1)

        async with self.session_factory() as session:
            with self.assertRaises(BusinessFail):
                await CommentService(session).remove(OWNER, comment_id)

    async def test_query_pagination_in_creation_order(self):
        ids = [await self._add(OWNER, memo_id=10, content=f"c{i}") for i in range(5)]
        assert self.session_factory is not None
        async with self.session_factory() as session:
            page = await CommentService(session).query(None, QueryCommentRequest(memo_id=10, page=2, size=2))
        self.assertEqual(page.total, 5)
        self.assertEqual(page.total_page, 3)
        self.assertEqual([c.id for c in page.items], ids[2:4])


class MentionParsingTests(unittest.TestCase):
    def test_mention_needs_trailing_whitespace(self):
        self.assertEqual(parse_mention_names("@a hi @b"), ["a"])
        self.assertEqual(parse_mention_names("@a @a\tx"), ["a"])
        self.assertEqual(parse_mention_names("no mentions"), [])


if __name__ == "__main__":
    unittest.main()
