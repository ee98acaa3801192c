"""Comment API"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import (
    ApiResponse,
    CommentDTO,
    PageResult,
    QueryCommentRequest,
    SaveCommentRequest,
    ok,
)
from ..services import CommentService, Principal
from .deps import optional_principal, require_principal

router = APIRouter(prefix="/comment", tags=["comment"])


@router.post("/add", response_model=ApiResponse[int])
async def add_comment(
    payload: SaveCommentRequest,
    principal: Principal | None = Depends(optional_principal),
    db: AsyncSession = Depends(get_db),
):
    """发表评论（未登录时按匿名评论处理）"""
    return ok(await CommentService(db).add(principal, payload))


@router.post("/remove", response_model=ApiResponse[None])
async def remove_comment(
    id: int,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    await CommentService(db).remove(principal, id)
    return ok()


@router.post("/query", response_model=ApiResponse[PageResult[CommentDTO]])
async def query_comments(
    payload: QueryCommentRequest,
    principal: Principal | None = Depends(optional_principal),
    db: AsyncSession = Depends(get_db),
):
    return ok(await CommentService(db).query(principal, payload))


@router.post("/singleApprove", response_model=ApiResponse[None])
async def approve_comment(
    id: int,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    await CommentService(db).approve_one(principal, id)
    return ok()


@router.post("/memoApprove", response_model=ApiResponse[None])
async def approve_memo_comments(
    id: int,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    """通过某条 memo 下全部待审核的匿名评论"""
    await CommentService(db).approve_memo(principal, id)
    return ok()
