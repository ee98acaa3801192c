"""Memo API"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import (
    ApiResponse,
    ListMemoRequest,
    MemoDTO,
    MemoRelationRequest,
    MemoStatisticsDTO,
    MemoStatisticsRequest,
    PageResult,
    SaveMemoRequest,
    SetPriorityRequest,
    UpdateMemoRequest,
    ok,
)
from ..services import MemoQueryService, MemoService, Principal
from .deps import optional_principal, require_principal

router = APIRouter(prefix="/memo", tags=["memo"])


@router.post("/save", response_model=ApiResponse[int])
async def save_memo(
    payload: SaveMemoRequest,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    """发布 memo，返回新 id"""
    return ok(await MemoService(db).save(principal, payload))


@router.post("/update", response_model=ApiResponse[None])
async def update_memo(
    payload: UpdateMemoRequest,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    await MemoService(db).update(principal, payload)
    return ok()


@router.post("/remove", response_model=ApiResponse[None])
async def remove_memo(
    id: int,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    await MemoService(db).remove(principal, id)
    return ok()


@router.post("/setPriority", response_model=ApiResponse[None])
async def set_priority(
    id: int,
    set: bool = True,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    """置顶 / 取消置顶"""
    await MemoService(db).set_priority(principal, SetPriorityRequest(id=id, set=set))
    return ok()


@router.post("/list", response_model=ApiResponse[PageResult[MemoDTO]])
async def list_memos(
    payload: ListMemoRequest,
    principal: Principal | None = Depends(optional_principal),
    db: AsyncSession = Depends(get_db),
):
    return ok(await MemoQueryService(db).list_memos(payload, principal))


@router.post("/statistics", response_model=ApiResponse[MemoStatisticsDTO])
async def memo_statistics(
    payload: MemoStatisticsRequest,
    principal: Principal | None = Depends(optional_principal),
    db: AsyncSession = Depends(get_db),
):
    return ok(await MemoQueryService(db).statistics(principal, payload.begin, payload.end))


@router.post("/relation", response_model=ApiResponse[None])
async def memo_relation(
    payload: MemoRelationRequest,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    """点赞 / 取消点赞"""
    await MemoService(db).relation(principal, payload)
    return ok()


@router.post("/{memo_id}", response_model=ApiResponse[MemoDTO])
async def get_memo(
    memo_id: int,
    count: bool = False,
    principal: Principal | None = Depends(optional_principal),
    db: AsyncSession = Depends(get_db),
):
    return ok(await MemoQueryService(db).get_memo(memo_id, principal, count_view=count))
