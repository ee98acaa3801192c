"""Tag API"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import ApiResponse, SaveTagRequest, TagDTO, ok
from ..services import Principal, TagService
from .deps import optional_principal, require_principal

router = APIRouter(prefix="/tag", tags=["tag"])


@router.post("/list", response_model=ApiResponse[list[TagDTO]])
async def list_tags(
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    return ok(await TagService(db).list_tags(principal))


@router.post("/top10", response_model=ApiResponse[list[TagDTO]])
async def top10_tags(
    principal: Principal | None = Depends(optional_principal),
    db: AsyncSession = Depends(get_db),
):
    return ok(await TagService(db).top10(principal))


@router.post("/remove", response_model=ApiResponse[None])
async def remove_tag(
    id: int,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    await TagService(db).remove(principal, id)
    return ok()


@router.post("/save", response_model=ApiResponse[None])
async def save_tags(
    payload: SaveTagRequest,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    """批量重命名标签"""
    await TagService(db).save(principal, payload.items)
    return ok()
