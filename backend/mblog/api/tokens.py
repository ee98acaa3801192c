"""API token（设备 token）管理"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import ApiResponse, DevTokenDTO, ok
from ..services import DevTokenService, Principal
from .deps import require_principal

router = APIRouter(prefix="/token", tags=["token"])


@router.get("", response_model=ApiResponse[DevTokenDTO])
@router.get("/", response_model=ApiResponse[DevTokenDTO], include_in_schema=False)
async def get_token(
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    return ok(await DevTokenService(db).get(principal))


@router.post("/enable", response_model=ApiResponse[DevTokenDTO])
async def enable_token(
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    return ok(await DevTokenService(db).enable(principal))


@router.post("/reset", response_model=ApiResponse[DevTokenDTO])
async def reset_token(
    id: int,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    """重新签发，旧 token 立即失效"""
    return ok(await DevTokenService(db).reset(principal, id))


@router.post("/disable", response_model=ApiResponse[None])
async def disable_token(
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    await DevTokenService(db).disable(principal)
    return ok()
