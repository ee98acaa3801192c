"""运行期配置 API"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import ApiResponse, SaveSysConfigRequest, SysConfigItem, ok
from ..services import Principal, sys_config
from ..utils.errors import NeedLogin, ParamError
from .deps import require_principal

router = APIRouter(prefix="/sysConfig", tags=["sysConfig"])


def _require_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise NeedLogin()


@router.post("/save", response_model=ApiResponse[None])
async def save_config(
    payload: SaveSysConfigRequest,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    _require_admin(principal)
    if not payload.items:
        raise ParamError("items are required")
    await sys_config.save(db, {item.key: item.value for item in payload.items})
    return ok()


@router.get("/get", response_model=ApiResponse[list[SysConfigItem]])
async def get_all_config(
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    _require_admin(principal)
    rows = await sys_config.get_all(db)
    return ok([SysConfigItem.model_validate(r) for r in rows])


@router.get("/", response_model=ApiResponse[dict[str, str]])
async def get_front_config(
    db: AsyncSession = Depends(get_db),
):
    """前端可见的配置（无需登录）"""
    return ok(await sys_config.get_front_config(db))
