"""User API"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import (
    ApiResponse,
    LoginRequest,
    LoginResponse,
    RegisterUserRequest,
    UpdateUserRequest,
    UserDTO,
    UserStatisticsDTO,
    ok,
)
from ..services import Principal, UserService
from .deps import optional_principal, require_principal

router = APIRouter(prefix="/user", tags=["user"])


@router.post("/register", response_model=ApiResponse[int])
async def register_user(payload: RegisterUserRequest, db: AsyncSession = Depends(get_db)):
    return ok(await UserService(db).register(payload))


@router.post("/login", response_model=ApiResponse[LoginResponse])
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    return ok(await UserService(db).login(payload))


@router.post("/logout", response_model=ApiResponse[None])
async def logout(principal: Principal = Depends(require_principal)):
    """token 无状态，客户端丢弃即可"""
    return ok()


@router.post("/update", response_model=ApiResponse[None])
async def update_user(
    payload: UpdateUserRequest,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    await UserService(db).update(principal, payload)
    return ok()


@router.post("/current", response_model=ApiResponse[UserDTO])
async def current_user(
    principal: Principal | None = Depends(optional_principal),
    db: AsyncSession = Depends(get_db),
):
    return ok(await UserService(db).current(principal))


@router.post("/list", response_model=ApiResponse[list[UserDTO]])
async def list_users(
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    return ok(await UserService(db).list_users(principal))


@router.post("/listNames", response_model=ApiResponse[list[str]])
async def list_names(
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    return ok(await UserService(db).list_names())


@router.post("/statistics", response_model=ApiResponse[UserStatisticsDTO])
async def user_statistics(
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    return ok(await UserService(db).statistics(principal))


@router.post("/{user_id}", response_model=ApiResponse[UserDTO])
async def get_user(
    user_id: int,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    return ok(await UserService(db).get(user_id))
