"""FastAPI application entry point"""
import logging
import uuid
from pathlib import Path
import tomllib

from fastapi import FastAPI, HTTPException, Request
from fastapi.exception_handlers import http_exception_handler as fastapi_http_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .database import engine, init_db
from .api import (
    users_router,
    tokens_router,
    memos_router,
    tags_router,
    comments_router,
    sys_config_router,
)
from .utils.errors import MBlogError, ParamError, SystemException, exception_summary

logger = logging.getLogger(__name__)

# 默认降低 SQLAlchemy 的日志噪声；排查 SQL 时再用 SQL_ECHO=true 打开
if not settings.sql_echo:
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)


def _read_app_version() -> str:
    """尽量从仓库根目录的 pyproject.toml 读取版本，避免多处硬编码导致不一致。"""
    try:
        repo_root = Path(__file__).resolve().parents[2]
        pyproject = repo_root / "pyproject.toml"
        if not pyproject.exists():
            return "0.1.0"
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        version = ((data.get("project") or {}).get("version") or "").strip()
        return version or "0.1.0"
    except (OSError, tomllib.TOMLDecodeError):
        return "0.1.0"


APP_VERSION = _read_app_version()

app = FastAPI(
    title="MBlog API",
    description="Memo publishing backend",
    version=APP_VERSION,
)

# CORS middleware
def _split_csv(value: str) -> list[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


cors_origins = _split_csv(settings.cors_allow_origins)
if not cors_origins or cors_origins == ["*"]:
    cors_origins = ["*"]
    cors_allow_credentials = False
else:
    cors_allow_credentials = bool(settings.cors_allow_credentials)

cors_methods = _split_csv(settings.cors_allow_methods)
if not cors_methods or cors_methods == ["*"]:
    cors_methods = ["*"]

cors_headers = _split_csv(settings.cors_allow_headers)
if not cors_headers or cors_headers == ["*"]:
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=cors_methods,
    allow_headers=cors_headers,
)


def _normalize_request_id(value: str | None) -> str | None:
    """对外部传入的 request id 做一次简单归一化，避免日志注入/过长字符串。"""
    if not value or not isinstance(value, str):
        return None
    s = value.strip()
    if not s:
        return None
    if len(s) > 64:
        return None
    # 仅保留可读字符，避免控制字符污染日志/终端
    if any(ord(ch) < 32 for ch in s):
        return None
    return s


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """为每个请求生成/透传 X-Request-Id，并写入响应头。"""
    incoming = request.headers.get("x-request-id") or request.headers.get("x-correlation-id")
    rid = _normalize_request_id(incoming) or uuid.uuid4().hex
    request.state.request_id = rid

    response = await call_next(request)
    response.headers["X-Request-Id"] = rid
    return response


def _request_id(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


def _envelope(request: Request, code: int, msg: str) -> JSONResponse:
    """错误也返回 HTTP 200，调用方以 code != 0 判断失败。"""
    rid = _request_id(request)
    headers = {"X-Request-Id": rid} if rid else None
    return JSONResponse({"code": code, "msg": msg, "data": None}, status_code=200, headers=headers)


@app.exception_handler(MBlogError)
async def mblog_error_handler(request: Request, exc: MBlogError):
    return _envelope(request, exc.code, exc.msg)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("[REQUEST] Invalid parameters request_id=%s path=%s", _request_id(request) or "-", request.url.path)
    return _envelope(request, ParamError.code, "invalid request parameters")


@app.exception_handler(HTTPException)
async def http_exception_handler_with_request_id(request: Request, exc: HTTPException):
    response = await fastapi_http_exception_handler(request, exc)
    rid = _request_id(request)
    if rid:
        response.headers["X-Request-Id"] = rid
    return response


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("[DB] Unhandled store error request_id=%s", _request_id(request) or "-")
    return _envelope(request, SystemException.code, SystemException.default_msg)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("[UNHANDLED] request_id=%s", _request_id(request) or "-")

    # 生产/对外默认不泄露内部异常细节；debug 时给一个可读摘要便于定位
    msg = SystemException.default_msg
    if settings.debug:
        msg = exception_summary(exc, max_len=200)
    return _envelope(request, SystemException.code, msg)

# Register API routers
app.include_router(users_router, prefix=settings.api_prefix)
app.include_router(tokens_router, prefix=settings.api_prefix)
app.include_router(memos_router, prefix=settings.api_prefix)
app.include_router(tags_router, prefix=settings.api_prefix)
app.include_router(comments_router, prefix=settings.api_prefix)
app.include_router(sys_config_router, prefix=settings.api_prefix)


@app.on_event("startup")
async def startup_event():
    """Initialize database and seed runtime config on startup"""
    logger.info("[STARTUP] Initializing database...")
    await init_db()


@app.get("/")
async def root():
    """Root endpoint"""
    return {"message": "MBlog API", "version": APP_VERSION}


@app.get("/health")
async def health_check():
    """Health check endpoint（包含 DB 可用性探测）。"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.exception("[HEALTH] Database check failed: %s", exception_summary(e))
        raise HTTPException(status_code=503, detail="DB_UNAVAILABLE") from e

    return {"status": "healthy", "db": "ok"}
