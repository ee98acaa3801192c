from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_APP_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _APP_DIR.parent
_REPO_ROOT = _BACKEND_DIR.parent


def _load_root_dotenv() -> None:
    """
    统一从仓库根目录读取 `.env`（并保证其优先级最高）。

    说明：
    - 启动脚本通常会 `cd backend`，导致默认只会找子目录下的 `.env`。
    - 这里显式加载：先加载 `backend/.env`，再加载根目录 `.env`，并且 `override=True`。
    """

    backend_env = _BACKEND_DIR / ".env"
    root_env = _REPO_ROOT / ".env"

    for env_file in (backend_env, root_env):
        if env_file.exists():
            load_dotenv(env_file, override=True, encoding="utf-8")


class Settings(BaseSettings):
    """进程级配置（环境变量 / .env）。

    运行期可在后台修改的开关（是否开放注册、评论、点赞等）不在这里，
    它们存放在 t_sys_config 表里，见 services/sys_config.py。
    """

    # Server（供 run.py 使用）
    backend_host: str = "0.0.0.0"
    backend_port: int = 38321
    backend_reload: bool = False

    # Database
    # 优先使用 DATABASE_URL；不配置时再使用 SQLITE_DB_PATH 生成 sqlite URL
    database_url: str | None = None
    sqlite_db_path: str = "mblog.db"

    # API
    api_prefix: str = "/api"
    debug: bool = False
    # 是否输出 SQLAlchemy 的 SQL 日志，排查 SQL/事务时再临时打开
    sql_echo: bool = False

    # CORS（逗号分隔；"*" 表示允许所有来源，此时强制关闭 allow_credentials）
    cors_allow_origins: str = "*"
    cors_allow_credentials: bool = False
    cors_allow_methods: str = "*"
    cors_allow_headers: str = "*"

    # 登录凭证
    # - jwt_secret：HS256 签名密钥（兼容旧部署的 SA_TOKEN_JWT_SECRET_KEY）
    # - token_header：凭证所在的请求头名称
    # - token_valid_days：签发时写入的 exp，校验时并不检查 exp
    jwt_secret: str = Field(
        default="6c6AJaXnTRXWpr9aUUqP",
        validation_alias=AliasChoices("jwt_secret", "sa_token_jwt_secret_key"),
    )
    token_header: str = Field(
        default="token",
        validation_alias=AliasChoices("token_header", "sa_token_header"),
    )
    token_valid_days: int = 365 * 100

    # Webhook（新 memo 推送）
    webhook_timeout_seconds: float = 10.0

    # 列表默认分页大小
    default_page_size: int = 20

    @model_validator(mode="after")
    def _build_database_url_if_missing(self) -> "Settings":
        if self.database_url and self.database_url.strip():
            return self

        db_path = Path(self.sqlite_db_path)
        if not db_path.is_absolute():
            db_path = (_REPO_ROOT / db_path).resolve()

        self.database_url = f"sqlite+aiosqlite:///{db_path.as_posix()}"
        return self

    @model_validator(mode="after")
    def _normalize_token_settings(self) -> "Settings":
        if not (self.token_header or "").strip():
            self.token_header = "token"
        self.token_header = self.token_header.strip()

        if int(self.token_valid_days or 0) <= 0:
            self.token_valid_days = 365 * 100

        if int(self.default_page_size or 0) <= 0:
            self.default_page_size = 20

        if float(self.webhook_timeout_seconds or 0) <= 0:
            self.webhook_timeout_seconds = 10.0
        return self

    model_config = SettingsConfigDict(
        case_sensitive=False,
        populate_by_name=True,
    )


_load_root_dotenv()
settings = Settings()
