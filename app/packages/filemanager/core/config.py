"""配置模块：负责加载和缓存基于环境变量的文件管理器设置。"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import URL_STRATEGY_AUTO


# 探测项目根目录并加载环境文件，支持通过 ENV_FILE/ENVIRONMENT 定制优先级。
def _detect_base_dir() -> Path:
    """向上遍历目录树，寻找包含 `app` 目录的项目根路径。"""
    current = Path(__file__).resolve()
    for candidate in current.parents:
        if (candidate / "app").is_dir():
            return candidate
    return current.parent


BASE_DIR = _detect_base_dir()


def _as_bool(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _split_csv(raw: Optional[str]) -> list[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


def _load_environment() -> None:
    env_file_override = os.getenv("ENV_FILE")
    if env_file_override:
        candidate = BASE_DIR / env_file_override
        if candidate.exists():
            load_dotenv(candidate, override=True, encoding="utf-8")
        return

    base_env = BASE_DIR / ".env"
    if base_env.exists():
        load_dotenv(base_env, override=False, encoding="utf-8")

    environment = os.getenv("ENVIRONMENT")
    if environment is None and _as_bool(os.getenv("DEBUG")):
        environment = "development"

    if environment:
        if environment.startswith(".env"):
            candidate_name = environment
        else:
            candidate_name = f".env.{environment}"
        candidate_path = BASE_DIR / candidate_name
        if candidate_path.exists():
            load_dotenv(candidate_path, override=True, encoding="utf-8")


_load_environment()


class DiskConfig(BaseModel):
    """单个存储盘配置。

    - ``driver`` 取值 "local" 或 "s3"；
    - 本地盘使用 ``root``（相对路径基于项目根目录解析）；
    - S3 盘使用 ``bucket``/``region``/``prefix``/``endpoint_url`` 与访问密钥；
    - ``url`` 为公开访问的基础地址，``visibility`` 为 "public" 时视为公开盘。
    """

    driver: str = "local"
    root: Optional[str] = None
    url: Optional[str] = None
    visibility: str = "private"
    temporary_url: bool = False

    bucket: Optional[str] = None
    region: Optional[str] = None
    prefix: Optional[str] = None
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None


def _default_disks() -> dict[str, DiskConfig]:
    return {
        "local": DiskConfig(driver="local", root="storage/app"),
        "public": DiskConfig(driver="local", root="storage/app/public", url="/storage", visibility="public"),
    }


class Settings(BaseSettings):
    """
    封装文件管理器运行所需的所有配置项，每个字段都可以通过环境变量重写。
    组件不直接读取环境变量，而是通过构造参数或依赖注入拿到该对象，便于测试构造。
    """

    project_name: str = Field(default="File Manager API", alias="PROJECT_NAME")
    api_v1_str: str = Field(default="/api/v1", alias="API_V1_STR")
    debug: bool = Field(default=False, alias="DEBUG")

    database_url_override: Optional[str] = Field(default=None, alias="DATABASE_URL")
    database_host: str = Field(default="localhost", alias="DATABASE_HOST")
    database_port: int = Field(default=5432, alias="DATABASE_PORT")
    database_user: str = Field(default="postgres", alias="DATABASE_USER")
    database_password: str = Field(default="postgres", alias="DATABASE_PASSWORD")
    database_name: str = Field(default="filemanager", alias="DATABASE_NAME")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    jwt_secret_key: str = Field(default="changeme", alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: str = Field(default="log", alias="LOG_DIR")
    log_file_name: str = Field(default="app.log", alias="LOG_FILE_NAME")
    log_json: bool = Field(default=False, alias="LOG_JSON")
    app_port: int = Field(default=8000, alias="APP_PORT")
    timezone: str = Field(default="Asia/Shanghai", alias="TIMEZONE")

    # 运行模式与存储盘
    filemanager_mode: str = Field(default="database", alias="FILEMANAGER_MODE")
    disks: dict[str, DiskConfig] = Field(default_factory=_default_disks, alias="FILEMANAGER_DISKS")

    # 数据库模式：上传文件落盘位置
    upload_disk: str = Field(default="public", alias="FILEMANAGER_UPLOAD_DISK")
    upload_directory: str = Field(default="uploads", alias="FILEMANAGER_UPLOAD_DIRECTORY")
    max_upload_size_kb: int = Field(default=100 * 1024, alias="FILEMANAGER_MAX_UPLOAD_SIZE_KB")

    # 存储模式：直接浏览存储盘
    storage_disk: str = Field(default="public", alias="FILEMANAGER_STORAGE_DISK")
    storage_root: str = Field(default="", alias="FILEMANAGER_STORAGE_ROOT")
    show_hidden: bool = Field(default=False, alias="FILEMANAGER_SHOW_HIDDEN")
    url_expiration: int = Field(default=60, alias="FILEMANAGER_URL_EXPIRATION")
    move_retries: int = Field(default=2, alias="FILEMANAGER_MOVE_RETRIES")

    # 权限
    authorization_enabled: bool = Field(default=True, alias="FILEMANAGER_AUTHORIZATION_ENABLED")
    permission_view_any: Optional[str] = Field(default=None, alias="FILEMANAGER_PERMISSION_VIEW_ANY")
    permission_view: Optional[str] = Field(default=None, alias="FILEMANAGER_PERMISSION_VIEW")
    permission_create: Optional[str] = Field(default=None, alias="FILEMANAGER_PERMISSION_CREATE")
    permission_update: Optional[str] = Field(default=None, alias="FILEMANAGER_PERMISSION_UPDATE")
    permission_delete: Optional[str] = Field(default=None, alias="FILEMANAGER_PERMISSION_DELETE")
    permission_delete_any: Optional[str] = Field(default=None, alias="FILEMANAGER_PERMISSION_DELETE_ANY")
    permission_download: Optional[str] = Field(default=None, alias="FILEMANAGER_PERMISSION_DOWNLOAD")

    # 文件流签名直链
    stream_route_prefix: str = Field(default="/filemanager", alias="FILEMANAGER_STREAM_ROUTE_PREFIX")
    stream_url_expiration: int = Field(default=60, alias="FILEMANAGER_STREAM_URL_EXPIRATION")
    stream_url_strategy: str = Field(default=URL_STRATEGY_AUTO, alias="FILEMANAGER_STREAM_URL_STRATEGY")
    stream_chunk_size: int = Field(default=8192, alias="FILEMANAGER_STREAM_CHUNK_SIZE")
    public_access_disks_raw: str = Field(default="", alias="FILEMANAGER_PUBLIC_ACCESS_DISKS")
    public_disks_raw: str = Field(default="public", alias="FILEMANAGER_PUBLIC_DISKS")
    force_signed_disks_raw: str = Field(default="", alias="FILEMANAGER_FORCE_SIGNED_DISKS")

    # 上传安全
    blocked_extensions_raw: str = Field(
        default="php,php3,php4,php5,phtml,phar,exe,sh,bat,cmd,com,cgi,pl,jsp,asp,aspx",
        alias="FILEMANAGER_BLOCKED_EXTENSIONS",
    )
    blocked_filename_patterns_raw: str = Field(default="", alias="FILEMANAGER_BLOCKED_FILENAME_PATTERNS")
    max_filename_length: int = Field(default=255, alias="FILEMANAGER_MAX_FILENAME_LENGTH")
    sanitize_filenames: bool = Field(default=True, alias="FILEMANAGER_SANITIZE_FILENAMES")

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    @property
    def sql_database_url(self) -> str:
        """优先使用 DATABASE_URL，否则根据当前设置拼接 PostgreSQL 连接串。"""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+psycopg2://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    def _resolve_path(self, raw: str) -> Path:
        path = Path(raw)
        if not path.is_absolute():
            path = BASE_DIR / path
        return path

    @property
    def log_directory(self) -> Path:
        """返回日志目录的绝对路径，支持相对路径配置。"""
        return self._resolve_path(self.log_dir)

    @property
    def log_file_path(self) -> Path:
        return self.log_directory / self.log_file_name

    @property
    def timezone_info(self) -> ZoneInfo:
        """返回当前配置对应的时区信息，无法解析时回退到 UTC。"""
        try:
            return ZoneInfo(self.timezone)
        except ZoneInfoNotFoundError:
            return ZoneInfo("UTC")

    def resolve_local_root(self, raw: str) -> Path:
        """本地盘根目录：相对路径基于项目根目录解析。"""
        return self._resolve_path(raw)

    # -------------------
    # 列表型配置帮助方法
    # -------------------
    @property
    def public_access_disks(self) -> list[str]:
        return _split_csv(self.public_access_disks_raw)

    @property
    def public_disks(self) -> list[str]:
        return _split_csv(self.public_disks_raw)

    @property
    def force_signed_disks(self) -> list[str]:
        return _split_csv(self.force_signed_disks_raw)

    @property
    def blocked_extensions(self) -> list[str]:
        return [ext.lower().lstrip(".") for ext in _split_csv(self.blocked_extensions_raw)]

    @property
    def blocked_filename_patterns(self) -> list[str]:
        return _split_csv(self.blocked_filename_patterns_raw)

    @property
    def permissions(self) -> dict[str, Optional[str]]:
        """按操作名返回配置的权限标识，未配置的为 ``None``。"""
        return {
            "view_any": self.permission_view_any,
            "view": self.permission_view,
            "create": self.permission_create,
            "update": self.permission_update,
            "delete": self.permission_delete,
            "delete_any": self.permission_delete_any,
            "download": self.permission_download,
        }


@lru_cache
def get_settings() -> Settings:
    """返回单例化的配置对象，避免重复解析环境变量造成性能浪费。"""
    return Settings()
