"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from collections.abc import Generator
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.packages.filemanager.adapters.base import FileManagerAdapter
from app.packages.filemanager.adapters.factory import AdapterFactory
from app.packages.filemanager.core.config import Settings, get_settings
from app.packages.filemanager.core.constants import ACCESS_TOKEN_TYPE
from app.packages.filemanager.core.security import Principal, decode_and_verify_token, principal_from_claims
from app.packages.filemanager.db import session as db_session
from app.packages.filemanager.filetypes.registry import FileTypeRegistry, build_default_registry
from app.packages.filemanager.services.authorization import AuthorizationService
from app.packages.filemanager.services.file_security import FileSecurityService
from app.packages.filemanager.services.stream_service import FileStreamService
from app.packages.filemanager.services.url_service import FileUrlService

security_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """生成一个数据库会话，并在请求结束后自动关闭。"""
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    settings: Settings = Depends(get_settings),
) -> Optional[Principal]:
    """解析 ``Authorization`` 头部；缺失或非法的令牌视为匿名调用方，由授权服务决定是否放行。"""
    if not credentials or credentials.scheme.lower() != ACCESS_TOKEN_TYPE:
        return None
    claims = decode_and_verify_token(credentials.credentials, settings=settings)
    if claims is None:
        return None
    return principal_from_claims(claims)


@lru_cache
def get_file_type_registry() -> FileTypeRegistry:
    """进程级文件类型注册中心：启动时注册内置类型，之后只读。"""
    return build_default_registry()


def get_authorization_service(settings: Settings = Depends(get_settings)) -> AuthorizationService:
    return AuthorizationService.from_settings(settings)


def get_file_security_service(settings: Settings = Depends(get_settings)) -> FileSecurityService:
    return FileSecurityService.from_settings(settings)


def get_url_service(settings: Settings = Depends(get_settings)) -> FileUrlService:
    return FileUrlService(settings)


def get_adapter_factory(
    settings: Settings = Depends(get_settings),
    registry: FileTypeRegistry = Depends(get_file_type_registry),
    security: FileSecurityService = Depends(get_file_security_service),
) -> AdapterFactory:
    return AdapterFactory(settings, registry=registry, security=security)


def get_adapter(
    factory: AdapterFactory = Depends(get_adapter_factory),
    db: Session = Depends(get_db),
) -> FileManagerAdapter:
    """按配置的运行模式返回当前请求使用的适配器。"""
    return factory.make(db)


def get_stream_service(
    settings: Settings = Depends(get_settings),
    url_service: FileUrlService = Depends(get_url_service),
    authorization: AuthorizationService = Depends(get_authorization_service),
    factory: AdapterFactory = Depends(get_adapter_factory),
) -> FileStreamService:
    return FileStreamService(settings, url_service=url_service, authorization=authorization, factory=factory)
