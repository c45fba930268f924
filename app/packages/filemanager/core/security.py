"""安全模块：提供访问令牌与直链签名令牌的生成/解析能力。"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, FrozenSet, Iterable, Optional

from jose import JWTError, jwt

from .config import Settings, get_settings
from .logger import logger


@dataclass(frozen=True)
class Principal:
    """当前调用方。``can`` 是授权服务依赖的权限检查能力。"""

    id: str
    username: Optional[str] = None
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def can(self, permission: str) -> bool:
        return permission in self.permissions


def create_access_token(
    subject: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
    *,
    settings: Optional[Settings] = None,
) -> str:
    """根据传入载荷生成带有过期时间的签名 JWT。"""
    settings = settings or get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta else timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = subject.copy()
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_temporary_token(
    subject: Dict[str, Any],
    *,
    expires_at: datetime,
    settings: Optional[Settings] = None,
) -> str:
    """创建一个在 ``expires_at`` 失效的 JWT，用于临时直链签名。

    注意：该令牌不绑定用户，仅用于资源级别的临时授权。
    """
    settings = settings or get_settings()
    payload = subject.copy()
    payload.update({"exp": expires_at})
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_and_verify_token(
    token: str,
    *,
    verify_exp: bool = True,
    settings: Optional[Settings] = None,
) -> Optional[Dict[str, Any]]:
    """解码并校验 JWT，默认校验过期时间；非法或过期时返回 ``None``。"""
    settings = settings or get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"verify_exp": verify_exp},
        )
    except JWTError as exc:
        logger.warning("Failed to verify JWT: %s", exc)
        return None


def principal_from_claims(claims: Dict[str, Any]) -> Optional[Principal]:
    """将访问令牌载荷转换为 ``Principal``，缺少 ``sub`` 时视为匿名。"""
    subject = claims.get("sub")
    if subject is None:
        return None
    raw_permissions: Iterable[Any] = claims.get("permissions") or []
    if isinstance(raw_permissions, str):
        raw_permissions = [raw_permissions]
    return Principal(
        id=str(subject),
        username=claims.get("username"),
        permissions=frozenset(str(item) for item in raw_permissions),
    )
