"""授权服务：每个读写操作前的权限闸门。

规则（逐操作相同）：
1. 全局关闭授权时一律放行；
2. 没有调用方（匿名）时拒绝；
3. 为该操作配置了权限标识时，调用方必须持有该权限；
4. 否则任何已认证调用方均放行。

``can_delete_any`` 未配置批量删除权限时沿用单项删除的规则。
该服务不访问会话或数据库，可以直接构造后单独测试。
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from app.packages.filemanager.core.config import Settings
from app.packages.filemanager.core.logger import logger
from app.packages.filemanager.core.security import Principal


class AuthorizationService:
    def __init__(self, *, enabled: bool = True, permissions: Optional[Mapping[str, Optional[str]]] = None):
        self.enabled = enabled
        self.permissions = dict(permissions or {})

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthorizationService":
        return cls(enabled=settings.authorization_enabled, permissions=settings.permissions)

    def _check(self, operation: str, user: Optional[Principal]) -> bool:
        if not self.enabled:
            return True
        if user is None:
            logger.info("Authorization denied: anonymous caller for %s", operation)
            return False
        permission = self.permissions.get(operation)
        if permission:
            allowed = user.can(permission)
            if not allowed:
                logger.info("Authorization denied: user=%s lacks %s for %s", user.id, permission, operation)
            return allowed
        return True

    def can_view_any(self, user: Optional[Principal]) -> bool:
        return self._check("view_any", user)

    def can_view(self, user: Optional[Principal], item: Any = None) -> bool:
        return self._check("view", user)

    def can_create(self, user: Optional[Principal]) -> bool:
        return self._check("create", user)

    def can_update(self, user: Optional[Principal], item: Any = None) -> bool:
        return self._check("update", user)

    def can_delete(self, user: Optional[Principal], item: Any = None) -> bool:
        return self._check("delete", user)

    def can_delete_any(self, user: Optional[Principal]) -> bool:
        if not self.permissions.get("delete_any"):
            return self._check("delete", user)
        return self._check("delete_any", user)

    def can_download(self, user: Optional[Principal], item: Any = None) -> bool:
        return self._check("download", user)
