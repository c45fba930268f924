"""文件直链服务：生成预览/下载地址，并校验签名直链。

签名直链格式：``<prefix>/<route>?<参数>&expires=<unix 时间戳>&signature=<JWT>``。
JWT 载荷包含 ``purpose``、``route``、``exp`` 以及 ``q``（规范化查询串的 SHA-256），
任何参数被篡改都会导致 ``q`` 不一致；所有失败原因对外表现一致。
"""

from __future__ import annotations

import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import urlencode

from app.packages.filemanager.core.config import Settings
from app.packages.filemanager.core.constants import (
    STREAM_ROUTE_DOWNLOAD,
    STREAM_ROUTE_STREAM,
    STREAM_SIGNATURE_PURPOSE,
    URL_STRATEGY_DIRECT,
    URL_STRATEGY_PUBLIC,
    URL_STRATEGY_SIGNED_ROUTE,
    URL_STRATEGY_TEMPORARY,
)
from app.packages.filemanager.core.logger import logger
from app.packages.filemanager.core.security import create_temporary_token, decode_and_verify_token
from app.packages.filemanager.services.storage_backends import STORAGE_ERRORS, DiskNotConfigured, StorageDisk, build_disk

SIGNATURE_PARAM = "signature"
EXPIRES_PARAM = "expires"


def canonical_query(params: Mapping[str, Any]) -> str:
    """按键排序、剔除空值与签名参数后的查询串。"""
    pairs = sorted(
        (str(key), str(value))
        for key, value in params.items()
        if key != SIGNATURE_PARAM and value is not None and value != ""
    )
    return urlencode(pairs)


def _digest(query: str) -> str:
    return hashlib.sha256(query.encode("utf-8")).hexdigest()


class FileUrlService:
    def __init__(self, settings: Settings, disk_resolver: Optional[Callable[[str], StorageDisk]] = None):
        self.settings = settings
        self._disk_resolver = disk_resolver or (lambda name: build_disk(name, settings))

    # ------------------------------------------------------------------
    # 签名直链
    # ------------------------------------------------------------------
    def signed_route(
        self,
        route: str,
        params: Mapping[str, Any],
        expires_minutes: Optional[int] = None,
    ) -> str:
        minutes = self.settings.stream_url_expiration if expires_minutes is None else expires_minutes
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=minutes)
        query_params: Dict[str, Any] = {
            key: value for key, value in params.items() if value is not None and value != ""
        }
        query_params[EXPIRES_PARAM] = int(expires_at.timestamp())
        token = create_temporary_token(
            {"purpose": STREAM_SIGNATURE_PURPOSE, "route": route, "q": _digest(canonical_query(query_params))},
            expires_at=expires_at,
            settings=self.settings,
        )
        query_params[SIGNATURE_PARAM] = token
        prefix = self.settings.stream_route_prefix.rstrip("/")
        return f"{prefix}/{route}?{urlencode(query_params)}"

    def verify_signature(self, route: str, query_params: Mapping[str, Any]) -> bool:
        """校验签名直链；缺失、格式错误、过期或被篡改都返回 ``False``。"""
        token = query_params.get(SIGNATURE_PARAM)
        expires = query_params.get(EXPIRES_PARAM)
        if not token or not expires:
            return False
        claims = decode_and_verify_token(str(token), settings=self.settings)
        if not claims:
            return False
        expected_q = _digest(canonical_query(query_params))
        checks = [
            hmac.compare_digest(str(claims.get("purpose", "")), STREAM_SIGNATURE_PURPOSE),
            hmac.compare_digest(str(claims.get("route", "")), route),
            hmac.compare_digest(str(claims.get("q", "")), expected_q),
        ]
        # 所有比较都执行完再判断，避免通过耗时推断失败原因
        return all(checks)

    # ------------------------------------------------------------------
    # 预览/下载地址
    # ------------------------------------------------------------------
    def _disk(self, disk: str) -> Optional[StorageDisk]:
        try:
            return self._disk_resolver(disk)
        except DiskNotConfigured:
            return None

    def get_url_strategy(self, disk: str) -> str:
        config = self.settings.disks.get(disk)
        if config is None:
            return URL_STRATEGY_SIGNED_ROUTE

        configured = (self.settings.stream_url_strategy or "auto").lower()
        if configured != "auto":
            if configured == URL_STRATEGY_DIRECT:
                return URL_STRATEGY_PUBLIC
            return URL_STRATEGY_SIGNED_ROUTE

        if disk in self.settings.force_signed_disks:
            return URL_STRATEGY_SIGNED_ROUTE
        if self._supports_temporary_urls(disk):
            return URL_STRATEGY_TEMPORARY
        if self._is_publicly_accessible(disk):
            return URL_STRATEGY_PUBLIC
        return URL_STRATEGY_SIGNED_ROUTE

    def _supports_temporary_urls(self, disk: str) -> bool:
        config = self.settings.disks.get(disk)
        if config is None:
            return False
        return config.driver.lower() == "s3" or config.temporary_url

    def _is_publicly_accessible(self, disk: str) -> bool:
        config = self.settings.disks.get(disk)
        if config is None:
            return False
        if disk in self.settings.public_disks:
            return True
        return config.driver.lower() == "s3" and config.visibility == "public"

    def get_preview_url(
        self,
        disk: str,
        path: str,
        mode: str = "storage",
        identifier: Optional[str] = None,
        expires_minutes: Optional[int] = None,
    ) -> Optional[str]:
        if disk not in self.settings.disks:
            return None
        minutes = self.settings.stream_url_expiration if expires_minutes is None else expires_minutes
        strategy = self.get_url_strategy(disk)

        if strategy == URL_STRATEGY_TEMPORARY:
            storage = self._disk(disk)
            if storage is not None and storage.supports_temporary_urls():
                try:
                    return storage.temporary_url(path, minutes)
                except STORAGE_ERRORS as exc:
                    logger.warning("Temporary URL failed on disk %s, falling back to signed route: %s", disk, exc)

        if strategy == URL_STRATEGY_PUBLIC:
            storage = self._disk(disk)
            url = storage.url(path) if storage is not None else None
            if url:
                return url

        return self.signed_route(
            STREAM_ROUTE_STREAM,
            {"disk": disk, "path": path, "mode": mode, "identifier": identifier},
            minutes,
        )

    def get_download_url(
        self,
        disk: str,
        path: str,
        mode: str = "storage",
        identifier: Optional[str] = None,
        filename: Optional[str] = None,
        expires_minutes: Optional[int] = None,
    ) -> str:
        return self.signed_route(
            STREAM_ROUTE_DOWNLOAD,
            {"disk": disk, "path": path, "mode": mode, "identifier": identifier, "filename": filename},
            expires_minutes,
        )

    def requires_authentication(self, disk: str) -> bool:
        return disk not in self.settings.public_access_disks

    def get_disk_info(self, disk: str) -> Dict[str, Any]:
        config = self.settings.disks.get(disk)
        if config is None:
            return {"exists": False, "strategy": "unknown", "driver": None, "requires_auth": True}
        return {
            "exists": True,
            "strategy": self.get_url_strategy(disk),
            "driver": config.driver,
            "requires_auth": self.requires_authentication(disk),
            "supports_temporary_urls": self._supports_temporary_urls(disk),
            "is_publicly_accessible": self._is_publicly_accessible(disk),
        }
