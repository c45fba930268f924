"""文件流网关：通过签名直链安全地输出文件内容。

处理顺序固定，任何一步失败都直接终止请求：
签名校验(403) -> 参数校验(400) -> 授权(403) -> 存储盘(404) -> 文件存在性(404) -> 分块输出。
"""

from __future__ import annotations

import re
from contextlib import closing
from typing import BinaryIO, Callable, Iterator, Mapping, Optional, Tuple

from fastapi import status
from fastapi.responses import Response, StreamingResponse
from sqlalchemy.orm import Session

from app.packages.filemanager.adapters.factory import AdapterFactory
from app.packages.filemanager.core.config import Settings
from app.packages.filemanager.core.constants import (
    CACHE_CONTROL_PRIVATE,
    DEFAULT_MIME_TYPE,
    MAX_FILENAME_BYTES,
    MODE_DATABASE,
    MODE_STORAGE,
    STREAM_ROUTE_DOWNLOAD,
    SUPPORTED_MODES,
)
from app.packages.filemanager.core.exceptions import AppException
from app.packages.filemanager.core.logger import logger
from app.packages.filemanager.core.security import Principal
from app.packages.filemanager.services.authorization import AuthorizationService
from app.packages.filemanager.services.storage_backends import STORAGE_ERRORS, DiskNotConfigured, StorageDisk, build_disk
from app.packages.filemanager.services.url_service import FileUrlService
from app.packages.filemanager.utils.path_utils import base_name, normalize_key, split_extension

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.\s-]")
_RANGE_PATTERN = re.compile(r"^bytes=(\d*)-(\d*)$")


def safe_filename(name: Optional[str], fallback: str = "download") -> str:
    """去掉路径部分并替换不安全字符，按字节截断到 255 且保留扩展名。"""
    value = base_name(name or "")
    value = re.sub(r"\s", " ", value)
    value = _UNSAFE_FILENAME_CHARS.sub("_", value).strip()
    if not value:
        return fallback
    if len(value.encode("utf-8")) <= MAX_FILENAME_BYTES:
        return value
    stem, extension = split_extension(value)
    suffix = f".{extension}" if extension else ""
    keep = max(MAX_FILENAME_BYTES - len(suffix.encode("utf-8")), 1)
    return stem.encode("utf-8")[:keep].decode("utf-8", "ignore") + suffix


def parse_range(header: Optional[str], size: int) -> Optional[Tuple[int, int]]:
    """解析单段 ``Range`` 头，返回包含两端的 ``(start, end)``。

    无法解析时返回 ``None``（按完整内容输出）；无法满足时抛 ``ValueError``。
    """
    if not header:
        return None
    match = _RANGE_PATTERN.match(header.strip())
    if not match:
        return None
    first, last = match.groups()
    if not first and not last:
        return None
    if not first:
        length = int(last)
        if length == 0 or size == 0:
            raise ValueError("Unsatisfiable range")
        return max(size - length, 0), size - 1
    start = int(first)
    end = int(last) if last else size - 1
    if start >= size or end < start:
        raise ValueError("Unsatisfiable range")
    return start, min(end, size - 1)


def iter_chunks(stream: BinaryIO, length: int, chunk_size: int) -> Iterator[bytes]:
    """按块读取 ``length`` 字节；任何退出路径（含客户端断开）都会关闭底层流。"""
    remaining = length
    with closing(stream):
        while remaining > 0:
            chunk = stream.read(min(chunk_size, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


class FileStreamService:
    def __init__(
        self,
        settings: Settings,
        *,
        url_service: FileUrlService,
        authorization: AuthorizationService,
        factory: AdapterFactory,
        disk_resolver: Optional[Callable[[str], StorageDisk]] = None,
    ):
        self.settings = settings
        self.url_service = url_service
        self.authorization = authorization
        self.factory = factory
        self._disk_resolver = disk_resolver or (lambda name: build_disk(name, settings))

    def handle(
        self,
        route: str,
        params: Mapping[str, str],
        *,
        user: Optional[Principal],
        db: Optional[Session] = None,
        range_header: Optional[str] = None,
    ) -> Response:
        if not self.url_service.verify_signature(route, params):
            logger.warning("Invalid or expired stream signature for route %s", route)
            raise AppException("链接无效或已过期", code=status.HTTP_403_FORBIDDEN)

        disk_name = params.get("disk")
        path = params.get("path")
        mode = (params.get("mode") or MODE_STORAGE).lower()
        identifier = params.get("identifier")
        if not disk_name or not path:
            raise AppException("缺少 disk 或 path 参数", code=status.HTTP_400_BAD_REQUEST)
        if mode not in SUPPORTED_MODES:
            raise AppException("mode 参数无效", code=status.HTTP_400_BAD_REQUEST)
        if mode == MODE_DATABASE and not identifier:
            raise AppException("缺少 identifier 参数", code=status.HTTP_400_BAD_REQUEST)

        if self.url_service.requires_authentication(disk_name):
            self._authorize(mode, identifier, user=user, db=db)

        try:
            disk = self._disk_resolver(disk_name)
        except DiskNotConfigured as exc:
            raise AppException("存储盘不存在", code=status.HTTP_404_NOT_FOUND) from exc

        try:
            key = normalize_key(path)
        except ValueError as exc:
            logger.warning("Path traversal attempt blocked on stream route: %r", path)
            raise AppException("非法路径", code=status.HTTP_400_BAD_REQUEST) from exc
        if not key or not disk.exists(key) or disk.is_directory(key):
            raise AppException("文件不存在", code=status.HTTP_404_NOT_FOUND)

        return self._respond(route, disk, key, params.get("filename"), range_header)

    def _authorize(
        self,
        mode: str,
        identifier: Optional[str],
        *,
        user: Optional[Principal],
        db: Optional[Session],
    ) -> None:
        if user is None:
            logger.warning("Unauthorized stream access: anonymous caller")
            raise AppException("无权访问该文件", code=status.HTTP_403_FORBIDDEN)
        if mode == MODE_DATABASE:
            item = self.factory.make(db, mode=MODE_DATABASE).get_item(identifier)
            if item is None:
                raise AppException("文件不存在", code=status.HTTP_404_NOT_FOUND)
            allowed = self.authorization.can_view(user, item)
        else:
            allowed = self.authorization.can_view_any(user)
        if not allowed:
            logger.warning("Unauthorized stream access: user=%s mode=%s", user.id, mode)
            raise AppException("无权访问该文件", code=status.HTTP_403_FORBIDDEN)

    def _respond(
        self,
        route: str,
        disk: StorageDisk,
        key: str,
        filename: Optional[str],
        range_header: Optional[str],
    ) -> Response:
        try:
            size = disk.size(key)
            mime_type = disk.mime_type(key) or DEFAULT_MIME_TYPE
        except STORAGE_ERRORS as exc:
            logger.error("Failed to stat %s on disk %s: %s", key, disk.name, exc)
            raise AppException("文件不存在", code=status.HTTP_404_NOT_FOUND) from exc

        inline = route != STREAM_ROUTE_DOWNLOAD
        name = safe_filename(filename or base_name(key))
        headers = {
            "Cache-Control": CACHE_CONTROL_PRIVATE,
            "Accept-Ranges": "bytes",
            "Content-Disposition": f'{"inline" if inline else "attachment"}; filename="{name}"',
        }
        if inline:
            headers["X-Content-Type-Options"] = "nosniff"

        try:
            byte_range = parse_range(range_header, size)
        except ValueError:
            headers["Content-Range"] = f"bytes */{size}"
            return Response(status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE, headers=headers)

        status_code = status.HTTP_200_OK
        start, end = 0, size - 1
        if byte_range is not None:
            start, end = byte_range
            status_code = status.HTTP_206_PARTIAL_CONTENT
            headers["Content-Range"] = f"bytes {start}-{end}/{size}"
        length = max(end - start + 1, 0)
        headers["Content-Length"] = str(length)

        try:
            stream = disk.read_stream(key, start, end if byte_range is not None else None)
        except STORAGE_ERRORS as exc:
            logger.error("Failed to open %s on disk %s: %s", key, disk.name, exc)
            raise AppException("文件不存在", code=status.HTTP_404_NOT_FOUND) from exc

        logger.debug("File streamed: disk=%s key=%s bytes=%s-%s/%s", disk.name, key, start, end, size)
        return StreamingResponse(
            iter_chunks(stream, length, self.settings.stream_chunk_size),
            status_code=status_code,
            media_type=mime_type,
            headers=headers,
        )
