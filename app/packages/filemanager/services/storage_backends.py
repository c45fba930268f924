"""存储盘抽象与实现：统一封装本地目录与 S3 桶的按键读写。

所有 ``key`` 均为相对盘根的路径，不以 '/' 开头；目录在 S3 中由前缀推断，
空目录以 ``<prefix>/`` 零字节占位对象表示。
"""

from __future__ import annotations

import mimetypes
import shutil
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.packages.filemanager.core.config import DiskConfig, Settings
from app.packages.filemanager.core.constants import DEFAULT_MIME_TYPE
from app.packages.filemanager.core.logger import logger
from app.packages.filemanager.utils.path_utils import base_name, join_key, sanitize_key


# 存储 I/O 失败时可能抛出的异常，适配器据此区分业务提示与后端故障
STORAGE_ERRORS = (OSError, BotoCoreError, ClientError)


def _norm_mime(path: str) -> str:
    mime, _ = mimetypes.guess_type(path)
    return mime or DEFAULT_MIME_TYPE


class DiskNotConfigured(KeyError):
    """请求的存储盘未在配置中声明。"""


@dataclass(frozen=True)
class FileStat:
    """单个文件的元数据，一次后端查询取得。"""

    size: int
    mime_type: str
    last_modified: Optional[int] = None


class StorageDisk:
    """存储盘接口。"""

    driver = "abstract"

    def __init__(self, name: str, config: DiskConfig):
        self.name = name
        self.config = config

    @property
    def visibility(self) -> str:
        return self.config.visibility

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def is_directory(self, key: str) -> bool:
        raise NotImplementedError

    def directories(self, key: str = "") -> List[str]:
        raise NotImplementedError

    def files(self, key: str = "") -> List[str]:
        raise NotImplementedError

    def all_files(self, key: str = "") -> List[str]:
        raise NotImplementedError

    def make_directory(self, key: str) -> None:
        raise NotImplementedError

    def delete_directory(self, key: str) -> bool:
        raise NotImplementedError

    def put_stream(self, key: str, stream: BinaryIO) -> None:
        raise NotImplementedError

    def read_stream(self, key: str, start: int = 0, end: Optional[int] = None) -> BinaryIO:
        """打开读取流，定位到 ``start``；``end`` 为包含在内的结束偏移。调用方负责关闭。"""
        raise NotImplementedError

    def read_bytes(self, key: str, max_bytes: int) -> bytes:
        """最多读取 ``max_bytes`` 字节，不会把整个文件读入内存。"""
        raise NotImplementedError

    def copy(self, source: str, destination: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        """删除单个文件，文件不存在时返回 ``False``。"""
        raise NotImplementedError

    def size(self, key: str) -> int:
        raise NotImplementedError

    def mime_type(self, key: str) -> str:
        return _norm_mime(key)

    def last_modified(self, key: str) -> Optional[int]:
        raise NotImplementedError

    def stat(self, key: str) -> FileStat:
        """文件不存在时抛 ``FileNotFoundError``。"""
        return FileStat(size=self.size(key), mime_type=self.mime_type(key), last_modified=self.last_modified(key))

    def url(self, key: str) -> Optional[str]:
        base = self.config.url
        if not base:
            return None
        return f"{base.rstrip('/')}/{sanitize_key(key)}"

    def supports_temporary_urls(self) -> bool:
        return False

    def temporary_url(self, key: str, expires_minutes: int) -> str:
        raise NotImplementedError(f"Disk '{self.name}' does not support temporary URLs")


# ------------------------------------------
# 本地文件系统实现
# ------------------------------------------


class LocalDisk(StorageDisk):
    driver = "local"

    def __init__(self, name: str, config: DiskConfig, root: Path):
        super().__init__(name, config)
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    # 统一的安全路径拼接，防止路径遍历
    def _resolve(self, key: str) -> Path:
        rel_norm = (key or "").strip().lstrip("/")
        candidate = (self.root / rel_norm).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise ValueError(f"Path escapes disk root: {key!r}") from exc
        return candidate

    def _key_of(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def exists(self, key: str) -> bool:
        return self._resolve(key).exists()

    def is_directory(self, key: str) -> bool:
        return self._resolve(key).is_dir()

    def _entries(self, key: str) -> Iterator[Path]:
        base = self._resolve(key)
        if not base.is_dir():
            return iter(())
        return base.iterdir()

    def directories(self, key: str = "") -> List[str]:
        return sorted(self._key_of(entry) for entry in self._entries(key) if entry.is_dir())

    def files(self, key: str = "") -> List[str]:
        return sorted(self._key_of(entry) for entry in self._entries(key) if entry.is_file())

    def all_files(self, key: str = "") -> List[str]:
        base = self._resolve(key)
        if not base.is_dir():
            return []
        return sorted(self._key_of(entry) for entry in base.rglob("*") if entry.is_file())

    def make_directory(self, key: str) -> None:
        self._resolve(key).mkdir(parents=True, exist_ok=True)

    def delete_directory(self, key: str) -> bool:
        target = self._resolve(key)
        if target == self.root or not target.is_dir():
            return False
        shutil.rmtree(target)
        return True

    def put_stream(self, key: str, stream: BinaryIO) -> None:
        target = self._resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as fh:
            shutil.copyfileobj(stream, fh)

    def read_stream(self, key: str, start: int = 0, end: Optional[int] = None) -> BinaryIO:
        fh = open(self._resolve(key), "rb")
        if start:
            fh.seek(start)
        return fh

    def read_bytes(self, key: str, max_bytes: int) -> bytes:
        with open(self._resolve(key), "rb") as fh:
            return fh.read(max(max_bytes, 0))

    def copy(self, source: str, destination: str) -> None:
        src = self._resolve(source)
        dst = self._resolve(destination)
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dst)

    def delete(self, key: str) -> bool:
        target = self._resolve(key)
        if not target.is_file():
            return False
        target.unlink()
        return True

    def size(self, key: str) -> int:
        return int(self._resolve(key).stat().st_size)

    def last_modified(self, key: str) -> Optional[int]:
        return int(self._resolve(key).stat().st_mtime)

    def stat(self, key: str) -> FileStat:
        info = self._resolve(key).stat()
        return FileStat(size=int(info.st_size), mime_type=self.mime_type(key), last_modified=int(info.st_mtime))


# ------------------------------------------
# S3 实现（boto3）
# ------------------------------------------


class S3Disk(StorageDisk):
    driver = "s3"

    def __init__(self, name: str, config: DiskConfig, client=None):
        super().__init__(name, config)
        self.bucket = config.bucket
        self.prefix = (config.prefix or "").strip("/")
        self._client = client or boto3.client(
            "s3",
            region_name=config.region,
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
        )

    # 拼接基于 prefix 的对象 key
    def _join_key(self, key: str) -> str:
        return join_key(self.prefix, sanitize_key(key))

    def _strip_prefix(self, full_key: str) -> str:
        if self.prefix and full_key.startswith(self.prefix + "/"):
            return full_key[len(self.prefix) + 1 :]
        return full_key

    def _dir_prefix(self, key: str) -> str:
        full = self._join_key(key)
        return f"{full}/" if full else ""

    def _head(self, key: str) -> Optional[Dict]:
        try:
            return self._client.head_object(Bucket=self.bucket, Key=self._join_key(key))
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in {"404", "NoSuchKey", "NotFound"}:
                return None
            raise

    def _list(self, prefix: str, *, delimiter: Optional[str] = "/") -> Iterator[Dict]:
        paginator = self._client.get_paginator("list_objects_v2")
        kwargs = {"Bucket": self.bucket, "Prefix": prefix}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        yield from paginator.paginate(**kwargs)

    def exists(self, key: str) -> bool:
        if sanitize_key(key) and self._head(key) is not None:
            return True
        return self.is_directory(key)

    def is_directory(self, key: str) -> bool:
        prefix = self._dir_prefix(key)
        if not prefix:
            return True
        resp = self._client.list_objects_v2(Bucket=self.bucket, Prefix=prefix, MaxKeys=1)
        return (resp.get("KeyCount") or 0) > 0

    def directories(self, key: str = "") -> List[str]:
        prefix = self._dir_prefix(key)
        found: List[str] = []
        for page in self._list(prefix):
            for common in page.get("CommonPrefixes", []):
                full = common.get("Prefix", "").rstrip("/")
                if full:
                    found.append(self._strip_prefix(full))
        return sorted(found)

    def files(self, key: str = "") -> List[str]:
        prefix = self._dir_prefix(key)
        found: List[str] = []
        for page in self._list(prefix):
            for content in page.get("Contents", []):
                full = content.get("Key") or ""
                # 目录占位对象不算文件
                if not full or full.endswith("/"):
                    continue
                found.append(self._strip_prefix(full))
        return sorted(found)

    def all_files(self, key: str = "") -> List[str]:
        prefix = self._dir_prefix(key)
        found: List[str] = []
        for page in self._list(prefix, delimiter=None):
            for content in page.get("Contents", []):
                full = content.get("Key") or ""
                if full and not full.endswith("/"):
                    found.append(self._strip_prefix(full))
        return sorted(found)

    def make_directory(self, key: str) -> None:
        self._client.put_object(Bucket=self.bucket, Key=self._dir_prefix(key), Body=b"")

    def delete_directory(self, key: str) -> bool:
        prefix = self._dir_prefix(key)
        if not prefix:
            return False
        objects = [
            {"Key": content["Key"]}
            for page in self._list(prefix, delimiter=None)
            for content in page.get("Contents", [])
        ]
        if not objects:
            return False
        # 批量删除（每批最多 1000 个）
        for i in range(0, len(objects), 1000):
            self._client.delete_objects(Bucket=self.bucket, Delete={"Objects": objects[i : i + 1000]})
        return True

    def put_stream(self, key: str, stream: BinaryIO) -> None:
        self._client.upload_fileobj(
            stream,
            self.bucket,
            self._join_key(key),
            ExtraArgs={"ContentType": _norm_mime(key)},
        )

    def read_stream(self, key: str, start: int = 0, end: Optional[int] = None) -> BinaryIO:
        kwargs = {"Bucket": self.bucket, "Key": self._join_key(key)}
        if start or end is not None:
            kwargs["Range"] = f"bytes={start}-{'' if end is None else end}"
        return self._client.get_object(**kwargs)["Body"]

    def read_bytes(self, key: str, max_bytes: int) -> bytes:
        if max_bytes <= 0:
            return b""
        body = self.read_stream(key, 0, max_bytes - 1)
        try:
            return body.read()
        finally:
            body.close()

    def copy(self, source: str, destination: str) -> None:
        self._client.copy_object(
            Bucket=self.bucket,
            Key=self._join_key(destination),
            CopySource={"Bucket": self.bucket, "Key": self._join_key(source)},
        )

    def delete(self, key: str) -> bool:
        if self._head(key) is None:
            return False
        self._client.delete_object(Bucket=self.bucket, Key=self._join_key(key))
        return True

    def size(self, key: str) -> int:
        head = self._head(key)
        if head is None:
            raise FileNotFoundError(key)
        return int(head.get("ContentLength") or 0)

    @staticmethod
    def _head_mime(key: str, head: Optional[Dict]) -> str:
        content_type = head.get("ContentType") if head else None
        if content_type and content_type != "binary/octet-stream":
            return content_type
        return _norm_mime(key)

    @staticmethod
    def _head_modified(head: Optional[Dict]) -> Optional[int]:
        if head is None or head.get("LastModified") is None:
            return None
        modified: datetime = head["LastModified"]
        return int(modified.astimezone(timezone.utc).timestamp())

    def mime_type(self, key: str) -> str:
        return self._head_mime(key, self._head(key))

    def last_modified(self, key: str) -> Optional[int]:
        return self._head_modified(self._head(key))

    def stat(self, key: str) -> FileStat:
        # 一次 HEAD 取全部元数据
        head = self._head(key)
        if head is None:
            raise FileNotFoundError(key)
        return FileStat(
            size=int(head.get("ContentLength") or 0),
            mime_type=self._head_mime(key, head),
            last_modified=self._head_modified(head),
        )

    def url(self, key: str) -> Optional[str]:
        base = super().url(key)
        if base:
            return base
        if self.config.endpoint_url:
            return f"{self.config.endpoint_url.rstrip('/')}/{self.bucket}/{self._join_key(key)}"
        return f"https://{self.bucket}.s3.{self.config.region or 'us-east-1'}.amazonaws.com/{self._join_key(key)}"

    def supports_temporary_urls(self) -> bool:
        return True

    def temporary_url(self, key: str, expires_minutes: int) -> str:
        expires_in = int(timedelta(minutes=max(expires_minutes, 1)).total_seconds())
        return self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": self._join_key(key), "ResponseContentDisposition": f'inline; filename="{base_name(key)}"'},
            ExpiresIn=expires_in,
        )


def build_disk(name: str, settings: Settings, *, client=None) -> StorageDisk:
    """按名称构造已配置的存储盘；未配置时抛 ``DiskNotConfigured``。"""
    config = settings.disks.get(name)
    if config is None:
        raise DiskNotConfigured(name)
    driver = (config.driver or "local").lower()
    if driver == "local":
        root = settings.resolve_local_root(config.root or f"storage/{name}")
        return LocalDisk(name, config, root)
    if driver == "s3":
        if not config.bucket:
            raise DiskNotConfigured(f"{name}: bucket is required for s3 disks")
        return S3Disk(name, config, client=client)
    logger.error("Unsupported disk driver %s for disk %s", driver, name)
    raise DiskNotConfigured(f"{name}: unsupported driver {driver}")
