"""条目表示：把数据库节点与存储路径统一成同一组只读属性。"""

from __future__ import annotations

import mimetypes
from functools import cached_property
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.packages.filemanager.core.enums import FileCategoryEnum
from app.packages.filemanager.crud.file_system_item import CRUDFileSystemItem
from app.packages.filemanager.filetypes.registry import FileTypeRegistry
from app.packages.filemanager.models.file_system_item import FileSystemItem
from app.packages.filemanager.services.storage_backends import StorageDisk
from app.packages.filemanager.utils.formatting import format_duration, format_size
from app.packages.filemanager.utils.path_utils import base_name, parent_key, split_extension, split_segments

VIDEO_EXTENSIONS = frozenset({"mp4", "webm", "mov", "avi", "mkv", "flv", "wmv", "m4v", "ogv"})
IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "svg", "bmp", "ico", "tiff", "tif"})
AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "ogg", "flac", "aac", "m4a", "wma", "opus"})
DOCUMENT_EXTENSIONS = frozenset(
    {
        "pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx",
        "odt", "ods", "odp", "txt", "rtf", "csv",
        "md", "json", "xml", "yml", "yaml", "html", "css", "js",
    }
)


def _extension_of(name: str) -> Optional[str]:
    _, ext = split_extension(name)
    return ext or None


def serialize_item(item: Any, registry: Optional[FileTypeRegistry]) -> Dict[str, Any]:
    """两种条目共用的序列化，附带文件类型注册中心给出的类别与预览能力。"""
    file_type = None
    can_preview = False
    if item.is_file and registry is not None:
        definition = registry.from_mime_type(item.mime_type) if item.mime_type else None
        if definition is None or definition is registry.get_fallback():
            definition = registry.from_filename(item.name)
        file_type = definition.identifier
        can_preview = definition.can_preview
    return {
        "identifier": item.identifier,
        "name": item.name,
        "path": item.path,
        "parent_path": item.parent_path,
        "is_folder": item.is_folder,
        "is_file": item.is_file,
        "size": item.size,
        "formatted_size": format_size(item.size),
        "mime_type": item.mime_type,
        "extension": item.extension,
        "last_modified": item.last_modified,
        "thumbnail": item.thumbnail,
        "duration": item.duration,
        "formatted_duration": format_duration(item.duration),
        "is_video": item.is_video,
        "is_image": item.is_image,
        "is_audio": item.is_audio,
        "is_document": item.is_document,
        "depth": item.depth,
        "file_type": file_type,
        "can_preview": can_preview,
    }


class DatabaseItem:
    """数据库节点的只读视图；路径与深度沿父链按需计算并缓存。"""

    def __init__(
        self,
        model: FileSystemItem,
        *,
        db: Session,
        crud: CRUDFileSystemItem,
        registry: Optional[FileTypeRegistry] = None,
    ):
        self.model = model
        self._db = db
        self._crud = crud
        self._registry = registry

    @property
    def id(self) -> int:
        return self.model.id

    @property
    def identifier(self) -> str:
        return str(self.model.id)

    @property
    def name(self) -> str:
        return self.model.name

    @cached_property
    def _ancestors(self) -> list:
        return self._crud.ancestors(self._db, self.model)

    @property
    def path(self) -> str:
        names = [ancestor.name for ancestor in self._ancestors]
        return "/" + "/".join([*names, self.model.name])

    @property
    def parent_path(self) -> Optional[str]:
        if not self._ancestors:
            return None
        return "/" + "/".join(ancestor.name for ancestor in self._ancestors)

    @property
    def depth(self) -> int:
        return len(self._ancestors)

    @property
    def is_folder(self) -> bool:
        return self.model.is_folder()

    @property
    def is_file(self) -> bool:
        return self.model.is_file()

    @property
    def size(self) -> Optional[int]:
        return self.model.size if self.is_file else None

    @property
    def mime_type(self) -> Optional[str]:
        if self.is_folder:
            return None
        mime, _ = mimetypes.guess_type(self.model.name)
        return mime

    @property
    def extension(self) -> Optional[str]:
        return None if self.is_folder else _extension_of(self.model.name)

    @property
    def last_modified(self) -> Optional[int]:
        if self.model.update_time is None:
            return None
        return int(self.model.update_time.timestamp())

    @property
    def thumbnail(self) -> Optional[str]:
        return self.model.thumbnail

    @property
    def duration(self) -> Optional[int]:
        return self.model.duration

    @property
    def storage_path(self) -> Optional[str]:
        return self.model.storage_path

    def _is_category(self, category: FileCategoryEnum) -> bool:
        return self.is_file and self.model.file_type == category.value

    @property
    def is_video(self) -> bool:
        return self._is_category(FileCategoryEnum.VIDEO)

    @property
    def is_image(self) -> bool:
        return self._is_category(FileCategoryEnum.IMAGE)

    @property
    def is_audio(self) -> bool:
        return self._is_category(FileCategoryEnum.AUDIO)

    @property
    def is_document(self) -> bool:
        return self._is_category(FileCategoryEnum.DOCUMENT)

    def to_dict(self) -> Dict[str, Any]:
        data = serialize_item(self, self._registry)
        data["id"] = self.model.id
        data["parent_id"] = self.model.parent_id
        return data


class StorageItem:
    """存储路径的只读视图；``identifier`` 是盘内完整键。"""

    def __init__(
        self,
        key: str,
        *,
        is_directory: bool,
        disk_name: str,
        size: Optional[int] = None,
        mime_type: Optional[str] = None,
        last_modified: Optional[int] = None,
        registry: Optional[FileTypeRegistry] = None,
    ):
        self.key = key
        self.is_directory = is_directory
        self.disk_name = disk_name
        self._size = size
        self._mime_type = mime_type
        self.last_modified = last_modified
        self._registry = registry

    @classmethod
    def from_disk(
        cls,
        disk: StorageDisk,
        key: str,
        *,
        is_directory: bool,
        registry: Optional[FileTypeRegistry] = None,
    ) -> "StorageItem":
        if is_directory:
            return cls(key, is_directory=True, disk_name=disk.name, registry=registry)
        info = disk.stat(key)
        return cls(
            key,
            is_directory=False,
            disk_name=disk.name,
            size=info.size,
            mime_type=info.mime_type,
            last_modified=info.last_modified,
            registry=registry,
        )

    @property
    def identifier(self) -> str:
        return self.key

    @property
    def name(self) -> str:
        return base_name(self.key) or "/"

    @property
    def path(self) -> str:
        return "/" + self.key.lstrip("/")

    @property
    def parent_path(self) -> Optional[str]:
        parent = parent_key(self.key)
        return None if parent is None else "/" + parent

    @property
    def depth(self) -> int:
        return len(split_segments(self.key))

    @property
    def is_folder(self) -> bool:
        return self.is_directory

    @property
    def is_file(self) -> bool:
        return not self.is_directory

    @property
    def size(self) -> Optional[int]:
        return self._size

    @property
    def mime_type(self) -> Optional[str]:
        return self._mime_type

    @property
    def extension(self) -> Optional[str]:
        return None if self.is_directory else _extension_of(self.name)

    @property
    def thumbnail(self) -> Optional[str]:
        return None

    @property
    def duration(self) -> Optional[int]:
        return None

    def _matches(self, mime_prefix: str, extensions: frozenset) -> bool:
        if self.is_directory:
            return False
        if self._mime_type and self._mime_type.startswith(mime_prefix):
            return True
        return (self.extension or "").lower() in extensions

    @property
    def is_video(self) -> bool:
        return self._matches("video/", VIDEO_EXTENSIONS)

    @property
    def is_image(self) -> bool:
        return self._matches("image/", IMAGE_EXTENSIONS)

    @property
    def is_audio(self) -> bool:
        return self._matches("audio/", AUDIO_EXTENSIONS)

    @property
    def is_document(self) -> bool:
        return self.is_file and (self.extension or "").lower() in DOCUMENT_EXTENSIONS

    def to_dict(self) -> Dict[str, Any]:
        return serialize_item(self, self._registry)
