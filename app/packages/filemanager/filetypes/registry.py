"""文件类型注册中心：按 MIME 类型、扩展名或文件名查找文件类型定义。

初始化顺序：先注册内置类型，再注册自定义类型，最后设置兜底类型。
注册完成后只读，可在并发请求间共享。
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from app.packages.filemanager.filetypes.base import FileTypeDefinition
from app.packages.filemanager.filetypes.builtin import BUILTIN_TYPES, OTHER
from app.packages.filemanager.utils.path_utils import split_extension


class FileTypeRegistry:
    def __init__(self) -> None:
        # dict 保持插入顺序；同优先级时按注册先后决定命中结果
        self._types: Dict[str, FileTypeDefinition] = {}
        self._fallback: Optional[FileTypeDefinition] = None

    def register(self, definition: FileTypeDefinition) -> "FileTypeRegistry":
        """按标识注册或替换；替换时保留原有位置，重复注册结果不变。"""
        self._types[definition.identifier] = definition
        return self

    def register_many(self, definitions: Iterable[FileTypeDefinition]) -> "FileTypeRegistry":
        for definition in definitions:
            self.register(definition)
        return self

    def unregister(self, identifier: str) -> "FileTypeRegistry":
        self._types.pop(identifier, None)
        return self

    def has(self, identifier: str) -> bool:
        return identifier in self._types

    def get(self, identifier: str) -> Optional[FileTypeDefinition]:
        return self._types.get(identifier)

    def all(self) -> List[FileTypeDefinition]:
        return list(self._types.values())

    def sorted_by_priority(self) -> List[FileTypeDefinition]:
        # sorted 是稳定排序，同优先级保持注册顺序
        return sorted(self._types.values(), key=lambda item: -item.priority)

    def from_mime_type(self, mime_type: Optional[str]) -> FileTypeDefinition:
        for definition in self.sorted_by_priority():
            if definition.matches_mime_type(mime_type or ""):
                return definition
        return self.get_fallback()

    def from_extension(self, extension: Optional[str]) -> FileTypeDefinition:
        ext = (extension or "").lower().lstrip(".")
        for definition in self.sorted_by_priority():
            if definition.matches_extension(ext):
                return definition
        return self.get_fallback()

    def from_filename(self, filename: str) -> FileTypeDefinition:
        _, ext = split_extension(filename or "")
        return self.from_extension(ext)

    def set_fallback(self, definition: FileTypeDefinition) -> "FileTypeRegistry":
        self._fallback = definition
        return self

    def get_fallback(self) -> FileTypeDefinition:
        if self._fallback is None:
            self._fallback = OTHER
        return self._fallback

    def resolve(self, identifier: str) -> FileTypeDefinition:
        return self.get(identifier) or self.get_fallback()

    def all_supported_mime_types(self) -> List[str]:
        seen: Dict[str, None] = {}
        for definition in self._types.values():
            for mime in definition.mime_types:
                seen.setdefault(mime, None)
        return list(seen)

    def all_supported_extensions(self) -> List[str]:
        seen: Dict[str, None] = {}
        for definition in self._types.values():
            for ext in definition.extensions:
                seen.setdefault(ext, None)
        return list(seen)

    def previewable_types(self) -> List[FileTypeDefinition]:
        return [definition for definition in self._types.values() if definition.can_preview]


def build_default_registry(extra: Iterable[FileTypeDefinition] = ()) -> FileTypeRegistry:
    """构造带内置类型的注册中心，``extra`` 中的自定义类型在内置类型之后注册。"""
    registry = FileTypeRegistry()
    registry.register_many(BUILTIN_TYPES)
    registry.register_many(extra)
    registry.set_fallback(OTHER)
    return registry
