"""文件类型定义：描述一种文件类别的匹配规则与预览元数据。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple


@dataclass(frozen=True)
class FileTypeDefinition:
    """一种文件类别。

    - ``mime_types`` 支持精确匹配与 ``video/*`` 形式的尾部通配；
    - ``extensions`` 不带点，匹配时忽略大小写；
    - ``priority`` 越大越先参与匹配；
    - ``can_preview`` 未显式给出时，以是否配置了 ``viewer`` 为准。
    """

    identifier: str
    label: Optional[str] = None
    icon: str = "document"
    icon_color: str = "text-gray-400"
    color: str = "gray"
    mime_types: Tuple[str, ...] = ()
    extensions: Tuple[str, ...] = ()
    viewer: Optional[str] = None
    preview: Optional[bool] = None
    priority: int = 0
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def display_label(self) -> str:
        if self.label:
            return self.label
        return self.identifier.replace("-", " ").replace("_", " ").capitalize()

    @property
    def can_preview(self) -> bool:
        if self.preview is not None:
            return self.preview
        return self.viewer is not None

    def matches_mime_type(self, mime_type: str) -> bool:
        mime = (mime_type or "").lower()
        if not mime:
            return False
        for supported in self.mime_types:
            supported = supported.lower()
            if supported == mime:
                return True
            if supported.endswith("/*") and mime.startswith(supported[:-1]):
                return True
        return False

    def matches_extension(self, extension: str) -> bool:
        ext = (extension or "").lower().lstrip(".")
        if not ext:
            return False
        return ext in {item.lower() for item in self.extensions}

    def to_dict(self) -> dict:
        return {
            "identifier": self.identifier,
            "label": self.display_label,
            "icon": self.icon,
            "icon_color": self.icon_color,
            "color": self.color,
            "can_preview": self.can_preview,
            "viewer": self.viewer,
            "priority": self.priority,
            "metadata": dict(self.metadata),
        }
