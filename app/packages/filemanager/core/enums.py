"""枚举定义：约束文件类别的可选值。"""

from enum import Enum
from typing import Optional


class FileCategoryEnum(str, Enum):
    """数据库模式下文件节点的类别。"""

    VIDEO = "video"
    IMAGE = "image"
    DOCUMENT = "document"
    AUDIO = "audio"
    OTHER = "other"

    @classmethod
    def from_mime_type(cls, mime_type: Optional[str]) -> "FileCategoryEnum":
        """按 MIME 前缀归类，文档类使用固定清单。"""
        mime = (mime_type or "").lower()
        if mime.startswith("video/"):
            return cls.VIDEO
        if mime.startswith("image/"):
            return cls.IMAGE
        if mime.startswith("audio/"):
            return cls.AUDIO
        if mime in DOCUMENT_MIME_TYPES:
            return cls.DOCUMENT
        return cls.OTHER


DOCUMENT_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "text/plain",
    }
)
