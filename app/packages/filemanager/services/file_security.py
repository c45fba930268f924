"""上传安全检查：拦截危险扩展名、双扩展名与可疑文件名，并清洗文件名。"""

from __future__ import annotations

import re
import time
from typing import List, Optional, TypedDict

from app.packages.filemanager.core.config import Settings
from app.packages.filemanager.core.logger import logger
from app.packages.filemanager.utils.path_utils import split_extension

_UNSAFE_CHARS = re.compile(r"[^\w\s\-.]", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")
_UNDERSCORES = re.compile(r"_+")


class UploadValidation(TypedDict):
    valid: bool
    error: Optional[str]
    sanitized_name: Optional[str]


class FileSecurityService:
    def __init__(
        self,
        *,
        blocked_extensions: Optional[List[str]] = None,
        blocked_patterns: Optional[List[str]] = None,
        max_filename_length: int = 255,
        sanitize: bool = True,
    ):
        self.blocked_extensions = {ext.lower().lstrip(".") for ext in (blocked_extensions or [])}
        self.blocked_patterns = [re.compile(pattern) for pattern in (blocked_patterns or [])]
        self.max_filename_length = max_filename_length
        self.sanitize = sanitize

    @classmethod
    def from_settings(cls, settings: Settings) -> "FileSecurityService":
        return cls(
            blocked_extensions=settings.blocked_extensions,
            blocked_patterns=settings.blocked_filename_patterns,
            max_filename_length=settings.max_filename_length,
            sanitize=settings.sanitize_filenames,
        )

    def validate_upload(self, filename: str) -> UploadValidation:
        original = filename or ""
        _, extension = split_extension(original)
        extension = extension.lower()

        if self.is_blocked_extension(extension):
            logger.warning("Blocked upload with dangerous extension: %s", original)
            return {
                "valid": False,
                "error": f"File type '.{extension}' is not allowed for security reasons.",
                "sanitized_name": None,
            }

        if self.has_double_extension(original):
            logger.warning("Blocked upload with double extension: %s", original)
            return {
                "valid": False,
                "error": "Files with multiple extensions are not allowed.",
                "sanitized_name": None,
            }

        for pattern in self.blocked_patterns:
            if pattern.search(original):
                logger.warning("Blocked upload matching pattern %s: %s", pattern.pattern, original)
                return {
                    "valid": False,
                    "error": "Filename contains invalid characters or patterns.",
                    "sanitized_name": None,
                }

        sanitized = self.sanitize_filename(original)
        if len(sanitized) > self.max_filename_length:
            sanitized = self.truncate_filename(sanitized, self.max_filename_length)
        return {"valid": True, "error": None, "sanitized_name": sanitized}

    def is_blocked_extension(self, extension: str) -> bool:
        return (extension or "").lower().lstrip(".") in self.blocked_extensions

    def has_double_extension(self, filename: str) -> bool:
        """``shell.php.jpg`` 这类中间段为危险扩展名的文件名。"""
        parts = (filename or "").split(".")
        if len(parts) <= 2:
            return False
        return any(part.lower() in self.blocked_extensions for part in parts[1:-1])

    def sanitize_filename(self, filename: str) -> str:
        if not self.sanitize:
            return filename
        name, extension = split_extension(filename or "")
        name = _UNSAFE_CHARS.sub("", name)
        name = _WHITESPACE.sub("_", name)
        name = _UNDERSCORES.sub("_", name)
        name = name.strip("_.-")
        if not name:
            name = f"file_{int(time.time())}"
        extension = _UNSAFE_CHARS.sub("", extension)
        return f"{name}.{extension}" if extension else name

    @staticmethod
    def truncate_filename(filename: str, max_length: int) -> str:
        name, extension = split_extension(filename)
        extension_length = len(extension) + 1 if extension else 0
        name = name[: max(max_length - extension_length, 1)]
        return f"{name}.{extension}" if extension else name
