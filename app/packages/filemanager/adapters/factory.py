"""适配器工厂：唯一按运行模式组装具体适配器的地方。"""

from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.packages.filemanager.adapters.base import FileManagerAdapter
from app.packages.filemanager.adapters.database import DatabaseAdapter
from app.packages.filemanager.adapters.storage import StorageAdapter
from app.packages.filemanager.core.config import Settings
from app.packages.filemanager.core.constants import MODE_DATABASE, MODE_STORAGE, SUPPORTED_MODES
from app.packages.filemanager.filetypes.registry import FileTypeRegistry
from app.packages.filemanager.services.file_security import FileSecurityService
from app.packages.filemanager.services.storage_backends import StorageDisk, build_disk


class AdapterFactory:
    def __init__(
        self,
        settings: Settings,
        *,
        registry: Optional[FileTypeRegistry] = None,
        security: Optional[FileSecurityService] = None,
        disk_resolver: Optional[Callable[[str], StorageDisk]] = None,
    ):
        self.settings = settings
        self.registry = registry
        self.security = security or FileSecurityService.from_settings(settings)
        self._disk_resolver = disk_resolver or (lambda name: build_disk(name, settings))

    def get_mode(self, mode: Optional[str] = None) -> str:
        value = (mode or self.settings.filemanager_mode or "").strip().lower()
        if value not in SUPPORTED_MODES:
            raise ValueError(f"Unsupported file manager mode: {value!r}")
        return value

    @property
    def max_upload_bytes(self) -> int:
        return self.settings.max_upload_size_kb * 1024

    def make(self, db: Optional[Session] = None, mode: Optional[str] = None) -> FileManagerAdapter:
        if self.get_mode(mode) == MODE_STORAGE:
            return self.make_storage()
        if db is None:
            raise ValueError("A database session is required in database mode")
        return self.make_database(db)

    def make_database(self, db: Session) -> DatabaseAdapter:
        return DatabaseAdapter(
            db,
            disk=self._disk_resolver(self.settings.upload_disk),
            directory=self.settings.upload_directory,
            registry=self.registry,
            security=self.security,
            max_upload_bytes=self.max_upload_bytes,
            url_expiration=self.settings.url_expiration,
        )

    def make_storage(self) -> StorageAdapter:
        return StorageAdapter(
            self._disk_resolver(self.settings.storage_disk),
            root=self.settings.storage_root,
            show_hidden=self.settings.show_hidden,
            registry=self.registry,
            security=self.security,
            max_upload_bytes=self.max_upload_bytes,
            url_expiration=self.settings.url_expiration,
            move_retries=self.settings.move_retries,
        )


__all__ = ["AdapterFactory", "MODE_DATABASE", "MODE_STORAGE"]
