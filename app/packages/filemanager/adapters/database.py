"""数据库模式适配器：层级保存在 file_system_items 表中，文件内容存放在上传盘。"""

from __future__ import annotations

import mimetypes
import uuid
from typing import Any, BinaryIO, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.packages.filemanager.adapters.base import UploadedFile, validate_name
from app.packages.filemanager.adapters.items import DatabaseItem
from app.packages.filemanager.core.constants import ITEM_TYPE_FILE, ITEM_TYPE_FOLDER, MODE_DATABASE
from app.packages.filemanager.core.enums import FileCategoryEnum
from app.packages.filemanager.core.logger import logger
from app.packages.filemanager.crud.file_system_item import CRUDFileSystemItem, file_system_item_crud
from app.packages.filemanager.filetypes.registry import FileTypeRegistry
from app.packages.filemanager.models.file_system_item import FileSystemItem
from app.packages.filemanager.services.file_security import FileSecurityService
from app.packages.filemanager.services.storage_backends import STORAGE_ERRORS, StorageDisk
from app.packages.filemanager.utils.path_utils import join_key, split_extension

MSG_NOT_FOUND = "Item not found"
MSG_PARENT_NOT_FOUND = "Parent folder not found"
MSG_TARGET_NOT_FOUND = "Target folder not found"
MSG_FOLDER_EXISTS = "A folder with this name already exists"
MSG_FILE_EXISTS = "A file with this name already exists in this folder"
MSG_SAME_FOLDER = "Item is already in this folder"


class DatabaseAdapter:
    def __init__(
        self,
        db: Session,
        *,
        disk: StorageDisk,
        directory: str = "uploads",
        registry: Optional[FileTypeRegistry] = None,
        security: Optional[FileSecurityService] = None,
        max_upload_bytes: Optional[int] = None,
        url_expiration: int = 60,
        crud: CRUDFileSystemItem = file_system_item_crud,
    ):
        self.db = db
        self.disk = disk
        self.directory = directory
        self.registry = registry
        self.security = security or FileSecurityService()
        self.max_upload_bytes = max_upload_bytes
        self.url_expiration = url_expiration
        self.crud = crud

    # ------------------------------------------------------------------
    # 内部工具
    # ------------------------------------------------------------------
    def _wrap(self, model: FileSystemItem) -> DatabaseItem:
        return DatabaseItem(model, db=self.db, crud=self.crud, registry=self.registry)

    def _find(self, identifier: Optional[str]) -> Optional[FileSystemItem]:
        value = str(identifier or "").strip()
        if not value.isdigit():
            return None
        return self.crud.get(self.db, int(value))

    def _resolve_folder(self, path: Optional[str]) -> Tuple[bool, Optional[FileSystemItem]]:
        """把文件夹路径或 ID 解析为节点；返回 ``(是否找到, 节点)``，根目录为 ``(True, None)``。"""
        value = (path or "").strip()
        if value in ("", "/"):
            return True, None
        if value.isdigit():
            folder = self.crud.get(self.db, int(value))
        else:
            folder = self.crud.resolve_path(self.db, value)
        if folder is None or not folder.is_folder():
            return False, None
        return True, folder

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------
    def get_items(self, path: Optional[str] = None) -> List[DatabaseItem]:
        found, folder = self._resolve_folder(path)
        if not found:
            return []
        models = self.crud.get_items_in_folder(self.db, folder.id if folder else None)
        return [self._wrap(model) for model in models]

    def get_folders(self, path: Optional[str] = None) -> List[DatabaseItem]:
        found, folder = self._resolve_folder(path)
        if not found:
            return []
        return [self._wrap(model) for model in self.crud.get_folders(self.db, folder.id if folder else None)]

    def get_item(self, identifier: str) -> Optional[DatabaseItem]:
        model = self._find(identifier)
        return self._wrap(model) if model else None

    def get_folder_tree(self) -> List[Dict[str, Any]]:
        return self.crud.get_folder_tree(self.db)

    def get_breadcrumbs(self, path: Optional[str] = None) -> List[Dict[str, Any]]:
        _, folder = self._resolve_folder(path)
        return self.crud.breadcrumbs(self.db, folder)

    def get_file_count(self, path: Optional[str] = None) -> int:
        """子树文件总数，根目录统计全部文件。"""
        found, folder = self._resolve_folder(path)
        if not found:
            return 0
        return self.crud.file_count_recursive(self.db, folder.id if folder else None)

    # ------------------------------------------------------------------
    # 变更
    # ------------------------------------------------------------------
    def create_folder(self, name: str, parent_path: Optional[str] = None) -> Union[DatabaseItem, str]:
        error = validate_name(name)
        if error:
            return error
        name = name.strip()
        found, parent = self._resolve_folder(parent_path)
        if not found:
            return MSG_PARENT_NOT_FOUND
        parent_id = parent.id if parent else None
        if self.crud.find_child(self.db, parent_id, name) is not None:
            return MSG_FOLDER_EXISTS
        try:
            folder = self.crud.create(self.db, {"name": name, "type": ITEM_TYPE_FOLDER, "parent_id": parent_id})
        except IntegrityError:
            self.db.rollback()
            return MSG_FOLDER_EXISTS
        logger.info("Folder created: id=%s name=%s parent=%s", folder.id, name, parent_id)
        return self._wrap(folder)

    def upload_file(self, file: UploadedFile, path: Optional[str] = None) -> Union[DatabaseItem, str]:
        check = self.security.validate_upload(file.filename)
        if not check["valid"]:
            return check["error"]
        name = check["sanitized_name"]
        error = validate_name(name)
        if error:
            return error
        if self.max_upload_bytes is not None and file.size is not None and file.size > self.max_upload_bytes:
            return "File exceeds the maximum upload size"

        found, parent = self._resolve_folder(path)
        if not found:
            return MSG_PARENT_NOT_FOUND
        parent_id = parent.id if parent else None
        if self.crud.find_child(self.db, parent_id, name) is not None:
            return MSG_FILE_EXISTS

        _, extension = split_extension(name)
        blob_name = f"{uuid.uuid4().hex}.{extension.lower()}" if extension else uuid.uuid4().hex
        storage_path = join_key(self.directory, blob_name)
        try:
            self.disk.put_stream(storage_path, file.stream)
            size = file.size if file.size is not None else self.disk.size(storage_path)
        except STORAGE_ERRORS as exc:
            logger.error("Failed to store upload %s on disk %s: %s", name, self.disk.name, exc)
            return f"Failed to upload file: {exc}"

        mime_type = mimetypes.guess_type(name)[0] or file.content_type
        try:
            record = self.crud.create(
                self.db,
                {
                    "name": name,
                    "type": ITEM_TYPE_FILE,
                    "file_type": FileCategoryEnum.from_mime_type(mime_type).value,
                    "parent_id": parent_id,
                    "size": size,
                    "storage_path": storage_path,
                },
            )
        except IntegrityError:
            self.db.rollback()
            self._remove_blob(storage_path)
            return MSG_FILE_EXISTS
        except Exception:
            self.db.rollback()
            self._remove_blob(storage_path)
            raise
        logger.info("File uploaded: id=%s name=%s size=%s parent=%s", record.id, name, size, parent_id)
        return self._wrap(record)

    def rename(self, identifier: str, new_name: str) -> Union[bool, str]:
        error = validate_name(new_name)
        if error:
            return error
        model = self._find(identifier)
        if model is None:
            return MSG_NOT_FOUND
        locked = self.crud.get_for_update(self.db, model.id)
        if locked is None:
            return MSG_NOT_FOUND
        old_name = locked.name
        result = self.crud.rename(self.db, locked, new_name.strip())
        if result is True:
            logger.info("Item renamed: id=%s %s -> %s", locked.id, old_name, new_name.strip())
        return result

    def move(self, identifier: str, new_parent_path: Optional[str] = None) -> Union[bool, str]:
        model = self._find(identifier)
        if model is None:
            return MSG_NOT_FOUND
        found, target = self._resolve_folder(new_parent_path)
        if not found:
            return MSG_TARGET_NOT_FOUND
        target_id = target.id if target else None
        if model.parent_id == target_id:
            return MSG_SAME_FOLDER

        locked = self.crud.get_for_update(self.db, model.id)
        if locked is None:
            return MSG_NOT_FOUND
        if target is not None:
            target = self.crud.get_for_update(self.db, target.id)
            if target is None:
                return MSG_TARGET_NOT_FOUND
        result = self.crud.move_to(self.db, locked, target)
        if result is True:
            logger.info("Item moved: id=%s -> parent=%s", locked.id, target_id)
        return result

    def delete(self, identifier: str) -> Union[bool, str]:
        """删除节点；文件夹连同整个子树级联删除，之后清理被删文件的存储内容。"""
        model = self._find(identifier)
        if model is None:
            return MSG_NOT_FOUND
        locked = self.crud.get_for_update(self.db, model.id)
        if locked is None:
            return MSG_NOT_FOUND
        blobs = self.crud.subtree_storage_paths(self.db, locked)
        item_id, item_type = locked.id, locked.type
        self.crud.hard_delete(self.db, locked)
        # 级联删除由数据库完成，会话中残留的子节点对象需要失效
        self.db.expire_all()
        for storage_path in blobs:
            self._remove_blob(storage_path)
        logger.info("Item deleted: id=%s type=%s blobs=%s", item_id, item_type, len(blobs))
        return True

    def delete_many(self, identifiers: Iterable[str]) -> int:
        return sum(1 for identifier in identifiers if self.delete(identifier) is True)

    def _remove_blob(self, storage_path: str) -> None:
        try:
            self.disk.delete(storage_path)
        except STORAGE_ERRORS as exc:
            # 记录已删除，存储清理失败只记日志
            logger.warning("Failed to delete blob %s from disk %s: %s", storage_path, self.disk.name, exc)

    # ------------------------------------------------------------------
    # 读取
    # ------------------------------------------------------------------
    def exists(self, identifier: str) -> bool:
        return self._find(identifier) is not None

    def locate(self, identifier: str) -> Optional[Tuple[str, str]]:
        model = self._find(identifier)
        if model is None or not model.storage_path:
            return None
        return self.disk.name, model.storage_path

    def get_url(self, identifier: str) -> Optional[str]:
        model = self._find(identifier)
        if model is None or not model.storage_path:
            return None
        if self.disk.supports_temporary_urls():
            try:
                return self.disk.temporary_url(model.storage_path, self.url_expiration)
            except STORAGE_ERRORS as exc:
                logger.warning("Temporary URL failed for %s, falling back to public URL: %s", model.storage_path, exc)
        return self.disk.url(model.storage_path)

    def get_contents(self, identifier: str, max_size: int = 1024 * 1024) -> Optional[bytes]:
        model = self._find(identifier)
        if model is None or not model.storage_path:
            return None
        try:
            return self.disk.read_bytes(model.storage_path, max_size)
        except STORAGE_ERRORS as exc:
            logger.warning("Failed to read %s from disk %s: %s", model.storage_path, self.disk.name, exc)
            return None

    def get_stream(self, identifier: str) -> Optional[BinaryIO]:
        model = self._find(identifier)
        if model is None or not model.storage_path:
            return None
        try:
            return self.disk.read_stream(model.storage_path)
        except STORAGE_ERRORS as exc:
            logger.warning("Failed to open %s on disk %s: %s", model.storage_path, self.disk.name, exc)
            return None

    def get_size(self, identifier: str) -> Optional[int]:
        model = self._find(identifier)
        if model is None:
            return None
        if model.size is not None:
            return int(model.size)
        if model.storage_path:
            try:
                return self.disk.size(model.storage_path)
            except STORAGE_ERRORS as exc:
                logger.warning("Failed to stat %s on disk %s: %s", model.storage_path, self.disk.name, exc)
                return None
        return None

    def get_mode_name(self) -> str:
        return MODE_DATABASE
