"""存储模式适配器：直接以存储盘上的目录结构作为文件树。

- ``identifier`` 始终是盘内完整键（含配置的根前缀），树节点与面包屑返回同样的键；
- 所有路径都限制在配置的根目录内，出现 ``..`` 视为路径遍历并拒绝；
- 文件夹改名/移动是逐键复制再删除，任一键失败都会回滚并返回 ``PartialFailure``。
"""

from __future__ import annotations

from typing import Any, BinaryIO, Dict, Iterable, List, Optional, Tuple, Union

from app.packages.filemanager.adapters.base import PartialFailure, UploadedFile, validate_name
from app.packages.filemanager.adapters.items import StorageItem
from app.packages.filemanager.core.constants import MAX_TREE_DEPTH, MODE_STORAGE, ROOT_BREADCRUMB_NAME
from app.packages.filemanager.core.logger import logger
from app.packages.filemanager.crud.file_system_item import MSG_CYCLE, MSG_DUPLICATE_IN_DESTINATION, MSG_DUPLICATE_IN_FOLDER
from app.packages.filemanager.filetypes.registry import FileTypeRegistry
from app.packages.filemanager.services.file_security import FileSecurityService
from app.packages.filemanager.services.storage_backends import STORAGE_ERRORS, StorageDisk
from app.packages.filemanager.utils.path_utils import (
    base_name,
    is_within,
    join_key,
    normalize_key,
    parent_key,
    split_segments,
)

MSG_NOT_FOUND = "Item not found"
MSG_INVALID_PATH = "Invalid path"
MSG_PARENT_NOT_FOUND = "Parent folder not found"
MSG_TARGET_NOT_FOUND = "Target folder not found"
MSG_FOLDER_EXISTS = "A folder with this name already exists"
MSG_FILE_EXISTS = "A file with this name already exists in this folder"
MSG_SAME_FOLDER = "Item is already in this folder"
MSG_ROOT_PROTECTED = "The root folder cannot be modified"


class StorageAdapter:
    def __init__(
        self,
        disk: StorageDisk,
        *,
        root: str = "",
        show_hidden: bool = False,
        registry: Optional[FileTypeRegistry] = None,
        security: Optional[FileSecurityService] = None,
        max_upload_bytes: Optional[int] = None,
        url_expiration: int = 60,
        move_retries: int = 2,
    ):
        self.disk = disk
        self.root = normalize_key(root)
        self.show_hidden = show_hidden
        self.registry = registry
        self.security = security or FileSecurityService()
        self.max_upload_bytes = max_upload_bytes
        self.url_expiration = url_expiration
        self.move_retries = max(int(move_retries), 0)

    # ------------------------------------------------------------------
    # 路径处理
    # ------------------------------------------------------------------
    def normalize_path(self, path: Optional[str]) -> str:
        """把调用方传入的完整键规范化；空路径表示根目录，越过根目录时抛 ``ValueError``。"""
        try:
            key = normalize_key(path)
        except ValueError:
            logger.warning("Path traversal attempt blocked on disk %s: %r", self.disk.name, path)
            raise
        if not key:
            return self.root
        if not is_within(key, self.root):
            logger.warning("Path outside root %r blocked on disk %s: %r", self.root, self.disk.name, path)
            raise ValueError(f"Path is outside the configured root: {path!r}")
        return key

    def _is_hidden(self, key: str) -> bool:
        return not self.show_hidden and base_name(key).startswith(".")

    def _item(self, key: str, is_directory: bool) -> StorageItem:
        return StorageItem.from_disk(self.disk, key, is_directory=is_directory, registry=self.registry)

    def _file_item(self, key: str) -> Optional[StorageItem]:
        """列举与读取元数据之间文件可能已被删除，此时返回 ``None``。"""
        try:
            return self._item(key, False)
        except STORAGE_ERRORS as exc:
            logger.warning("Skipping %s on disk %s: %s", key, self.disk.name, exc)
            return None

    def _directory_exists(self, key: str) -> bool:
        if not key:
            return True
        return self.disk.is_directory(key)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------
    def get_items(self, path: Optional[str] = None) -> List[StorageItem]:
        try:
            key = self.normalize_path(path)
        except ValueError:
            return []
        folders = self.get_folders(path)
        files: List[StorageItem] = []
        for file_key in self.disk.files(key):
            if self._is_hidden(file_key):
                continue
            item = self._file_item(file_key)
            if item is not None:
                files.append(item)
        files.sort(key=lambda item: item.name.lower())
        return [*folders, *files]

    def get_folders(self, path: Optional[str] = None) -> List[StorageItem]:
        try:
            key = self.normalize_path(path)
        except ValueError:
            return []
        folders = [
            self._item(dir_key, True)
            for dir_key in self.disk.directories(key)
            if not self._is_hidden(dir_key)
        ]
        folders.sort(key=lambda item: item.name.lower())
        return folders

    def get_item(self, identifier: str) -> Optional[StorageItem]:
        try:
            key = self.normalize_path(identifier)
        except ValueError:
            return None
        if key == self.root or not self.disk.exists(key):
            return None
        if self.disk.is_directory(key):
            return self._item(key, True)
        return self._file_item(key)

    def get_folder_tree(self) -> List[Dict[str, Any]]:
        return self._build_tree(self.root, 0)

    def _build_tree(self, key: str, depth: int) -> List[Dict[str, Any]]:
        if depth >= MAX_TREE_DEPTH:
            logger.warning("Folder tree truncated at depth %s under %s", depth, key)
            return []
        nodes: List[Dict[str, Any]] = []
        for dir_key in self.disk.directories(key):
            if self._is_hidden(dir_key):
                continue
            nodes.append(
                {
                    "id": dir_key,
                    "name": base_name(dir_key),
                    "path": "/" + dir_key,
                    "depth": depth,
                    "file_count": sum(1 for f in self.disk.files(dir_key) if not self._is_hidden(f)),
                    "children": self._build_tree(dir_key, depth + 1),
                }
            )
        nodes.sort(key=lambda node: node["name"].lower())
        return nodes

    def get_breadcrumbs(self, path: Optional[str] = None) -> List[Dict[str, Any]]:
        crumbs: List[Dict[str, Any]] = [{"id": None, "name": ROOT_BREADCRUMB_NAME, "path": "/"}]
        try:
            key = self.normalize_path(path)
        except ValueError:
            return crumbs
        current = self.root
        # 根前缀本身对应 Root，只展开其下的层级
        for segment in split_segments(key[len(self.root) :]):
            current = join_key(current, segment)
            crumbs.append({"id": current, "name": segment, "path": "/" + current})
        return crumbs

    def get_file_count(self, path: Optional[str] = None) -> int:
        try:
            key = self.normalize_path(path)
        except ValueError:
            return 0
        return sum(1 for file_key in self.disk.all_files(key) if not self._is_hidden(file_key))

    # ------------------------------------------------------------------
    # 变更
    # ------------------------------------------------------------------
    def create_folder(self, name: str, parent_path: Optional[str] = None) -> Union[StorageItem, str]:
        error = validate_name(name)
        if error:
            return error
        try:
            parent = self.normalize_path(parent_path)
        except ValueError:
            return MSG_INVALID_PATH
        if not self._directory_exists(parent):
            return MSG_PARENT_NOT_FOUND
        target = join_key(parent, name.strip())
        if self.disk.exists(target):
            return MSG_FOLDER_EXISTS
        try:
            self.disk.make_directory(target)
        except STORAGE_ERRORS as exc:
            logger.error("Failed to create folder %s on disk %s: %s", target, self.disk.name, exc)
            return f"Failed to create folder: {exc}"
        logger.info("Folder created: disk=%s key=%s", self.disk.name, target)
        return self._item(target, True)

    def upload_file(self, file: UploadedFile, path: Optional[str] = None) -> Union[StorageItem, str]:
        check = self.security.validate_upload(file.filename)
        if not check["valid"]:
            return check["error"]
        error = validate_name(check["sanitized_name"])
        if error:
            return error
        if self.max_upload_bytes is not None and file.size is not None and file.size > self.max_upload_bytes:
            return "File exceeds the maximum upload size"
        try:
            parent = self.normalize_path(path)
        except ValueError:
            return MSG_INVALID_PATH
        if not self._directory_exists(parent):
            return MSG_PARENT_NOT_FOUND
        target = join_key(parent, check["sanitized_name"])
        if self.disk.exists(target):
            return MSG_FILE_EXISTS
        try:
            self.disk.put_stream(target, file.stream)
        except STORAGE_ERRORS as exc:
            logger.error("Failed to store upload %s on disk %s: %s", target, self.disk.name, exc)
            return f"Failed to upload file: {exc}"
        logger.info("File uploaded: disk=%s key=%s", self.disk.name, target)
        return self._item(target, False)

    def rename(self, identifier: str, new_name: str) -> Union[bool, str]:
        error = validate_name(new_name)
        if error:
            return error
        try:
            key = self.normalize_path(identifier)
        except ValueError:
            return MSG_INVALID_PATH
        if key == self.root:
            return MSG_ROOT_PROTECTED
        if not self.disk.exists(key):
            return MSG_NOT_FOUND
        target = join_key(parent_key(key), new_name.strip())
        if target == key:
            return True
        if self.disk.exists(target):
            return MSG_DUPLICATE_IN_FOLDER
        result = self._relocate(key, target, self.disk.is_directory(key))
        if result is True:
            logger.info("Item renamed: disk=%s %s -> %s", self.disk.name, key, target)
        return result

    def move(self, identifier: str, new_parent_path: Optional[str] = None) -> Union[bool, str]:
        try:
            key = self.normalize_path(identifier)
            destination = self.normalize_path(new_parent_path)
        except ValueError:
            return MSG_INVALID_PATH
        if key == self.root:
            return MSG_ROOT_PROTECTED
        if not self.disk.exists(key):
            return MSG_NOT_FOUND
        if not self._directory_exists(destination):
            return MSG_TARGET_NOT_FOUND
        if (parent_key(key) or "") == destination:
            return MSG_SAME_FOLDER
        is_directory = self.disk.is_directory(key)
        if is_directory and is_within(destination, key):
            return MSG_CYCLE
        target = join_key(destination, base_name(key))
        if self.disk.exists(target):
            return MSG_DUPLICATE_IN_DESTINATION
        result = self._relocate(key, target, is_directory)
        if result is True:
            logger.info("Item moved: disk=%s %s -> %s", self.disk.name, key, target)
        return result

    def delete(self, identifier: str) -> Union[bool, str]:
        try:
            key = self.normalize_path(identifier)
        except ValueError:
            return MSG_INVALID_PATH
        if key == self.root:
            return MSG_ROOT_PROTECTED
        if not self.disk.exists(key):
            return MSG_NOT_FOUND
        try:
            if self.disk.is_directory(key):
                self.disk.delete_directory(key)
            else:
                self.disk.delete(key)
        except STORAGE_ERRORS as exc:
            logger.error("Failed to delete %s from disk %s: %s", key, self.disk.name, exc)
            return PartialFailure(f"Failed to delete item: {exc}", [key])
        logger.info("Item deleted: disk=%s key=%s", self.disk.name, key)
        return True

    def delete_many(self, identifiers: Iterable[str]) -> int:
        return sum(1 for identifier in identifiers if self.delete(identifier) is True)

    # ------------------------------------------------------------------
    # 键改写
    # ------------------------------------------------------------------
    def _copy_with_retry(self, source: str, target: str) -> bool:
        attempts = self.move_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                self.disk.copy(source, target)
                return True
            except STORAGE_ERRORS as exc:
                logger.warning("Copy %s -> %s failed (attempt %s/%s): %s", source, target, attempt, attempts, exc)
        return False

    def _subdirectories(self, key: str) -> List[str]:
        collected: List[str] = []
        pending = [key]
        while pending:
            current = pending.pop()
            children = self.disk.directories(current)
            collected.extend(children)
            pending.extend(children)
        return collected

    def _relocate(self, source: str, target: str, is_directory: bool) -> Union[bool, str]:
        """把 ``source`` 下的所有键改写到 ``target``；只有全部成功才删除源。"""
        if not is_directory:
            if not self._copy_with_retry(source, target):
                logger.error("Failed to move %s to %s on disk %s", source, target, self.disk.name)
                return PartialFailure("Failed to move file", [source])
            try:
                self.disk.delete(source)
            except STORAGE_ERRORS as exc:
                logger.error("Copied %s but failed to remove the original: %s", source, exc)
                self._discard([target])
                return PartialFailure("Failed to remove the original file", [source])
            return True

        copied: List[str] = []
        failed: List[str] = []
        try:
            self.disk.make_directory(target)
            for directory in self._subdirectories(source):
                self.disk.make_directory(target + directory[len(source) :])
            files = self.disk.all_files(source)
        except STORAGE_ERRORS as exc:
            logger.error("Failed to prepare %s for moving %s: %s", target, source, exc)
            self._discard([], directory=target)
            return PartialFailure(f"Failed to move folder: {exc}", [source])

        for file_key in files:
            destination = target + file_key[len(source) :]
            if self._copy_with_retry(file_key, destination):
                copied.append(destination)
            else:
                failed.append(file_key)

        if failed:
            logger.error(
                "Folder move %s -> %s failed for %s key(s), rolled back: %s",
                source,
                target,
                len(failed),
                failed,
            )
            self._discard(copied, directory=target)
            return PartialFailure(f"Failed to move {len(failed)} item(s)", failed)

        try:
            self.disk.delete_directory(source)
        except STORAGE_ERRORS as exc:
            logger.error("Moved %s to %s but failed to remove the original folder: %s", source, target, exc)
            return PartialFailure("Failed to remove the original folder", [source])
        return True

    def _discard(self, keys: List[str], directory: Optional[str] = None) -> None:
        """回滚已复制的键；回滚失败只记录日志，源数据保持不变。"""
        for key in keys:
            try:
                self.disk.delete(key)
            except STORAGE_ERRORS as exc:
                logger.error("Rollback failed for %s on disk %s: %s", key, self.disk.name, exc)
        if directory:
            try:
                self.disk.delete_directory(directory)
            except STORAGE_ERRORS as exc:
                logger.error("Rollback failed for folder %s on disk %s: %s", directory, self.disk.name, exc)

    # ------------------------------------------------------------------
    # 读取
    # ------------------------------------------------------------------
    def _file_key(self, identifier: str) -> Optional[str]:
        try:
            key = self.normalize_path(identifier)
        except ValueError:
            return None
        if key == self.root or not self.disk.exists(key) or self.disk.is_directory(key):
            return None
        return key

    def exists(self, identifier: str) -> bool:
        try:
            key = self.normalize_path(identifier)
        except ValueError:
            return False
        return key != self.root and self.disk.exists(key)

    def locate(self, identifier: str) -> Optional[Tuple[str, str]]:
        key = self._file_key(identifier)
        return (self.disk.name, key) if key else None

    def get_url(self, identifier: str) -> Optional[str]:
        key = self._file_key(identifier)
        if key is None:
            return None
        if self.disk.supports_temporary_urls():
            try:
                return self.disk.temporary_url(key, self.url_expiration)
            except STORAGE_ERRORS as exc:
                logger.warning("Temporary URL failed for %s, falling back to public URL: %s", key, exc)
        return self.disk.url(key)

    def get_contents(self, identifier: str, max_size: int = 1024 * 1024) -> Optional[bytes]:
        key = self._file_key(identifier)
        if key is None:
            return None
        try:
            return self.disk.read_bytes(key, max_size)
        except STORAGE_ERRORS as exc:
            logger.warning("Failed to read %s from disk %s: %s", key, self.disk.name, exc)
            return None

    def get_stream(self, identifier: str) -> Optional[BinaryIO]:
        key = self._file_key(identifier)
        if key is None:
            return None
        try:
            return self.disk.read_stream(key)
        except STORAGE_ERRORS as exc:
            logger.warning("Failed to open %s on disk %s: %s", key, self.disk.name, exc)
            return None

    def get_size(self, identifier: str) -> Optional[int]:
        key = self._file_key(identifier)
        if key is None:
            return None
        try:
            return self.disk.size(key)
        except STORAGE_ERRORS as exc:
            logger.warning("Failed to stat %s on disk %s: %s", key, self.disk.name, exc)
            return None

    def get_mode_name(self) -> str:
        return MODE_STORAGE
