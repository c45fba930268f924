"""适配器契约：数据库模式与存储模式共享的方法集合。

两种实现互不继承，只满足同一组 ``Protocol``；由工厂按配置选择。
- ``identifier`` 对调用方是不透明字符串：数据库模式下是数字 ID，存储模式下是存储路径；
- 变更操作返回 ``True``（或新建的条目），业务冲突返回提示字符串；
- 多键改写中途失败返回 ``PartialFailure``，它仍是字符串，额外携带失败的键。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Iterable, List, Optional, Protocol, Union, runtime_checkable


class PartialFailure(str):
    """存储层 I/O 失败（例如文件夹改名时部分键复制失败）。"""

    failed_keys: List[str]

    def __new__(cls, message: str, failed_keys: Iterable[str] = ()) -> "PartialFailure":
        obj = super().__new__(cls, message)
        obj.failed_keys = list(failed_keys)
        return obj


@dataclass
class UploadedFile:
    """上传文件句柄：与 Web 框架解耦，``stream`` 由调用方负责关闭。"""

    filename: str
    stream: BinaryIO
    size: Optional[int] = None
    content_type: Optional[str] = None


@runtime_checkable
class FileManagerItem(Protocol):
    identifier: str
    name: str

    @property
    def path(self) -> str: ...

    @property
    def parent_path(self) -> Optional[str]: ...

    @property
    def is_folder(self) -> bool: ...

    @property
    def is_file(self) -> bool: ...

    @property
    def size(self) -> Optional[int]: ...

    @property
    def depth(self) -> int: ...

    def to_dict(self) -> Dict[str, Any]: ...


Result = Union[bool, str]


@runtime_checkable
class FileManagerAdapter(Protocol):
    def get_items(self, path: Optional[str] = None) -> List[FileManagerItem]: ...

    def get_folders(self, path: Optional[str] = None) -> List[FileManagerItem]: ...

    def get_item(self, identifier: str) -> Optional[FileManagerItem]: ...

    def get_folder_tree(self) -> List[Dict[str, Any]]: ...

    def get_breadcrumbs(self, path: Optional[str] = None) -> List[Dict[str, Any]]: ...

    def create_folder(self, name: str, parent_path: Optional[str] = None) -> Union[FileManagerItem, str]: ...

    def upload_file(self, file: UploadedFile, path: Optional[str] = None) -> Union[FileManagerItem, str]: ...

    def rename(self, identifier: str, new_name: str) -> Result: ...

    def move(self, identifier: str, new_parent_path: Optional[str] = None) -> Result: ...

    def delete(self, identifier: str) -> Result: ...

    def delete_many(self, identifiers: Iterable[str]) -> int: ...

    def exists(self, identifier: str) -> bool: ...

    def get_url(self, identifier: str) -> Optional[str]: ...

    def get_contents(self, identifier: str, max_size: int = 1024 * 1024) -> Optional[bytes]: ...

    def get_stream(self, identifier: str) -> Optional[BinaryIO]: ...

    def get_size(self, identifier: str) -> Optional[int]: ...

    def get_mode_name(self) -> str: ...

    def locate(self, identifier: str) -> Optional[tuple[str, str]]:
        """返回 ``(磁盘名, 存储键)``，用于生成预览/下载直链；文件夹或不存在时为 ``None``。"""
        ...


def validate_name(name: Optional[str]) -> Optional[str]:
    """校验文件夹/重命名的新名称，合法时返回 ``None``，否则返回提示。"""
    value = (name or "").strip()
    if not value:
        return "Name cannot be empty"
    if value in {".", ".."} or "/" in value or "\\" in value or "\0" in value:
        return "Name contains invalid characters"
    if len(value) > 255:
        return "Name is too long"
    return None
