"""文件管理器节点模型（文件夹与文件共用一张自引用表）。

存储规则：
- parent_id 为空表示位于根目录；父子关系只保存父节点 ID，完整路径与深度按需计算；
- type 为 "folder" 时不携带 size/duration/thumbnail/storage_path；
- type 为 "file" 时 file_type 必填（video/image/document/audio/other）；
- 同一父节点下名称唯一，根目录下同样唯一（以 coalesce(parent_id, 0) 建唯一索引）。
"""

from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.filemanager.core.constants import ITEM_TYPE_FILE, ITEM_TYPE_FOLDER
from app.packages.filemanager.models.base import Base, TimestampMixin


class FileSystemItem(TimestampMixin, Base):
    __tablename__ = "file_system_items"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    file_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("file_system_items.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    thumbnail: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    storage_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    def is_folder(self) -> bool:
        return self.type == ITEM_TYPE_FOLDER

    def is_file(self) -> bool:
        return self.type == ITEM_TYPE_FILE

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<FileSystemItem id={self.id} type={self.type} name={self.name!r} parent_id={self.parent_id}>"


# 根目录节点的 parent_id 为 NULL，普通唯一约束不会比较 NULL，因此对 coalesce 后的值建唯一索引。
Index(
    "uq_file_system_items_parent_name",
    func.coalesce(FileSystemItem.parent_id, 0),
    FileSystemItem.name,
    unique=True,
)
