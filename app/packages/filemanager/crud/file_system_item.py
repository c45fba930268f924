"""文件系统节点的层级操作：祖先链、路径、移动、目录树与计数。

约定：
- 节点只保存 ``parent_id``，完整路径与深度每次沿父链计算；
- 移动/重命名前的重名检查只是提示性的，最终以 (coalesce(parent_id, 0), name)
  唯一索引为准，并发冲突时提交会抛 ``IntegrityError``，这里统一转换为重名提示；
- 删除文件夹依赖外键 ``ON DELETE CASCADE`` 级联删除整个子树。
"""

from typing import Any, Dict, List, Optional, Union

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.packages.filemanager.core.constants import ITEM_TYPE_FILE, ITEM_TYPE_FOLDER, ROOT_BREADCRUMB_NAME
from app.packages.filemanager.core.logger import logger
from app.packages.filemanager.crud.base import CRUDBase
from app.packages.filemanager.models.file_system_item import FileSystemItem

MSG_CYCLE = "Cannot move a folder into itself or its descendants"
MSG_DUPLICATE_IN_DESTINATION = "An item with this name already exists in the destination folder"
MSG_DUPLICATE_IN_FOLDER = "An item with this name already exists in this folder"


class CRUDFileSystemItem(CRUDBase[FileSystemItem]):
    # ------------------------------------------------------------------
    # 基础查询
    # ------------------------------------------------------------------
    def children_query(self, db: Session, parent_id: Optional[int]):
        query = self.query(db)
        if parent_id is None:
            return query.filter(FileSystemItem.parent_id.is_(None))
        return query.filter(FileSystemItem.parent_id == parent_id)

    def find_child(
        self,
        db: Session,
        parent_id: Optional[int],
        name: str,
        *,
        exclude_id: Optional[int] = None,
        folders_only: bool = False,
    ) -> Optional[FileSystemItem]:
        query = self.children_query(db, parent_id).filter(FileSystemItem.name == name)
        if exclude_id is not None:
            query = query.filter(FileSystemItem.id != exclude_id)
        if folders_only:
            query = query.filter(FileSystemItem.type == ITEM_TYPE_FOLDER)
        return query.first()

    def resolve_path(self, db: Session, path: Optional[str]) -> Optional[FileSystemItem]:
        """按名称逐级解析 ``/a/b/c`` 形式的文件夹路径，任一级不存在返回 ``None``。"""
        segments = [seg for seg in (path or "").split("/") if seg]
        current: Optional[FileSystemItem] = None
        for segment in segments:
            current = self.find_child(
                db,
                current.id if current else None,
                segment,
                folders_only=True,
            )
            if current is None:
                return None
        return current

    # ------------------------------------------------------------------
    # 祖先链、路径与深度
    # ------------------------------------------------------------------
    def ancestors(self, db: Session, item: FileSystemItem) -> List[FileSystemItem]:
        """返回从根到父节点的有序祖先列表，根节点返回空列表。"""
        chain: List[FileSystemItem] = []
        seen = {item.id}
        parent_id = item.parent_id
        while parent_id is not None:
            if parent_id in seen:
                # 数据已损坏时防止死循环
                logger.error("Cycle detected in parent chain of item %s", item.id)
                break
            seen.add(parent_id)
            parent = self.get(db, parent_id)
            if parent is None:
                break
            chain.append(parent)
            parent_id = parent.parent_id
        chain.reverse()
        return chain

    def full_path(self, db: Session, item: FileSystemItem) -> str:
        names = [ancestor.name for ancestor in self.ancestors(db, item)]
        names.append(item.name)
        return "/" + "/".join(names)

    def depth(self, db: Session, item: FileSystemItem) -> int:
        return len(self.ancestors(db, item))

    def breadcrumbs(self, db: Session, folder: Optional[FileSystemItem]) -> List[Dict[str, Any]]:
        crumbs: List[Dict[str, Any]] = [{"id": None, "name": ROOT_BREADCRUMB_NAME, "path": "/"}]
        if folder is None:
            return crumbs
        path = ""
        for node in [*self.ancestors(db, folder), folder]:
            path = f"{path}/{node.name}"
            crumbs.append({"id": node.id, "name": node.name, "path": path})
        return crumbs

    # ------------------------------------------------------------------
    # 列表与计数
    # ------------------------------------------------------------------
    def get_items_in_folder(self, db: Session, parent_id: Optional[int]) -> List[FileSystemItem]:
        """文件夹在前、文件在后，组内按名称排序。"""
        folder_first = case((FileSystemItem.type == ITEM_TYPE_FOLDER, 0), else_=1)
        return self.children_query(db, parent_id).order_by(folder_first, FileSystemItem.name).all()

    def get_folders(self, db: Session, parent_id: Optional[int]) -> List[FileSystemItem]:
        return (
            self.children_query(db, parent_id)
            .filter(FileSystemItem.type == ITEM_TYPE_FOLDER)
            .order_by(FileSystemItem.name)
            .all()
        )

    def direct_file_count(self, db: Session, parent_id: Optional[int]) -> int:
        return self.children_query(db, parent_id).filter(FileSystemItem.type != ITEM_TYPE_FOLDER).count()

    def _direct_file_counts(self, db: Session, parent_ids: List[int]) -> Dict[int, int]:
        if not parent_ids:
            return {}
        rows = (
            db.query(FileSystemItem.parent_id, func.count(FileSystemItem.id))
            .filter(FileSystemItem.parent_id.in_(parent_ids))
            .filter(FileSystemItem.type != ITEM_TYPE_FOLDER)
            .group_by(FileSystemItem.parent_id)
            .all()
        )
        return {parent_id: count for parent_id, count in rows}

    def descendant_folder_ids(self, db: Session, folder_id: int) -> List[int]:
        """按层批量查询，返回 ``folder_id`` 及其所有后代文件夹的 ID。"""
        collected = [folder_id]
        seen = {folder_id}
        frontier = [folder_id]
        while frontier:
            rows = (
                db.query(FileSystemItem.id)
                .filter(FileSystemItem.parent_id.in_(frontier))
                .filter(FileSystemItem.type == ITEM_TYPE_FOLDER)
                .all()
            )
            frontier = [row[0] for row in rows if row[0] not in seen]
            seen.update(frontier)
            collected.extend(frontier)
        return collected

    def file_count_recursive(self, db: Session, folder_id: Optional[int]) -> int:
        """子树内的文件总数；``None`` 表示根目录，即全部文件。"""
        query = self.query(db).filter(FileSystemItem.type != ITEM_TYPE_FOLDER)
        if folder_id is None:
            return query.count()
        if self.get(db, folder_id) is None:
            return 0
        folder_ids = self.descendant_folder_ids(db, folder_id)
        return query.filter(FileSystemItem.parent_id.in_(folder_ids)).count()

    def subtree_storage_paths(self, db: Session, item: FileSystemItem) -> List[str]:
        """收集节点（或整个子树）下所有文件的存储路径，用于删除后清理存储。"""
        if item.type == ITEM_TYPE_FILE:
            return [item.storage_path] if item.storage_path else []
        folder_ids = self.descendant_folder_ids(db, item.id)
        rows = (
            db.query(FileSystemItem.storage_path)
            .filter(FileSystemItem.parent_id.in_(folder_ids))
            .filter(FileSystemItem.type == ITEM_TYPE_FILE)
            .filter(FileSystemItem.storage_path.isnot(None))
            .all()
        )
        return [row[0] for row in rows]

    def get_folder_tree(self, db: Session, parent_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """构造嵌套目录树；每层一次查询子文件夹、一次分组统计文件数。"""
        base_depth = 0
        if parent_id is not None:
            parent = self.get(db, parent_id)
            if parent is None:
                return []
            base_depth = self.depth(db, parent) + 1

        roots = self.get_folders(db, parent_id)
        nodes: Dict[int, Dict[str, Any]] = {}
        level = roots
        depth = base_depth
        while level:
            ids = [folder.id for folder in level]
            counts = self._direct_file_counts(db, ids)
            for folder in level:
                node = {
                    "id": folder.id,
                    "name": folder.name,
                    "depth": depth,
                    "file_count": counts.get(folder.id, 0),
                    "children": [],
                }
                nodes[folder.id] = node
                if folder.parent_id in nodes:
                    nodes[folder.parent_id]["children"].append(node)
            level = (
                self.query(db)
                .filter(FileSystemItem.parent_id.in_(ids))
                .filter(FileSystemItem.type == ITEM_TYPE_FOLDER)
                .order_by(FileSystemItem.name)
                .all()
            )
            depth += 1
        return [nodes[folder.id] for folder in roots]

    # ------------------------------------------------------------------
    # 变更操作：返回 True 或错误提示
    # ------------------------------------------------------------------
    def is_self_or_descendant(self, db: Session, folder: FileSystemItem, target: FileSystemItem) -> bool:
        """``target`` 是否为 ``folder`` 本身或其后代。"""
        chain_ids = [ancestor.id for ancestor in self.ancestors(db, target)]
        chain_ids.append(target.id)
        return folder.id in chain_ids

    def move_to(
        self,
        db: Session,
        item: FileSystemItem,
        new_parent: Optional[FileSystemItem],
    ) -> Union[bool, str]:
        if item.type == ITEM_TYPE_FOLDER and new_parent is not None:
            if self.is_self_or_descendant(db, item, new_parent):
                return MSG_CYCLE

        target_parent_id = new_parent.id if new_parent is not None else None
        if self.find_child(db, target_parent_id, item.name, exclude_id=item.id) is not None:
            return MSG_DUPLICATE_IN_DESTINATION

        item.parent_id = target_parent_id
        try:
            self.save(db, item)
        except IntegrityError:
            # 回滚后属性过期，再次访问会重新加载原值
            db.rollback()
            logger.info("Concurrent move rejected by unique index: item=%s parent=%s", item.id, target_parent_id)
            return MSG_DUPLICATE_IN_DESTINATION
        return True

    def rename(self, db: Session, item: FileSystemItem, new_name: str) -> Union[bool, str]:
        if self.find_child(db, item.parent_id, new_name, exclude_id=item.id) is not None:
            return MSG_DUPLICATE_IN_FOLDER
        item.name = new_name
        try:
            self.save(db, item)
        except IntegrityError:
            db.rollback()
            logger.info("Concurrent rename rejected by unique index: item=%s name=%s", item.id, new_name)
            return MSG_DUPLICATE_IN_FOLDER
        return True


file_system_item_crud = CRUDFileSystemItem(FileSystemItem)
