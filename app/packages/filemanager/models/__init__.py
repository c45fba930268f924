"""模型包初始化，便于统一导入 ORM 实体并触发模型注册。"""

from app.packages.filemanager.models.file_system_item import FileSystemItem

__all__ = ["FileSystemItem"]
