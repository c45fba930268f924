"""数据库初始化工具。"""

from __future__ import annotations

from app.packages.filemanager.core.logger import logger
from app.packages.filemanager.db import session as db_session
from app.packages.filemanager.models.base import Base
from app.packages.filemanager.models.file_system_item import FileSystemItem  # noqa: F401 - ensure table creation


def init_db() -> None:
    """按模型定义创建缺失的数据表。"""
    Base.metadata.create_all(bind=db_session.engine)
    logger.info("Database schema ensured for %s", db_session.engine.url.render_as_string(hide_password=True))
