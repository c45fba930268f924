"""数据库引擎与会话工厂配置。"""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from app.packages.filemanager.core.config import get_settings

settings = get_settings()


def build_engine(url: str, *, echo: bool = False):
    """创建引擎；SQLite 需要逐连接打开外键约束，级联删除才会生效。"""
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False}, echo=echo)

        @event.listens_for(engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):  # pragma: no cover - driver glue
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine
    # ``pool_pre_ping`` 保持连接池健康；``echo`` 按配置输出 SQL 日志。
    return create_engine(url, pool_pre_ping=True, echo=echo)


engine = build_engine(settings.sql_database_url, echo=settings.database_echo)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
