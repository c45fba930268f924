"""测试夹具：为 pytest 提供数据库、存储盘与客户端的共享配置。"""

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Generator

# 必须在导入应用之前写入，保证模块级配置与引擎指向测试资源
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="filemanager_tests_"))
TEST_DB_PATH = _TEST_ROOT / "test.db"
TEST_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["LOG_DIR"] = str(_TEST_ROOT / "log")
os.environ["JWT_SECRET_KEY"] = "filemanager-test-secret"
os.environ["FILEMANAGER_DISKS"] = json.dumps(
    {
        "local": {"driver": "local", "root": str(_TEST_ROOT / "local")},
        "public": {"driver": "local", "root": str(_TEST_ROOT / "public"), "url": "/storage", "visibility": "public"},
    }
)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from app.main import app  # noqa: E402
from app.packages.filemanager.core.config import DiskConfig, Settings, get_settings  # noqa: E402
from app.packages.filemanager.core.dependencies import get_db  # noqa: E402
from app.packages.filemanager.core.security import create_access_token  # noqa: E402
from app.packages.filemanager.db import session as db_session  # noqa: E402
from app.packages.filemanager.db.init_db import init_db  # noqa: E402
from app.packages.filemanager.filetypes.registry import build_default_registry  # noqa: E402
from app.packages.filemanager.models.base import Base  # noqa: E402
from app.packages.filemanager.services.storage_backends import LocalDisk  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_database() -> Generator[None, None, None]:
    """创建隔离的 SQLite 测试数据库，并在会话结束后清理。"""
    engine = db_session.build_engine(TEST_DATABASE_URL)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db_session.engine = engine
    db_session.SessionLocal = TestingSessionLocal

    init_db()
    yield

    engine.dispose()
    shutil.rmtree(_TEST_ROOT, ignore_errors=True)


@pytest.fixture(autouse=True)
def clean_tables() -> Generator[None, None, None]:
    """每个用例结束后清空节点表。"""
    yield
    with db_session.engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture()
def db_session_fixture() -> Generator[Session, None, None]:
    """提供给测试用例使用的数据库会话。"""
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """每个用例独立的配置：存储盘指向临时目录。"""
    return Settings(
        jwt_secret_key="filemanager-test-secret",
        disks={
            "local": DiskConfig(driver="local", root=str(tmp_path / "local")),
            "public": DiskConfig(driver="local", root=str(tmp_path / "public"), url="/storage", visibility="public"),
        },
        upload_disk="local",
        storage_disk="local",
        log_dir=str(tmp_path / "log"),
    )


@pytest.fixture()
def registry():
    return build_default_registry()


@pytest.fixture()
def local_disk(settings: Settings) -> LocalDisk:
    return LocalDisk("local", settings.disks["local"], Path(settings.disks["local"].root))


@pytest.fixture()
def auth_headers(settings: Settings) -> dict[str, str]:
    token = create_access_token({"sub": "1", "username": "alice", "permissions": []}, settings=settings)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def client(settings: Settings):
    """构建 FastAPI TestClient，并注入测试专用的数据库与配置依赖。"""
    def override_get_db() -> Generator[Session, None, None]:
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
