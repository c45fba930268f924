"""数据库模式适配器：上传落盘、重名拒绝、级联删除后的存储清理。"""

import io
from pathlib import Path

import pytest

from app.packages.filemanager.adapters.base import UploadedFile
from app.packages.filemanager.adapters.database import DatabaseAdapter
from app.packages.filemanager.crud.file_system_item import MSG_CYCLE, MSG_DUPLICATE_IN_FOLDER
from app.packages.filemanager.services.file_security import FileSecurityService
from app.packages.filemanager.services.storage_backends import LocalDisk


def _upload(adapter, name, content=b"payload", path=None, content_type=None):
    return adapter.upload_file(UploadedFile(name, io.BytesIO(content), size=len(content), content_type=content_type), path)


@pytest.fixture()
def public_disk(settings):
    return LocalDisk("public", settings.disks["public"], Path(settings.disks["public"].root))


@pytest.fixture()
def adapter(db_session_fixture, public_disk, registry):
    return DatabaseAdapter(db_session_fixture, disk=public_disk, registry=registry, max_upload_bytes=1024)


def test_create_folder_and_listing(adapter):
    media = adapter.create_folder("media")
    adapter.create_folder("videos", "/media")
    adapter.create_folder("docs")
    _upload(adapter, "readme.txt")

    assert [item.name for item in adapter.get_items()] == ["docs", "media", "readme.txt"]
    assert [item.name for item in adapter.get_items(media.identifier)] == ["videos"]
    assert [item.name for item in adapter.get_folders("/")] == ["docs", "media"]
    assert adapter.get_items("/missing") == []

    assert adapter.create_folder("media") == "A folder with this name already exists"
    assert adapter.create_folder("x", "/missing") == "Parent folder not found"
    assert adapter.create_folder("") == "Name cannot be empty"


def test_upload_stores_blob_and_metadata(adapter, public_disk):
    folder = adapter.create_folder("media")
    item = _upload(adapter, "Cover Photo.PNG", b"\x89PNG", path="/media", content_type="application/octet-stream")

    assert item.name == "Cover_Photo.PNG"
    assert item.path == "/media/Cover_Photo.PNG"
    assert item.depth == 1
    assert item.is_image
    assert item.model.file_type == "image"
    assert item.model.parent_id == folder.model.id
    assert item.storage_path.startswith("uploads/") and item.storage_path.endswith(".png")
    assert public_disk.read_bytes(item.storage_path, 100) == b"\x89PNG"

    data = item.to_dict()
    assert data["id"] == item.model.id
    assert data["file_type"] == "image"
    assert data["parent_path"] == "/media"


def test_upload_rejections(adapter, public_disk):
    _upload(adapter, "notes.txt")
    assert _upload(adapter, "notes.txt") == "A file with this name already exists in this folder"
    assert _upload(adapter, "big.bin", b"x" * 2048) == "File exceeds the maximum upload size"
    assert _upload(adapter, "x.txt", path="/missing") == "Parent folder not found"
    assert len(public_disk.all_files("uploads")) == 1


@pytest.mark.parametrize("filename", ["../escape.txt", "nested/escape.txt", "..\\escape.txt"])
def test_upload_rejects_separators_when_sanitizing_is_off(db_session_fixture, public_disk, registry, filename):
    adapter = DatabaseAdapter(
        db_session_fixture, disk=public_disk, registry=registry, security=FileSecurityService(sanitize=False)
    )

    assert _upload(adapter, filename) == "Name contains invalid characters"
    assert adapter.get_items() == []
    assert public_disk.all_files("uploads") == []


def test_rename_and_move(adapter):
    media = adapter.create_folder("media")
    videos = adapter.create_folder("videos", media.identifier)
    docs = adapter.create_folder("docs")
    readme = _upload(adapter, "readme.txt")

    assert adapter.rename(readme.identifier, "README.md") is True
    assert adapter.get_item(readme.identifier).name == "README.md"
    assert adapter.rename(readme.identifier, "docs") == MSG_DUPLICATE_IN_FOLDER
    assert adapter.rename("999", "x") == "Item not found"
    assert adapter.rename(readme.identifier, "a/b") == "Name contains invalid characters"

    assert adapter.move(media.identifier, videos.identifier) == MSG_CYCLE
    assert adapter.move(readme.identifier, "/") == "Item is already in this folder"
    assert adapter.move(readme.identifier, "/nowhere") == "Target folder not found"
    assert adapter.move(media.identifier, "/docs") is True
    assert adapter.get_item(videos.identifier).path == "/docs/media/videos"
    assert adapter.get_breadcrumbs("/docs/media")[-1] == {"id": media.model.id, "name": "media", "path": "/docs/media"}
    assert [node["name"] for node in adapter.get_folder_tree()] == ["docs"]
    assert adapter.get_folder_tree()[0]["id"] == docs.model.id


def test_delete_folder_cascades_and_removes_blobs(adapter, public_disk):
    media = adapter.create_folder("media")
    videos = adapter.create_folder("videos", media.identifier)
    clip = _upload(adapter, "clip.mp4", path=videos.identifier)
    cover = _upload(adapter, "cover.png", path=media.identifier)
    keep = _upload(adapter, "keep.txt")
    assert adapter.get_file_count(media.identifier) == 2

    assert adapter.delete(media.identifier) is True

    assert adapter.get_item(videos.identifier) is None
    assert adapter.get_item(clip.identifier) is None
    assert not public_disk.exists(clip.storage_path)
    assert not public_disk.exists(cover.storage_path)
    assert public_disk.exists(keep.storage_path)
    assert adapter.get_file_count() == 1


def test_delete_many_tolerates_missing(adapter):
    first = _upload(adapter, "a.txt")
    second = _upload(adapter, "b.txt")
    folder = adapter.create_folder("empty")
    identifiers = [first.identifier, "404", second.identifier, "not-a-number", folder.identifier]
    assert adapter.delete_many(identifiers) == 3
    assert adapter.get_items() == []


def test_read_accessors(adapter, public_disk):
    item = _upload(adapter, "hello.txt", b"hello world")
    folder = adapter.create_folder("docs")

    assert adapter.exists(item.identifier)
    assert not adapter.exists("12345")
    assert adapter.get_contents(item.identifier, max_size=5) == b"hello"
    assert adapter.get_contents(folder.identifier) is None
    assert adapter.get_size(item.identifier) == 11
    assert adapter.locate(item.identifier) == ("public", item.storage_path)
    assert adapter.locate(folder.identifier) is None
    assert adapter.get_url(item.identifier) == f"/storage/{item.storage_path}"
    stream = adapter.get_stream(item.identifier)
    try:
        assert stream.read() == b"hello world"
    finally:
        stream.close()
    assert adapter.get_mode_name() == "database"
