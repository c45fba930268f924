"""文件管理 HTTP 接口：统一响应结构、权限闸门与完整的增删改查流程。"""

from pathlib import Path

from app.packages.filemanager.adapters.storage import StorageAdapter
from app.packages.filemanager.core.dependencies import get_adapter
from app.packages.filemanager.core.security import create_access_token
from app.packages.filemanager.services.storage_backends import LocalDisk

API = "/api/v1"


class BrokenCopyDisk(LocalDisk):
    def copy(self, source, destination):
        if source.endswith(".bad"):
            raise OSError("disk unavailable")
        super().copy(source, destination)


def _create_folder(client, headers, name, parent=None):
    response = client.post(f"{API}/folders", json={"name": name, "parentPath": parent}, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["data"]


def _upload(client, headers, name, content, path=None, content_type="application/octet-stream"):
    data = {"path": path} if path else {}
    return client.post(f"{API}/files", files={"file": (name, content, content_type)}, data=data, headers=headers)


def test_requires_authenticated_caller(client):
    response = client.get(f"{API}/files")
    assert response.status_code == 403
    assert response.json() == {"msg": "无权限执行该操作", "data": None, "code": 403}


def test_invalid_token_is_treated_as_anonymous(client):
    response = client.get(f"{API}/files", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 403


def test_configured_permission_is_enforced(client, settings):
    settings.permission_create = "files.create"
    plain = create_access_token({"sub": "2", "permissions": []}, settings=settings)
    granted = create_access_token({"sub": "3", "permissions": ["files.create"]}, settings=settings)

    denied = client.post(f"{API}/folders", json={"name": "x"}, headers={"Authorization": f"Bearer {plain}"})
    assert denied.status_code == 403
    allowed = client.post(f"{API}/folders", json={"name": "x"}, headers={"Authorization": f"Bearer {granted}"})
    assert allowed.status_code == 200
    # 浏览仍然只需要登录
    assert client.get(f"{API}/files", headers={"Authorization": f"Bearer {plain}"}).status_code == 200


def test_database_mode_workflow(client, auth_headers):
    media = _create_folder(client, auth_headers, "media")
    docs = _create_folder(client, auth_headers, "docs")
    _create_folder(client, auth_headers, "videos", "/media")

    duplicate = client.post(f"{API}/folders", json={"name": "media"}, headers=auth_headers)
    assert duplicate.status_code == 400
    assert duplicate.json()["msg"] == "A folder with this name already exists"

    uploaded = _upload(client, auth_headers, "notes.txt", b"hello file manager", path="/media")
    assert uploaded.status_code == 200, uploaded.text
    note = uploaded.json()["data"]
    assert note["name"] == "notes.txt"
    assert note["path"] == "/media/notes.txt"
    assert note["is_document"] is True

    listing = client.get(f"{API}/files", params={"path": "/media"}, headers=auth_headers).json()
    assert listing["msg"] == "获取文件列表成功"
    assert listing["data"]["mode"] == "database"
    assert [item["name"] for item in listing["data"]["items"]] == ["videos", "notes.txt"]

    tree = client.get(f"{API}/folders/tree", headers=auth_headers).json()["data"]
    assert [node["name"] for node in tree] == ["docs", "media"]
    assert tree[1]["file_count"] == 1

    crumbs = client.get(f"{API}/breadcrumbs", params={"path": "/media/videos"}, headers=auth_headers).json()["data"]
    assert [crumb["name"] for crumb in crumbs] == ["Root", "media", "videos"]

    contents = client.get(
        f"{API}/files/contents",
        params={"identifier": note["identifier"], "maxSize": 5},
        headers=auth_headers,
    ).json()["data"]
    assert contents == {"content": "hello", "size": 18, "truncated": True}

    detail = client.get(f"{API}/files/item", params={"identifier": note["identifier"]}, headers=auth_headers).json()
    preview = client.get(detail["data"]["previewUrl"], headers=auth_headers)
    assert preview.status_code == 200
    assert preview.content == b"hello file manager"
    download = client.get(detail["data"]["downloadUrl"], headers=auth_headers)
    assert download.headers["content-disposition"] == 'attachment; filename="notes.txt"'

    renamed = client.patch(
        f"{API}/files", json={"identifier": note["identifier"], "newName": "readme.txt"}, headers=auth_headers
    )
    assert renamed.json()["msg"] == "重命名成功"

    cycle = client.post(
        f"{API}/files/move",
        json={"identifier": media["identifier"], "destinationPath": "/media/videos"},
        headers=auth_headers,
    )
    assert cycle.status_code == 400
    assert cycle.json()["msg"] == "Cannot move a folder into itself or its descendants"

    moved = client.post(
        f"{API}/files/move", json={"identifier": media["identifier"], "destinationPath": "/docs"}, headers=auth_headers
    )
    assert moved.status_code == 200
    item = client.get(f"{API}/files/item", params={"identifier": note["identifier"]}, headers=auth_headers).json()
    assert item["data"]["path"] == "/docs/media/readme.txt"

    removed = client.delete(f"{API}/files/item", params={"identifier": docs["identifier"]}, headers=auth_headers)
    assert removed.status_code == 200
    gone = client.get(f"{API}/files/item", params={"identifier": note["identifier"]}, headers=auth_headers)
    assert gone.status_code == 404


def test_bulk_delete_counts_successes(client, auth_headers):
    first = _create_folder(client, auth_headers, "a")
    second = _upload(client, auth_headers, "b.txt", b"b").json()["data"]
    response = client.request(
        "DELETE",
        f"{API}/files",
        json={"identifiers": [first["identifier"], "404", second["identifier"]]},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["data"] == {"deleted": 2}


def test_upload_rejections_map_to_bad_request(client, auth_headers):
    blocked = _upload(client, auth_headers, "shell.php", b"<?php")
    assert blocked.status_code == 400
    assert "not allowed" in blocked.json()["msg"]

    missing_parent = _upload(client, auth_headers, "a.txt", b"a", path="/missing")
    assert missing_parent.status_code == 400
    assert missing_parent.json()["msg"] == "Parent folder not found"


def test_partial_failure_reports_failed_keys(client, settings, auth_headers):
    root = Path(settings.disks["local"].root)
    (root / "media").mkdir(parents=True)
    (root / "media" / "ok.txt").write_bytes(b"ok")
    (root / "media" / "broken.bad").write_bytes(b"bad")
    (root / "docs").mkdir()
    disk = BrokenCopyDisk("local", settings.disks["local"], root)
    client.app.dependency_overrides[get_adapter] = lambda: StorageAdapter(disk, move_retries=0)

    response = client.post(
        f"{API}/files/move", json={"identifier": "media", "destinationPath": "docs"}, headers=auth_headers
    )

    assert response.status_code == 500
    body = response.json()
    assert body["msg"] == "Failed to move 1 item(s)"
    assert body["data"] == {"failedKeys": ["media/broken.bad"]}
    assert (root / "media" / "ok.txt").exists()
    assert not (root / "docs" / "media").exists()


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "abc-123"
