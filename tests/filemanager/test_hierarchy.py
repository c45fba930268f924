"""数据库模式层级：祖先链、路径、移动时的环检测与同级重名约束。"""

import pytest
from sqlalchemy.exc import IntegrityError

from app.packages.filemanager.crud.file_system_item import (
    MSG_CYCLE,
    MSG_DUPLICATE_IN_DESTINATION,
    MSG_DUPLICATE_IN_FOLDER,
    file_system_item_crud as crud,
)
from app.packages.filemanager.models.file_system_item import FileSystemItem


def _folder(db, name, parent=None):
    return crud.create(db, {"name": name, "type": "folder", "parent_id": parent.id if parent else None})


def _file(db, name, parent=None, size=10):
    return crud.create(
        db,
        {"name": name, "type": "file", "file_type": "other", "parent_id": parent.id if parent else None, "size": size},
    )


@pytest.fixture()
def tree(db_session_fixture):
    """/media/videos/clip.mp4, /media/cover.png, /docs, /readme.txt"""
    db = db_session_fixture
    media = _folder(db, "media")
    videos = _folder(db, "videos", media)
    docs = _folder(db, "docs")
    clip = _file(db, "clip.mp4", videos)
    cover = _file(db, "cover.png", media)
    readme = _file(db, "readme.txt")
    return {"media": media, "videos": videos, "docs": docs, "clip": clip, "cover": cover, "readme": readme}


def test_ancestors_path_and_depth(db_session_fixture, tree):
    db = db_session_fixture
    clip = tree["clip"]
    assert [node.name for node in crud.ancestors(db, clip)] == ["media", "videos"]
    assert crud.full_path(db, clip) == "/media/videos/clip.mp4"
    assert crud.depth(db, clip) == len(crud.ancestors(db, clip)) == 2

    readme = tree["readme"]
    assert crud.ancestors(db, readme) == []
    assert crud.full_path(db, readme) == "/readme.txt"
    assert crud.depth(db, readme) == 0

    # 重复计算结果稳定
    assert crud.full_path(db, clip) == crud.full_path(db, clip)


def test_resolve_path_and_breadcrumbs(db_session_fixture, tree):
    db = db_session_fixture
    videos = crud.resolve_path(db, "/media/videos")
    assert videos.id == tree["videos"].id
    assert crud.resolve_path(db, "/media/missing") is None

    crumbs = crud.breadcrumbs(db, videos)
    assert [c["name"] for c in crumbs] == ["Root", "media", "videos"]
    assert crumbs[-1]["path"] == "/media/videos"


def test_items_in_folder_lists_folders_first(db_session_fixture, tree):
    db = db_session_fixture
    _file(db, "a-first.txt")
    names = [item.name for item in crud.get_items_in_folder(db, None)]
    assert names == ["docs", "media", "a-first.txt", "readme.txt"]


def test_file_counts(db_session_fixture, tree):
    db = db_session_fixture
    assert crud.direct_file_count(db, tree["media"].id) == 1
    assert crud.file_count_recursive(db, tree["media"].id) == 2
    assert crud.file_count_recursive(db, None) == 3


def test_folder_tree_shape(db_session_fixture, tree):
    db = db_session_fixture
    nodes = crud.get_folder_tree(db)
    assert [node["name"] for node in nodes] == ["docs", "media"]
    media = nodes[1]
    assert media["depth"] == 0
    assert media["file_count"] == 1
    assert media["children"][0]["name"] == "videos"
    assert media["children"][0]["depth"] == 1
    assert media["children"][0]["file_count"] == 1
    assert media["children"][0]["children"] == []


def test_move_folder_into_itself_or_descendant_is_rejected(db_session_fixture, tree):
    db = db_session_fixture
    media, videos = tree["media"], tree["videos"]

    assert crud.move_to(db, media, media) == MSG_CYCLE
    assert crud.move_to(db, media, videos) == MSG_CYCLE

    db.refresh(media)
    assert media.parent_id is None


def test_move_rejects_duplicate_name_in_destination(db_session_fixture, tree):
    db = db_session_fixture
    _file(db, "cover.png", tree["docs"])
    assert crud.move_to(db, tree["cover"], tree["docs"]) == MSG_DUPLICATE_IN_DESTINATION
    db.refresh(tree["cover"])
    assert tree["cover"].parent_id == tree["media"].id


def test_move_and_rename_success(db_session_fixture, tree):
    db = db_session_fixture
    assert crud.move_to(db, tree["videos"], tree["docs"]) is True
    assert crud.full_path(db, tree["clip"]) == "/docs/videos/clip.mp4"

    assert crud.rename(db, tree["readme"], "docs") == MSG_DUPLICATE_IN_FOLDER
    assert crud.rename(db, tree["readme"], "README.md") is True
    assert crud.full_path(db, tree["readme"]) == "/README.md"


def test_unique_index_is_authoritative_for_root_siblings(db_session_fixture, tree):
    db = db_session_fixture
    db.add(FileSystemItem(name="docs", type="folder", parent_id=None))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_concurrent_move_loses_to_unique_index(db_session_fixture, tree, monkeypatch):
    """预检查通过但另一方先提交时，唯一索引拒绝第二次移动。"""
    db = db_session_fixture
    _file(db, "clip.mp4", tree["docs"])
    monkeypatch.setattr(crud, "find_child", lambda *args, **kwargs: None)

    assert crud.move_to(db, tree["clip"], tree["docs"]) == MSG_DUPLICATE_IN_DESTINATION
    assert tree["clip"].parent_id == tree["videos"].id
    names = [item.name for item in crud.get_items_in_folder(db, tree["docs"].id)]
    assert names.count("clip.mp4") == 1


def test_deleting_folder_cascades_to_subtree(db_session_fixture, tree):
    db = db_session_fixture
    clip_id = tree["clip"].id
    videos_id = tree["videos"].id
    assert sorted(crud.subtree_storage_paths(db, tree["media"])) == []

    crud.hard_delete(db, tree["media"])
    db.expire_all()
    assert crud.get(db, videos_id) is None
    assert crud.get(db, clip_id) is None
    assert crud.get(db, tree["docs"].id) is not None
