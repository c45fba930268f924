"""文件类型注册中心：优先级、通配匹配与兜底类型。"""

from app.packages.filemanager.filetypes.base import FileTypeDefinition
from app.packages.filemanager.filetypes.builtin import OTHER
from app.packages.filemanager.filetypes.registry import FileTypeRegistry


def test_builtin_lookup_by_mime_and_extension(registry):
    assert registry.from_mime_type("video/mp4").identifier == "video"
    assert registry.from_mime_type("image/png").identifier == "image"
    assert registry.from_extension(".MP3").identifier == "audio"
    assert registry.from_filename("report.docx").identifier == "document"
    assert registry.from_filename("notes.md").identifier == "text"


def test_pdf_beats_lower_priority_types(registry):
    assert registry.from_mime_type("application/pdf").identifier == "pdf"
    assert registry.from_extension("pdf").identifier == "pdf"


def test_unknown_values_resolve_to_fallback(registry):
    fallback = registry.get_fallback()
    assert fallback.identifier == "other"
    assert fallback.can_preview is False
    assert registry.from_mime_type("application/x-unknown") is fallback
    assert registry.from_extension("") is fallback
    assert registry.from_filename("Makefile") is fallback


def test_wildcard_mime_matching():
    audio = FileTypeDefinition(identifier="sound", mime_types=("audio/*",))
    assert audio.matches_mime_type("audio/mpeg")
    assert audio.matches_mime_type("audio/ogg")
    assert not audio.matches_mime_type("video/mpeg")


def test_equal_priority_tie_break_is_stable():
    first = FileTypeDefinition(identifier="first", mime_types=("video/mp4",), priority=5)
    second = FileTypeDefinition(identifier="second", mime_types=("video/mp4",), priority=5)
    registry = FileTypeRegistry().register(first).register(second)

    results = {registry.from_mime_type("video/mp4").identifier for _ in range(20)}
    assert results == {"first"}

    # 重复注册同一标识不改变顺序
    registry.register(first)
    assert registry.from_mime_type("video/mp4").identifier == "first"


def test_higher_priority_wins_regardless_of_registration_order():
    low = FileTypeDefinition(identifier="low", extensions=("bin",), priority=1)
    high = FileTypeDefinition(identifier="high", extensions=("bin",), priority=9)
    registry = FileTypeRegistry().register_many([low, high])
    assert registry.from_extension("bin").identifier == "high"


def test_register_replace_and_unregister(registry):
    custom = FileTypeDefinition(identifier="video", label="Clips", mime_types=("video/*",), viewer="video", priority=10)
    registry.register(custom)
    assert registry.get("video").label == "Clips"
    assert len([d for d in registry.all() if d.identifier == "video"]) == 1

    registry.unregister("video")
    assert not registry.has("video")
    assert registry.resolve("video") is registry.get_fallback()


def test_default_fallback_when_never_set():
    assert FileTypeRegistry().get_fallback() is OTHER


def test_supported_lists_and_previewable(registry):
    assert "video/*" in registry.all_supported_mime_types()
    assert "pdf" in registry.all_supported_extensions()
    previewable = {definition.identifier for definition in registry.previewable_types()}
    assert {"video", "image", "audio", "text", "pdf"} <= previewable
    assert "archive" not in previewable
    assert "document" not in previewable
