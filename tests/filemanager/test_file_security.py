from app.packages.filemanager.services.file_security import FileSecurityService


def _service(**kwargs):
    options = {"blocked_extensions": ["php", "exe", "sh"], "blocked_patterns": [r"^\.ht"]}
    options.update(kwargs)
    return FileSecurityService(**options)


def test_blocked_extension_is_rejected():
    result = _service().validate_upload("shell.PHP")
    assert result["valid"] is False
    assert ".php" in result["error"]


def test_double_extension_hiding_blocked_type_is_rejected():
    assert _service().validate_upload("avatar.php.jpg")["valid"] is False
    assert _service().validate_upload("archive.tar.gz")["valid"] is True


def test_pattern_rejection():
    assert _service().validate_upload(".htaccess")["valid"] is False


def test_name_is_sanitized():
    result = _service().validate_upload("my  <weird> file!!.txt")
    assert result["valid"] is True
    assert result["sanitized_name"] == "my_weird_file.txt"


def test_empty_stem_gets_generated_name():
    result = _service().validate_upload("!!!.png")
    assert result["sanitized_name"].startswith("file_")
    assert result["sanitized_name"].endswith(".png")


def test_long_names_are_truncated_keeping_extension():
    result = _service(max_filename_length=20).validate_upload("a" * 50 + ".jpeg")
    assert len(result["sanitized_name"]) == 20
    assert result["sanitized_name"].endswith(".jpeg")


def test_sanitizing_can_be_disabled():
    assert _service(sanitize=False).validate_upload("my file.txt")["sanitized_name"] == "my file.txt"
