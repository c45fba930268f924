"""签名直链：生成、校验、篡改检测与直链策略选择。"""

from urllib.parse import parse_qsl, urlsplit

from app.packages.filemanager.core.config import DiskConfig
from app.packages.filemanager.core.constants import URL_STRATEGY_AUTO
from app.packages.filemanager.services.url_service import FileUrlService


def _query(url: str) -> dict:
    return dict(parse_qsl(urlsplit(url).query))


def test_signed_route_round_trip(settings):
    service = FileUrlService(settings)
    url = service.signed_route("stream", {"disk": "local", "path": "a/b.txt", "mode": "storage"})

    assert url.startswith("/filemanager/stream?")
    params = _query(url)
    assert params["disk"] == "local"
    assert "expires" in params and "signature" in params
    assert service.verify_signature("stream", params)


def test_tampered_parameters_fail_verification(settings):
    service = FileUrlService(settings)
    params = _query(service.signed_route("stream", {"disk": "local", "path": "a.txt"}))

    assert not service.verify_signature("stream", {**params, "path": "secret.txt"})
    assert not service.verify_signature("stream", {**params, "expires": str(int(params["expires"]) + 60)})
    assert not service.verify_signature("download", params)
    assert not service.verify_signature("stream", {k: v for k, v in params.items() if k != "signature"})
    assert not service.verify_signature("stream", {**params, "signature": "not-a-jwt"})


def test_expired_signature_fails(settings):
    service = FileUrlService(settings)
    params = _query(service.signed_route("stream", {"disk": "local", "path": "a.txt"}, expires_minutes=-1))
    assert not service.verify_signature("stream", params)


def test_download_url_includes_filename(settings):
    service = FileUrlService(settings)
    params = _query(service.get_download_url("local", "a.txt", filename="Report.txt"))
    assert params["filename"] == "Report.txt"
    assert service.verify_signature("download", params)


def test_strategy_selection(settings):
    settings.disks["s3"] = DiskConfig(driver="s3", bucket="media")
    settings.disks["shared"] = DiskConfig(driver="local", root=settings.disks["local"].root, url="/shared")
    settings.public_disks_raw = "public,shared"
    settings.force_signed_disks_raw = "shared"
    service = FileUrlService(settings)

    assert settings.stream_url_strategy == URL_STRATEGY_AUTO
    assert service.get_url_strategy("local") == "signed_route"
    assert service.get_url_strategy("public") == "public_url"
    assert service.get_url_strategy("s3") == "temporary_url"
    assert service.get_url_strategy("shared") == "signed_route"

    settings.stream_url_strategy = "direct"
    assert service.get_url_strategy("local") == "public_url"


def test_preview_url_per_disk(settings):
    service = FileUrlService(settings)
    assert service.get_preview_url("missing", "a.txt") is None
    assert service.get_preview_url("public", "img/a.png") == "/storage/img/a.png"

    signed = service.get_preview_url("local", "a.txt", mode="database", identifier="7")
    params = _query(signed)
    assert params["identifier"] == "7"
    assert service.verify_signature("stream", params)


def test_requires_authentication_and_disk_info(settings):
    settings.public_access_disks_raw = "public"
    service = FileUrlService(settings)
    assert service.requires_authentication("local")
    assert not service.requires_authentication("public")

    info = service.get_disk_info("public")
    assert info["exists"] is True
    assert info["driver"] == "local"
    assert info["requires_auth"] is False
    assert service.get_disk_info("nope")["exists"] is False
