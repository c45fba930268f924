"""存储盘元数据：本地与 S3 的 stat 都只做一次后端查询。"""

from datetime import datetime, timezone

import boto3
import pytest
from botocore.stub import Stubber

from app.packages.filemanager.core.config import DiskConfig
from app.packages.filemanager.services.storage_backends import S3Disk


@pytest.fixture()
def s3_disk():
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        disk = S3Disk("s3", DiskConfig(driver="s3", bucket="media", prefix="tenant"), client=client)
        yield disk, stubber


def test_local_stat_reads_size_mime_and_mtime(local_disk):
    (local_disk.root / "clip.mp4").write_bytes(b"0123456789")

    info = local_disk.stat("clip.mp4")

    assert (info.size, info.mime_type) == (10, "video/mp4")
    assert info.last_modified == local_disk.last_modified("clip.mp4")
    with pytest.raises(FileNotFoundError):
        local_disk.stat("missing.mp4")


def test_s3_stat_uses_a_single_head_request(s3_disk):
    disk, stubber = s3_disk
    modified = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    stubber.add_response(
        "head_object",
        {"ContentLength": 10, "ContentType": "binary/octet-stream", "LastModified": modified},
        {"Bucket": "media", "Key": "tenant/videos/clip.mp4"},
    )

    info = disk.stat("videos/clip.mp4")

    stubber.assert_no_pending_responses()
    assert info.size == 10
    # 通用类型回退到按扩展名推断
    assert info.mime_type == "video/mp4"
    assert info.last_modified == int(modified.timestamp())


def test_s3_stat_missing_object_raises(s3_disk):
    disk, stubber = s3_disk
    stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)

    with pytest.raises(FileNotFoundError):
        disk.stat("gone.png")
