import io

import pytest

from vidmark.core.errors import FetchError, InvalidParameters, UploadError
from vidmark.services.storage import sanitize_file_name

SOURCE_URL = "https://store/videos/a.mp4"


def test_fetch_to_local_writes_body(storage, tmp_path):
    target = storage.fetch_to_local(SOURCE_URL, tmp_path, "source.mp4")
    assert target == tmp_path / "source.mp4"
    assert target.read_bytes() == b"source-video-bytes"


def test_fetch_uses_remote_name_when_none_given(storage, tmp_path):
    target = storage.fetch_to_local(SOURCE_URL, tmp_path)
    assert target.name == "a.mp4"


def test_fetch_non_success_status(storage, tmp_path):
    with pytest.raises(FetchError) as excinfo:
        storage.fetch_to_local("https://store/videos/missing.mp4", tmp_path)
    assert "HTTP 404" in excinfo.value.message


def test_fetch_connection_error(storage, fake_http, tmp_path):
    fake_http.unreachable.add("https://down.example/a.mp4")
    with pytest.raises(FetchError):
        storage.fetch_to_local("https://down.example/a.mp4", tmp_path)


def test_fetch_rejects_non_http_scheme(storage, fake_http, tmp_path):
    with pytest.raises(FetchError):
        storage.fetch_to_local("file:///etc/passwd", tmp_path)
    assert fake_http.requested == []


def test_push_from_local_returns_public_url(storage, fake_s3, tmp_path):
    local = tmp_path / "output.webm"
    local.write_bytes(b"encoded")
    url = storage.push_from_local(local, "videos/watermarked/abc_1.webm", "video/webm")
    assert url == "https://store/videos/watermarked/abc_1.webm"
    assert fake_s3.objects["videos/watermarked/abc_1.webm"] == (b"encoded", "video/webm")


def test_push_failure_raises_upload_error(storage, fake_s3, tmp_path):
    fake_s3.fail_uploads = True
    local = tmp_path / "output.mp4"
    local.write_bytes(b"encoded")
    with pytest.raises(UploadError) as excinfo:
        storage.push_from_local(local, "videos/watermarked/x.mp4", "video/mp4")
    assert "AccessDenied" in excinfo.value.message


def test_put_stream_stores_under_upload_prefix(storage, fake_s3):
    key, url = storage.put_stream(io.BytesIO(b"raw"), "my clip.mp4", "video/mp4")
    assert key.startswith("videos/")
    assert key.endswith("_my_clip.mp4")
    assert url == f"https://store/{key}"
    assert fake_s3.objects[key] == (b"raw", "video/mp4")


def test_presigned_upload(storage):
    presigned = storage.issue_presigned_upload_url("../holiday.mov", "video/quicktime")
    assert presigned.key.startswith("videos/")
    assert presigned.key.endswith("_holiday.mov")
    assert presigned.public_url == f"https://store/{presigned.key}"
    assert "X-Amz-Expires=600" in presigned.upload_url


def test_presigned_upload_requires_name_and_type(storage):
    with pytest.raises(InvalidParameters):
        storage.issue_presigned_upload_url("", "video/mp4")


def test_scratch_directory_removed_on_error(storage):
    with pytest.raises(RuntimeError):
        with storage.scratch("job-1") as scratch:
            (scratch / "partial.mp4").write_bytes(b"data")
            raise RuntimeError("boom")
    assert not scratch.exists()


def test_sanitize_file_name():
    assert sanitize_file_name("weird name (1).mp4") == "weird_name__1_.mp4"
    assert sanitize_file_name("") == "upload"
