import os

import pytest
from werkzeug.http import http_date

from video_server import app
from video_stream import VideoOpenError, open_video, stream_video


@pytest.fixture
def clip(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"0123456789")
    return str(path)


def test_open_video_returns_size(clip):
    assert open_video(clip) == 10


def test_open_missing_file(tmp_path):
    with pytest.raises(VideoOpenError) as info:
        open_video(str(tmp_path / "gone.mp4"))
    assert info.value.path == str(tmp_path / "gone.mp4")


def test_open_directory(tmp_path):
    with pytest.raises(VideoOpenError):
        open_video(str(tmp_path))


def test_stream_missing_file_raises(tmp_path):
    with app.test_request_context("/"):
        with pytest.raises(VideoOpenError):
            stream_video(str(tmp_path / "gone.mp4"), "video/mp4")


def test_stream_relative_path_uses_cwd(tmp_path, monkeypatch):
    (tmp_path / "rel.webm").write_bytes(b"webm")
    monkeypatch.chdir(tmp_path)
    with app.test_request_context("/"):
        resp = stream_video("rel.webm", "video/webm")
        resp.direct_passthrough = False
        assert resp.get_data() == b"webm"
        assert resp.mimetype == "video/webm"
        resp.close()


# -----------------------------
# over HTTP
# -----------------------------
def test_full_response_has_validators(client):
    resp = client.get("/video/0.mp4")
    assert resp.status_code == 200
    assert resp.headers["Accept-Ranges"] == "bytes"
    assert resp.headers["Content-Length"] == "10"
    assert resp.headers.get("ETag")
    assert resp.headers.get("Last-Modified")


@pytest.mark.parametrize(
    "header, status, data, content_range",
    [
        ("bytes=2-5", 206, b"2345", "bytes 2-5/10"),
        ("bytes=-3", 206, b"789", "bytes 7-9/10"),
        ("bytes=8-100", 206, b"89", "bytes 8-9/10"),
        # invalid ranges are ignored
        ("bytes=5-2", 200, b"0123456789", None),
        ("items=0-1", 200, b"0123456789", None),
    ],
)
def test_range_requests(client, header, status, data, content_range):
    resp = client.get("/video/0.mp4", headers={"Range": header})
    assert resp.status_code == status
    assert resp.data == data
    assert resp.headers.get("Content-Range") == content_range


def test_unsatisfiable_range(client):
    resp = client.get("/video/0.mp4", headers={"Range": "bytes=20-"})
    assert resp.status_code == 416
    assert resp.headers["Content-Range"] == "bytes */10"


def test_stale_if_range_sends_whole_file(client):
    resp = client.get("/video/0.mp4", headers={"Range": "bytes=3-", "If-Range": '"stale-etag"'})
    assert resp.status_code == 200
    assert resp.data == b"0123456789"


def test_matching_if_range_sends_partial(client):
    etag = client.get("/video/0.mp4").headers["ETag"]
    resp = client.get("/video/0.mp4", headers={"Range": "bytes=3-", "If-Range": etag})
    assert resp.status_code == 206
    assert resp.data == b"3456789"


def test_if_modified_since_not_modified(client, video_root):
    mtime = os.stat(video_root / "a.mp4").st_mtime
    resp = client.get("/video/0.mp4", headers={"If-Modified-Since": http_date(mtime + 3600)})
    assert resp.status_code == 304
    assert resp.data == b""


def test_if_none_match(client):
    etag = client.get("/video/1.mkv").headers["ETag"]
    resp = client.get("/video/1.mkv", headers={"If-None-Match": etag})
    assert resp.status_code == 304
