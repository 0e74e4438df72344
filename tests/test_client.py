import json

import pytest
import requests

from paintsphere_app.config import ServerConfig
from paintsphere_app.errors import NetworkError, StitchFailure, StitchFailureCode, StitchTimeoutError, ValidationError
from paintsphere_app.guidance.coverage import CoverageGrid
from paintsphere_app.guidance.session import CaptureSession
from paintsphere_app.models.orientation import Orientation
from paintsphere_app.transport.client import StitchClient


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b""):
        self.status_code = status_code
        self._payload = payload
        self.content = content

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeHttp:
    """Stand-in for ``requests.Session`` that replays scripted answers."""

    def __init__(self, health=None, posts=(), downloads=None):
        self.health = health or FakeResponse(payload={"status": "ok", "capabilities": {}})
        self.posts = list(posts)
        self.downloads = downloads or {}
        self.calls = []
        self.uploads = []
        self.closed = False

    def get(self, url, timeout=None):
        self.calls.append(("GET", url, timeout))
        if url in self.downloads:
            return self.downloads[url]
        if isinstance(self.health, Exception):
            raise self.health
        return self.health

    def post(self, url, files=None, data=None, timeout=None):
        self.calls.append(("POST", url, timeout))
        self.uploads.append(
            {
                "files": [(field, name, stream.read(), ctype) for field, (name, stream, ctype) in files],
                "data": data,
            }
        )
        answer = self.posts.pop(0)
        if callable(answer):
            answer = answer()
        if isinstance(answer, Exception):
            raise answer
        return answer

    def close(self):
        self.closed = True


@pytest.fixture
def session(tmp_path):
    session = CaptureSession(grid=CoverageGrid())
    for index, yaw in enumerate((0.0, 60.0, 120.0)):
        path = tmp_path / f"photo_{index}.jpg"
        path.write_bytes(f"jpeg-{index}".encode())
        session.add_photo(f"file://{path}", Orientation(yaw, 5.0), 1000.0 + index, 19.5, 26.0)
    return session


def make_client(http, **overrides):
    config = ServerConfig(server_url="http://stitch.local:3000/", **overrides)
    return StitchClient(config, http=http)


def ok_response():
    return FakeResponse(payload={"success": True, "outputRef": "pano_1_abc.jpg", "panoramaId": "pano_1_abc"})


def test_submit_checks_health_then_uploads(session):
    http = FakeHttp(posts=[ok_response()])
    response = make_client(http).submit(session)

    assert response.success
    assert response.output_ref == "pano_1_abc.jpg"
    assert response.details == {"panoramaId": "pano_1_abc"}

    assert [call[:2] for call in http.calls] == [
        ("GET", "http://stitch.local:3000/api/health"),
        ("POST", "http://stitch.local:3000/api/stitch-panorama"),
    ]
    assert http.calls[0][2] == 5.0
    assert http.calls[1][2] == (10.0, 300.0)

    upload = http.uploads[0]
    assert [part[0] for part in upload["files"]] == ["photos"] * 3
    assert upload["files"][1][1] == "photo_1_y60_p5.jpg"
    assert upload["files"][2][2] == b"jpeg-2"
    assert upload["files"][0][3] == "image/jpeg"

    metadata = json.loads(upload["data"]["metadata"])
    assert metadata["captureType"] == "paint-sphere-360"
    assert metadata["photoCount"] == 3
    assert json.dumps(metadata["orientations"], separators=(",", ":")) == session.orientation_record_json()


def test_unhealthy_server_aborts_before_upload(session):
    http = FakeHttp(health=FakeResponse(payload={"status": "degraded"}))
    with pytest.raises(NetworkError):
        make_client(http).submit(session)
    assert http.uploads == []


def test_unreachable_server(session):
    http = FakeHttp(health=requests.ConnectionError("refused"))
    with pytest.raises(NetworkError) as excinfo:
        make_client(http).submit(session)
    assert not isinstance(excinfo.value, StitchTimeoutError)


def test_connection_errors_are_retried(session):
    http = FakeHttp(posts=[requests.ConnectionError("reset"), ok_response()])
    response = make_client(http).submit(session)
    assert response.success
    assert len(http.uploads) == 2
    # files are reopened for every attempt
    assert http.uploads[1]["files"][0][2] == b"jpeg-0"


def test_timeout_is_not_retried(session):
    http = FakeHttp(posts=[requests.Timeout("slow"), ok_response()])
    with pytest.raises(StitchTimeoutError):
        make_client(http).submit(session)
    assert len(http.uploads) == 1


def test_server_failure_is_classified(session):
    failed = FakeResponse(500, {"success": False, "error": "homography-failure: Homography estimation failed."})
    http = FakeHttp(posts=[failed])
    with pytest.raises(StitchFailure) as excinfo:
        make_client(http).submit(session)
    assert excinfo.value.code is StitchFailureCode.HOMOGRAPHY_FAILURE


def test_http_error_without_body(session):
    http = FakeHttp(posts=[FakeResponse(502), FakeResponse(502)])
    with pytest.raises(NetworkError):
        make_client(http, max_retries=1).submit(session)
    assert len(http.uploads) == 2


def test_missing_photo_file(session, tmp_path):
    (tmp_path / "photo_1.jpg").unlink()
    with pytest.raises(ValidationError):
        make_client(FakeHttp(posts=[ok_response()])).submit(session)


def test_empty_session_is_rejected():
    with pytest.raises(ValidationError):
        make_client(FakeHttp()).submit(CaptureSession(grid=CoverageGrid()))


def test_cancel_aborts_without_retry(session):
    http = FakeHttp()
    client = make_client(http)

    def cancelled():
        client.cancel()
        return requests.ConnectionError("connection closed")

    http.posts = [cancelled, ok_response()]
    with pytest.raises(NetworkError, match="cancelled"):
        client.submit(session)
    assert http.closed
    assert len(http.uploads) == 1


def test_download_saves_panorama(tmp_path):
    url = "http://stitch.local:3000/panoramas/pano_1_abc.jpg"
    http = FakeHttp(downloads={url: FakeResponse(content=b"\xff\xd8panorama")})
    path = make_client(http).download("pano_1_abc.jpg", tmp_path / "out")
    assert path == tmp_path / "out" / "pano_1_abc.jpg"
    assert path.read_bytes() == b"\xff\xd8panorama"


def test_server_url_from_environment(monkeypatch):
    monkeypatch.setenv("PAINTSPHERE_STITCH_SERVER", "http://10.0.0.5:3000/")
    config = ServerConfig.from_env()
    assert config.endpoint("/api/health") == "http://10.0.0.5:3000/api/health"
    assert ServerConfig.from_env(server_url="http://other").server_url == "http://other"
