import pytest
import requests

from cashguard.core.capture.upload import ClipUploader, iso_utc
from cashguard.core.errors import EmptyArtifactError, UploadError
from cashguard.core.types import Incident


class FakeResponse:
    def __init__(self, status_code=201, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response or FakeResponse(body={"id": "abc123"})
        self.exc = exc
        self.calls = []
        self.closed = False

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.exc is not None:
            raise self.exc
        return self.response

    def close(self):
        self.closed = True


def incident(data=b"\xff\xd8jpeg\xff\xd9"):
    return Incident(
        cashier_label="Till 3",
        detected_at=100.0,
        clip_start_time=90.0,
        clip_end_time=103.0,
        data=data,
    )


def test_iso_utc_format():
    assert iso_utc(0) == "1970-01-01T00:00:00.000Z"
    assert iso_utc(1.5) == "1970-01-01T00:00:01.500Z"


def test_upload_posts_multipart_form():
    session = FakeSession()
    uploader = ClipUploader("http://clips.local/api/clips", token="t0k", session=session)
    inc = incident()
    receipt = uploader.upload(inc)
    assert receipt.clip_id == "abc123"

    url, kwargs = session.calls[0]
    assert url == "http://clips.local/api/clips"
    assert kwargs["data"] == {
        "cashierName": "Till 3",
        "fromTime": "1970-01-01T00:01:30.000Z",
        "toTime": "1970-01-01T00:01:43.000Z",
    }
    name, payload, media_type = kwargs["files"]["clip"]
    assert name == f"{inc.id}.mjpeg"
    assert payload == inc.data
    assert media_type == "video/x-motion-jpeg"
    assert kwargs["headers"] == {"Authorization": "Bearer t0k"}
    assert kwargs["timeout"] == 15.0


def test_no_token_no_auth_header():
    session = FakeSession()
    ClipUploader(session=session).upload(incident())
    assert session.calls[0][1]["headers"] == {}


def test_empty_clip_is_refused_before_network():
    session = FakeSession()
    with pytest.raises(EmptyArtifactError):
        ClipUploader(session=session).upload(incident(data=b""))
    assert session.calls == []


def test_http_error_raises_upload_error():
    session = FakeSession(response=FakeResponse(status_code=500, text="boom"))
    with pytest.raises(UploadError) as exc:
        ClipUploader(session=session).upload(incident())
    assert exc.value.status_code == 500


def test_network_error_raises_upload_error():
    session = FakeSession(exc=requests.ConnectionError("refused"))
    with pytest.raises(UploadError):
        ClipUploader(session=session).upload(incident())


@pytest.mark.parametrize("body", [None, {}, {"id": ""}, ["abc"]])
def test_missing_id_raises_upload_error(body):
    session = FakeSession(response=FakeResponse(status_code=200, body=body))
    with pytest.raises(UploadError):
        ClipUploader(session=session).upload(incident())


def test_close_closes_session():
    session = FakeSession()
    ClipUploader(session=session).close()
    assert session.closed is True
