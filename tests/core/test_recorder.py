import cv2
import numpy as np
import pytest

from cashguard.core.capture.buffer import BufferMode, Chunk
from cashguard.core.capture.recorder import MjpegChunkEncoder, RecordingSession, assemble


class CountingEncoder:
    media_type = "application/test"

    def __init__(self):
        self.calls = 0

    def encode(self, frame):
        self.calls += 1
        return f"f{self.calls};".encode()

    def release(self):
        pass


def test_mjpeg_encoder_produces_jpeg():
    enc = MjpegChunkEncoder(jpeg_quality=80)
    data = enc.encode(np.zeros((48, 64, 3), dtype=np.uint8))
    assert data is not None
    assert data[:2] == b"\xff\xd8"
    assert data[-2:] == b"\xff\xd9"


def test_mjpeg_encoder_downscales_wide_frames():
    enc = MjpegChunkEncoder(output_width=32)
    data = enc.encode(np.zeros((48, 64, 3), dtype=np.uint8))
    img = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    assert img.shape[:2] == (24, 32)


def test_mjpeg_encoder_stops_after_release():
    enc = MjpegChunkEncoder()
    enc.release()
    assert enc.encode(np.zeros((8, 8, 3), dtype=np.uint8)) is None


def test_mjpeg_encoder_rejects_bad_quality():
    with pytest.raises(ValueError):
        MjpegChunkEncoder(jpeg_quality=5)


def test_assemble_concatenates_in_order():
    art = assemble([Chunk(1.0, b"a"), Chunk(2.0, b"b")], "x/y")
    assert art.data == b"ab"
    assert art.chunk_count == 2
    assert (art.started_at, art.ended_at) == (1.0, 2.0)
    assert art.media_type == "x/y"
    assert assemble([]).empty is True


def test_session_write_stop_and_callbacks():
    seen = []
    session = RecordingSession(CountingEncoder(), BufferMode.LINEAR)
    session.on_chunk(seen.append)
    session.write(np.zeros((4, 4, 3), dtype=np.uint8), 0.0)
    session.write(np.zeros((4, 4, 3), dtype=np.uint8), 0.1)
    assert [c.timestamp for c in seen] == [0.0, 0.1]
    artifact = session.stop()
    assert artifact.data == b"f1;f2;"
    assert artifact.media_type == "application/test"
    assert session.write(np.zeros((4, 4, 3), dtype=np.uint8), 0.2) is None


def test_failing_callback_does_not_break_recording():
    session = RecordingSession(CountingEncoder(), BufferMode.LINEAR)

    def boom(_chunk):
        raise RuntimeError("listener failed")

    session.on_chunk(boom)
    assert session.write(np.zeros((4, 4, 3), dtype=np.uint8), 0.0) is not None
    assert len(session.buffer) == 1


def test_recent_window_on_sliding_session():
    session = RecordingSession(CountingEncoder(), BufferMode.SLIDING, window_s=10.0)
    for i in range(5):
        session.write(np.zeros((4, 4, 3), dtype=np.uint8), float(i))
    window = session.recent_window(2.0)
    assert window.chunk_count == 3
    assert window.data == b"f3;f4;f5;"
