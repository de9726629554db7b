"""Offline run of the detection session over a video file.

Timestamps come from the video (frame index / FPS), so timing behaves as if
the file were watched live. Uploads are disabled; captured clips can be saved
locally with `--clips-dir`.
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from cashguard.api.services.engine import build_session
from cashguard.core.config.settings import MonitorSettings, load_settings
from cashguard.core.keypoints.base import KeypointProvider, NullKeypointProvider
from cashguard.core.types import IncidentPhase
from cashguard.core.video_sources.base import FileSource

DEFAULT_FPS = 25.0


def _to_jsonable(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return _to_jsonable(asdict(obj))
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(v) for v in obj]
    if isinstance(obj, bytes):
        return len(obj)
    return obj


def _provider(args: argparse.Namespace, settings: MonitorSettings) -> KeypointProvider:
    if args.mock:
        return NullKeypointProvider()
    from cashguard.core.keypoints.yolo_pose import YoloPoseProvider

    return YoloPoseProvider(args.model or settings.pose_model, conf=settings.pose_confidence)


def run(args: argparse.Namespace) -> list[dict[str, Any]]:
    patch: dict[str, Any] = {}
    if args.sensitivity is not None:
        patch["sensitivity"] = args.sensitivity
    if args.birds_eye:
        patch["birds_eye"] = True
    base = load_settings()
    settings = MonitorSettings(**{**base.model_dump(), **patch})

    try:
        source = FileSource(args.input, realtime=False, loop=False)
    except RuntimeError as exc:
        raise SystemExit(str(exc)) from None
    fps = source.fps() or DEFAULT_FPS
    provider = _provider(args, settings)
    session = build_session(settings, uploads=False)
    session.start(0.0)

    outputs: list[dict[str, Any]] = []
    try:
        while True:
            frame = source.read()
            if frame is None:
                break
            now = len(outputs) / fps
            result = session.process(frame, provider.detect(frame, now), now)
            outputs.append(_to_jsonable(result))
            if args.max_frames and len(outputs) >= args.max_frames:
                break
        end = len(outputs) / fps
        machine = session.machine
        # A recording still open at EOF is closed at its scheduled end.
        if machine.phase is IncidentPhase.RECORDING and machine.detected_at is not None:
            end = max(end, machine.detected_at + machine.config.recording_s)
            machine.tick(False, end)
        # Let the worker report so every incident carries its final state.
        session.adapter.worker.wait_idle(timeout=5.0)
        machine.tick(False, end)
        incidents = list(session.machine.incidents.values())
    finally:
        source.close()
        provider.close()

    if args.clips_dir:
        clips_dir = Path(args.clips_dir)
        clips_dir.mkdir(parents=True, exist_ok=True)
        for incident in incidents:
            if incident.data:
                (clips_dir / f"{incident.id}.mjpeg").write_bytes(incident.data)

    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump({"frames": outputs, "incidents": _to_jsonable(incidents)}, f, indent=2)
    session.stop()
    session.adapter.close()
    print(f"Wrote {len(outputs)} frame results and {len(incidents)} incidents to {out_path}")
    return outputs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run cash-theft detection on a video file")
    parser.add_argument("--input", required=True, help="Path to video file")
    parser.add_argument("--output", required=True, help="Where to save JSON output")
    parser.add_argument("--model", default=None, help="Pose model (defaults to settings)")
    parser.add_argument("--sensitivity", type=float, default=None)
    parser.add_argument("--birds-eye", action="store_true", help="Overhead camera mode")
    parser.add_argument("--clips-dir", default=None, help="Save captured clips here")
    parser.add_argument("--max-frames", type=int, default=0, help="Limit frames for quick tests")
    parser.add_argument("--mock", action="store_true", help="No pose model (no model download)")
    return parser


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run(build_parser().parse_args())
