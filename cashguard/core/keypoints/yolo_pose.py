"""Ultralytics YOLO pose integration.

YOLO pose models emit the 17 COCO keypoints in pixel coordinates. They are
remapped onto the canonical body landmark indices and normalized by the frame
size so the classifier sees the same topology as any other provider.
"""

from __future__ import annotations

import importlib
from contextlib import nullcontext
from typing import Any

import numpy as np
from ultralytics import YOLO

from cashguard.core.types import Frame, Keypoint, KeypointFrame, KeypointSet, PoseLandmark

DEFAULT_POSE_MODEL = "yolo11n-pose.pt"

# COCO-17 index -> canonical landmark.
COCO_TO_CANONICAL: dict[int, PoseLandmark] = {
    0: PoseLandmark.NOSE,
    5: PoseLandmark.LEFT_SHOULDER,
    6: PoseLandmark.RIGHT_SHOULDER,
    9: PoseLandmark.LEFT_WRIST,
    10: PoseLandmark.RIGHT_WRIST,
    11: PoseLandmark.LEFT_HIP,
    12: PoseLandmark.RIGHT_HIP,
}


def _to_numpy(value: Any) -> np.ndarray:
    if hasattr(value, "cpu"):
        value = value.cpu()
    return value.numpy() if hasattr(value, "numpy") else np.asarray(value)


def coco_to_pose(kpts: np.ndarray, frame_w: int, frame_h: int) -> KeypointSet:
    """Convert one (17, 2|3) COCO keypoint array in pixels to a canonical set."""

    fw = float(frame_w) if frame_w > 0 else 1.0
    fh = float(frame_h) if frame_h > 0 else 1.0
    pose: dict[int, Keypoint] = {}
    for coco_idx, landmark in COCO_TO_CANONICAL.items():
        if coco_idx >= kpts.shape[0]:
            continue
        row = kpts[coco_idx]
        conf = float(row[2]) if row.shape[0] >= 3 else 1.0
        x, y = float(row[0]), float(row[1])
        # Ultralytics reports undetected keypoints at (0, 0).
        if x == 0.0 and y == 0.0:
            conf = 0.0
        pose[int(landmark)] = Keypoint(x=x / fw, y=y / fh, visibility=conf)
    return pose


class YoloPoseProvider:
    """Pose provider backed by an Ultralytics pose model (CPU by default)."""

    def __init__(
        self,
        model_name: str = DEFAULT_POSE_MODEL,
        conf: float = 0.3,
        imgsz: int | None = None,
        device: str = "cpu",
    ) -> None:
        self.model_name = model_name
        self.is_onnx = model_name.lower().endswith(".onnx")
        self.device = device
        self._torch_inference_mode: Any | None = None
        if not self.is_onnx:
            try:
                torch = importlib.import_module("torch")
                self._torch_inference_mode = torch.inference_mode
            except Exception:
                self._torch_inference_mode = None
        self.model = YOLO(model_name, task="pose")
        self.predict_kwargs: dict[str, Any] = {
            "conf": float(conf),
            "verbose": False,
            "classes": [0],
            "device": self.device,
        }
        if imgsz:
            self.predict_kwargs["imgsz"] = int(imgsz)

    def detect(self, frame: Frame, timestamp: float) -> KeypointFrame:
        infer_ctx = (
            self._torch_inference_mode()
            if self._torch_inference_mode is not None
            else nullcontext()
        )
        with infer_ctx:
            results = self.model.predict(frame, **self.predict_kwargs)
        if not results:
            return KeypointFrame()

        kpts = getattr(results[0], "keypoints", None)
        data = getattr(kpts, "data", None) if kpts is not None else None
        if data is None:
            return KeypointFrame()
        arr = _to_numpy(data)
        if arr.ndim != 3 or arr.shape[0] == 0:
            return KeypointFrame()

        h, w = frame.shape[:2]
        return KeypointFrame(poses=[coco_to_pose(person, w, h) for person in arr])

    def close(self) -> None:
        self.model = None
