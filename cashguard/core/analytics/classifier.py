"""Geometric hand-to-hip classifier.

Flags a wrist that sits close to the same-side hip, the typical motion of a
hand moving toward a pocket or waistband. Distances are measured in normalized
image coordinates and scaled by the person's apparent body size, so the same
sensitivity works for near and far cashiers.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

from cashguard.core.types import Keypoint, KeypointSet, PoseLandmark

REQUIRED_LANDMARKS: tuple[PoseLandmark, ...] = (
    PoseLandmark.LEFT_SHOULDER,
    PoseLandmark.RIGHT_SHOULDER,
    PoseLandmark.LEFT_WRIST,
    PoseLandmark.RIGHT_WRIST,
    PoseLandmark.LEFT_HIP,
    PoseLandmark.RIGHT_HIP,
)

SENSITIVITY_RANGE = (0.2, 1.0)


@dataclass(frozen=True)
class ClassifierConfig:
    # Distance threshold as a fraction of body scale.
    sensitivity: float = 0.6
    min_visibility: float = 0.4
    # Person too small/far below this body scale (normalized units).
    min_body_scale: float = 0.05
    # Allowed |wrist.x - hip.x| as a fraction of body scale.
    alignment_fraction: float = 0.5
    # Disabled for overhead ("birds-eye") cameras where vertical order is unreliable.
    require_below_shoulder: bool = True


@dataclass(frozen=True)
class HandEvidence:
    distance: float
    horizontal_offset: float
    below_shoulder: bool
    near_hip: bool


@dataclass(frozen=True)
class PoseEvidence:
    body_scale: float
    threshold: float
    left: HandEvidence
    right: HandEvidence

    @property
    def near_hip(self) -> bool:
        return self.left.near_hip or self.right.near_hip


def _distance(a: Keypoint, b: Keypoint) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def _required(pose: KeypointSet, min_visibility: float) -> dict[PoseLandmark, Keypoint] | None:
    found: dict[PoseLandmark, Keypoint] = {}
    for idx in REQUIRED_LANDMARKS:
        kp = pose.get(int(idx))
        if kp is None or kp.visibility < min_visibility:
            return None
        found[idx] = kp
    return found


def _hand(
    wrist: Keypoint,
    hip: Keypoint,
    shoulder: Keypoint,
    body_scale: float,
    config: ClassifierConfig,
) -> HandEvidence:
    distance = _distance(wrist, hip)
    offset = abs(wrist.x - hip.x)
    # Image y grows downward.
    below_shoulder = wrist.y > shoulder.y
    near = distance < config.sensitivity * body_scale and offset < (
        config.alignment_fraction * body_scale
    )
    if config.require_below_shoulder:
        near = near and below_shoulder
    return HandEvidence(
        distance=distance,
        horizontal_offset=offset,
        below_shoulder=below_shoulder,
        near_hip=near,
    )


def classify_pose(pose: KeypointSet, config: ClassifierConfig) -> PoseEvidence | None:
    """Evaluate one pose; returns None when the frame carries no usable evidence."""

    kps = _required(pose, config.min_visibility)
    if kps is None:
        return None

    shoulder_width = _distance(kps[PoseLandmark.LEFT_SHOULDER], kps[PoseLandmark.RIGHT_SHOULDER])
    hip_width = _distance(kps[PoseLandmark.LEFT_HIP], kps[PoseLandmark.RIGHT_HIP])
    body_scale = max(shoulder_width, hip_width)
    if body_scale < config.min_body_scale:
        return None

    left = _hand(
        kps[PoseLandmark.LEFT_WRIST],
        kps[PoseLandmark.LEFT_HIP],
        kps[PoseLandmark.LEFT_SHOULDER],
        body_scale,
        config,
    )
    right = _hand(
        kps[PoseLandmark.RIGHT_WRIST],
        kps[PoseLandmark.RIGHT_HIP],
        kps[PoseLandmark.RIGHT_SHOULDER],
        body_scale,
        config,
    )
    return PoseEvidence(
        body_scale=body_scale,
        threshold=config.sensitivity * body_scale,
        left=left,
        right=right,
    )


def classify_poses(
    poses: Iterable[KeypointSet], config: ClassifierConfig
) -> tuple[bool, list[PoseEvidence]]:
    """Return (near_hip, evidence) across every pose in the frame."""

    evidence: list[PoseEvidence] = []
    for pose in poses:
        result = classify_pose(pose, config)
        if result is not None:
            evidence.append(result)
    return any(e.near_hip for e in evidence), evidence
