"""Keypoint provider interface.

Providers turn a BGR frame into pose and hand landmark sets in normalized
coordinates, indexed by the canonical landmark enums in `core.types`.
"""

from __future__ import annotations

import logging
from typing import Protocol

from cashguard.core.types import Frame, KeypointFrame

logger = logging.getLogger(__name__)


class KeypointProvider(Protocol):
    def detect(self, frame: Frame, timestamp: float) -> KeypointFrame:
        """Return the poses and hands visible in the frame."""

    def close(self) -> None:
        """Release model resources."""


class NullKeypointProvider:
    """Provider that never sees anyone (used when models are disabled)."""

    def detect(self, frame: Frame, timestamp: float) -> KeypointFrame:
        return KeypointFrame()

    def close(self) -> None:
        return None


class CompositeKeypointProvider:
    """Poses from one provider, hands from another."""

    def __init__(self, pose: KeypointProvider, hands: KeypointProvider | None = None) -> None:
        self.pose = pose
        self.hands = hands

    def detect(self, frame: Frame, timestamp: float) -> KeypointFrame:
        poses = self.pose.detect(frame, timestamp).poses
        hands = self.hands.detect(frame, timestamp).hands if self.hands is not None else []
        return KeypointFrame(poses=poses, hands=hands)

    def close(self) -> None:
        try:
            self.pose.close()
        finally:
            if self.hands is not None:
                self.hands.close()
