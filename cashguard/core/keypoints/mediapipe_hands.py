"""MediaPipe Hands fingertip provider (optional `hands` extra)."""

from __future__ import annotations

import importlib
import logging
import threading
from typing import Any

import cv2

from cashguard.core.types import FINGERTIPS, Frame, Keypoint, KeypointFrame, KeypointSet

logger = logging.getLogger(__name__)


def landmarks_to_hand(landmarks: Any) -> KeypointSet:
    """Keep the fingertip landmarks of one MediaPipe hand result."""

    points = landmarks.landmark
    hand: dict[int, Keypoint] = {}
    for idx in FINGERTIPS:
        if int(idx) >= len(points):
            continue
        lm = points[int(idx)]
        hand[int(idx)] = Keypoint(x=float(lm.x), y=float(lm.y), z=float(getattr(lm, "z", 0.0)))
    return hand


class MediaPipeHandProvider:
    """Hand landmarks via `mediapipe.solutions.hands`.

    MediaPipe graphs are not thread-safe; calls are serialized with a lock.
    """

    def __init__(
        self,
        max_hands: int = 4,
        detection_confidence: float = 0.5,
        tracking_confidence: float = 0.5,
    ) -> None:
        mp = importlib.import_module("mediapipe")
        self._lock = threading.Lock()
        self.hands = mp.solutions.hands.Hands(
            static_image_mode=False,
            max_num_hands=int(max_hands),
            min_detection_confidence=float(detection_confidence),
            min_tracking_confidence=float(tracking_confidence),
        )
        logger.info("MediaPipe Hands initialized (max_hands=%d)", max_hands)

    def detect(self, frame: Frame, timestamp: float) -> KeypointFrame:
        if self.hands is None:
            return KeypointFrame()
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        with self._lock:
            results = self.hands.process(rgb)
        found = getattr(results, "multi_hand_landmarks", None) or []
        return KeypointFrame(hands=[landmarks_to_hand(h) for h in found])

    def close(self) -> None:
        if self.hands is not None:
            self.hands.close()
            self.hands = None
