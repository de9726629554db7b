"""Suspicion counter.

Combines the classifier's near-hip evidence with the fingertip-in-region check
into one bounded accumulator. The accumulator is the low-pass filter between
noisy per-frame evidence and the incident trigger.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FusionConfig:
    max_value: int = 20
    threshold: int = 6
    # Near-hip evidence together with a fingertip inside the cash area.
    strong_step: int = 2
    # Near-hip evidence alone.
    weak_step: int = 1
    decay_step: int = 1

    def __post_init__(self) -> None:
        if self.max_value <= 0:
            raise ValueError("max_value must be > 0")
        if not 0 < self.threshold <= self.max_value:
            raise ValueError("threshold must be in (0, max_value]")
        if self.strong_step < self.weak_step or self.weak_step <= 0:
            raise ValueError("steps must satisfy 0 < weak_step <= strong_step")
        if self.decay_step <= 0:
            raise ValueError("decay_step must be > 0")
        # A single frame must never reach the threshold on its own.
        if self.strong_step >= self.threshold:
            raise ValueError("threshold must exceed strong_step")


class SuspicionCounter:
    """Bounded integer in [0, max_value] updated once per frame."""

    def __init__(self, config: FusionConfig | None = None) -> None:
        self.config = config or FusionConfig()
        self.value = 0

    @property
    def triggered(self) -> bool:
        return self.value >= self.config.threshold

    def update(self, near_hip: bool, fingertip_in_region: bool) -> bool:
        """Apply one frame of evidence; return True on a rising threshold crossing."""

        cfg = self.config
        was_triggered = self.triggered
        if near_hip:
            step = cfg.strong_step if fingertip_in_region else cfg.weak_step
            self.value = min(cfg.max_value, self.value + step)
        else:
            self.value = max(0, self.value - cfg.decay_step)
        return self.triggered and not was_triggered

    def reset(self) -> None:
        self.value = 0
