"""Rate-limited logging for per-frame diagnostics."""

from __future__ import annotations

import logging
from typing import Any

from cashguard.core.types import DEFAULT_CLOCK, Clock


class ThrottledLogger:
    """Emit at most one record per key every `interval_s` seconds.

    Frame loops run at camera rate; dumping landmark positions on every frame
    drowns the log. Throttling is keyed so unrelated messages don't starve each
    other. It only decides whether to log, never what the detector does.
    """

    def __init__(
        self,
        logger: logging.Logger,
        interval_s: float = 1.0,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        self.logger = logger
        self.interval_s = float(interval_s)
        self.clock = clock
        self._last: dict[str, float] = {}

    def _due(self, key: str) -> bool:
        now = self.clock()
        last = self._last.get(key)
        if last is not None and (now - last) < self.interval_s:
            return False
        self._last[key] = now
        return True

    def debug(self, key: str, msg: str, *args: Any) -> bool:
        if not self.logger.isEnabledFor(logging.DEBUG):
            return False
        if not self._due(key):
            return False
        self.logger.debug(msg, *args)
        return True

    def info(self, key: str, msg: str, *args: Any) -> bool:
        if not self.logger.isEnabledFor(logging.INFO):
            return False
        if not self._due(key):
            return False
        self.logger.info(msg, *args)
        return True
