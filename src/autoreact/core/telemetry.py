from __future__ import annotations

import logging
import time
from typing import Any

from ..types import ActionKind, CycleCounters

logger = logging.getLogger(__name__)


class Telemetry:
    """Process-wide counters plus the log sink that reports them.

    Counters can only be incremented. Components receive the same instance and
    read it through :attr:`counters`, which returns an immutable snapshot.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._logger = log or logger
        self._started_at = time.perf_counter()
        self._operations = 0
        self._reactions = 0
        self._advances = 0
        self._cycles = 0

    @property
    def counters(self) -> CycleCounters:
        return CycleCounters(
            operations=self._operations,
            reactions=self._reactions,
            advances=self._advances,
            cycles=self._cycles,
        )

    @property
    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self._started_at) * 1000, 2)

    def record_operation(self) -> None:
        self._operations += 1

    def record_activation(self, kind: ActionKind) -> None:
        if kind is ActionKind.REACT:
            self._reactions += 1
        elif kind is ActionKind.ADVANCE:
            self._advances += 1

    def record_cycle(self) -> None:
        self._cycles += 1

    def log(self, message: str, level: int = logging.INFO, **data: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {"counters": self.counters.as_log_payload(), "elapsed_ms": self.elapsed_ms}
        extra.update(data)
        self._logger.log(level, message, extra=extra)
