from __future__ import annotations

from .attempt import ActionAttempt
from .cycle import CycleController
from .gate import ReactionGate
from .scheduler import RetryScheduler
from .telemetry import Telemetry

__all__ = ["ActionAttempt", "CycleController", "ReactionGate", "RetryScheduler", "Telemetry"]
