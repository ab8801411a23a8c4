from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

CycleStrategy = Literal["sequenced", "poll"]


class ActionKind(str, Enum):
    """Which success counter an activation contributes to."""

    REACT = "react"
    ADVANCE = "advance"


class AttemptStatus(str, Enum):
    ACTIVATED = "activated"
    NOT_FOUND = "not_found"
    NOT_INTERACTABLE = "not_interactable"
    ACTIVATION_ERROR = "activation_error"


class CyclePhase(str, Enum):
    EVALUATING_REACTION_STATE = "evaluating_reaction_state"
    ATTEMPTING_REACT = "attempting_react"
    ATTEMPTING_ADVANCE = "attempting_advance"
    CYCLE_COMPLETE = "cycle_complete"


class ActionTarget(BaseModel):
    """A named control the automation tries to click."""

    name: str = Field(..., min_length=1)
    selector: str = Field(..., min_length=1)
    kind: ActionKind
    match_all: bool = False

    model_config = {"extra": "forbid", "frozen": True}


class RetryPolicy(BaseModel):
    """How often and how long a single action is retried.

    ``limit=None`` retries forever. ``log_every`` caps the number of attempts that
    are logged individually; ``0`` logs every attempt.
    """

    limit: int | None = Field(default=None, ge=1)
    delay_s: float = Field(default=0.1, ge=0)
    log_every: int = Field(default=10, ge=0)
    fail_fast_on_absent: bool = False

    model_config = {"extra": "forbid", "frozen": True}

    @property
    def unbounded(self) -> bool:
        return self.limit is None

    def is_exhausted(self, attempt_index: int) -> bool:
        return self.limit is not None and attempt_index >= self.limit

    def should_log(self, attempt_index: int) -> bool:
        return self.log_every == 0 or attempt_index <= self.log_every

    def is_suppression_point(self, attempt_index: int) -> bool:
        return self.log_every > 0 and attempt_index == self.log_every + 1


class AttemptResult(BaseModel):
    target: ActionTarget
    status: AttemptStatus
    attempt_index: int = Field(default=1, ge=1)
    reason: str | None = None
    activated_count: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status is AttemptStatus.ACTIVATED

    def summary(self) -> str:
        text = f"{self.target.name} {self.status.value} (attempt {self.attempt_index})"
        if self.reason:
            text += f": {self.reason}"
        return text


class CycleCounters(BaseModel):
    """Point-in-time copy of the process-wide counters."""

    operations: int = 0
    reactions: int = 0
    advances: int = 0
    cycles: int = 0

    model_config = {"frozen": True}

    def as_log_payload(self) -> dict[str, Any]:
        return self.model_dump()


class ReactionState(BaseModel):
    """Gate verdict; ``eligible`` is None when it was not probed."""

    already_reacted: bool
    eligible: bool | None = None

    @property
    def should_react(self) -> bool:
        return not self.already_reacted and bool(self.eligible)
