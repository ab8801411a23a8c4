from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import orjson
from dotenv import load_dotenv

from .errors import ConfigurationError
from .types import ActionKind, ActionTarget, CycleStrategy, RetryPolicy

load_dotenv()

ActionSlot = Literal["react", "advance"]

_UNBOUNDED = {"", "0", "none", "unbounded", "inf", "infinite"}

DEFAULT_REACT_SELECTOR = '[aria-label="Like"][class*="x1i10hfl x1qjc9v5"]'
DEFAULT_REMOVE_REACTION_SELECTORS: tuple[str, ...] = tuple(
    f'[aria-label="Remove {reaction}"][class*="x1i10hfl x1qjc9v5"]'
    for reaction in ("Like", "Love", "Haha", "Care", "Sad")
)
DEFAULT_ADVANCE_SELECTOR = '[aria-label^="Next"]'
DEFAULT_CONTAINER_SELECTOR = ".x1q0g3np.xjkvuk6"


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def parse_limit(raw: str | int | None) -> int | None:
    """Parse a retry limit; ``0``/``unbounded`` and friends mean retry forever."""

    if raw is None:
        return None
    if isinstance(raw, int):
        limit = raw
    else:
        value = raw.strip().lower()
        if value in _UNBOUNDED:
            return None
        try:
            limit = int(value)
        except ValueError as exc:
            raise ConfigurationError(f"Retry limit must be an integer or 'unbounded', got {raw!r}") from exc
    if limit < 0:
        raise ConfigurationError(f"Retry limit must not be negative, got {raw!r}")
    return limit or None


def parse_selector_list(raw: str) -> tuple[str, ...]:
    """Accept either a JSON list of selectors or one selector."""

    text = raw.strip()
    if not text:
        return ()
    if text.startswith("["):
        try:
            values = orjson.loads(text)
        except orjson.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid selector list: {exc}") from exc
        if not isinstance(values, list) or not all(isinstance(item, str) for item in values):
            raise ConfigurationError("Selector list must be a JSON array of strings")
        return tuple(item.strip() for item in values if item.strip())
    return (text,)


def _limit_env(name: str, default: int | None) -> int | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    return parse_limit(raw)


@dataclass(slots=True)
class Settings:
    """Automation configuration loaded from environment variables."""

    start_url: str | None = None
    react_selector: str = DEFAULT_REACT_SELECTOR
    remove_reaction_selectors: tuple[str, ...] = field(
        default_factory=lambda: DEFAULT_REMOVE_REACTION_SELECTORS
    )
    advance_selector: str = DEFAULT_ADVANCE_SELECTOR
    eligibility_container_selector: str = DEFAULT_CONTAINER_SELECTOR
    eligibility_child_tag: str = "div"
    eligibility_min_children: int = 2
    react_match_all: bool = False
    advance_match_all: bool = False
    strategy: CycleStrategy = "sequenced"
    react_retry_limit: int | None = 10
    advance_retry_limit: int | None = None
    retry_delay_s: float = 0.1
    fail_fast_on_absent: bool = True
    log_every: int = 10
    log_enabled: bool = True
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    headless_default: bool = False
    browser_profile_dir: Path | None = None
    max_cycles: int | None = None

    @classmethod
    def from_env(cls) -> "Settings":
        strategy_raw = os.getenv("CYCLE_STRATEGY", "sequenced").strip().lower()
        if strategy_raw not in {"sequenced", "poll"}:
            raise ConfigurationError(f"CYCLE_STRATEGY must be 'sequenced' or 'poll', got {strategy_raw!r}")

        remove_raw = os.getenv("REMOVE_REACTION_SELECTORS")
        remove_selectors = (
            parse_selector_list(remove_raw) if remove_raw is not None else DEFAULT_REMOVE_REACTION_SELECTORS
        )
        profile_raw = os.getenv("BROWSER_PROFILE_DIR")
        max_cycles = _int_env("MAX_CYCLES", 0)
        if max_cycles < 0:
            raise ConfigurationError("MAX_CYCLES must not be negative")

        settings = cls(
            start_url=os.getenv("START_URL") or None,
            react_selector=os.getenv("REACT_SELECTOR", DEFAULT_REACT_SELECTOR),
            remove_reaction_selectors=remove_selectors,
            advance_selector=os.getenv("ADVANCE_SELECTOR", DEFAULT_ADVANCE_SELECTOR),
            eligibility_container_selector=os.getenv("ELIGIBILITY_CONTAINER_SELECTOR", DEFAULT_CONTAINER_SELECTOR),
            eligibility_child_tag=os.getenv("ELIGIBILITY_CHILD_TAG", "div"),
            eligibility_min_children=_int_env("ELIGIBILITY_MIN_CHILDREN", 2),
            react_match_all=_bool_env("REACT_MATCH_ALL", False),
            advance_match_all=_bool_env("ADVANCE_MATCH_ALL", False),
            strategy=strategy_raw,  # type: ignore[arg-type]
            react_retry_limit=_limit_env("REACT_RETRY_LIMIT", 10),
            advance_retry_limit=_limit_env("ADVANCE_RETRY_LIMIT", None),
            retry_delay_s=_float_env("RETRY_DELAY_S", 0.1),
            fail_fast_on_absent=_bool_env("FAIL_FAST_ON_ABSENT", True),
            log_every=_int_env("LOG_EVERY", 10),
            log_enabled=_bool_env("LOG_ENABLED", True),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_dir=Path(os.getenv("LOG_DIR", "logs")),
            headless_default=_bool_env("HEADLESS_DEFAULT", False),
            browser_profile_dir=Path(profile_raw).expanduser() if profile_raw else None,
            max_cycles=max_cycles or None,
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.retry_delay_s < 0:
            raise ConfigurationError("Retry delay must not be negative")
        if self.log_every < 0:
            raise ConfigurationError("LOG_EVERY must not be negative")
        if self.eligibility_min_children < 0:
            raise ConfigurationError("ELIGIBILITY_MIN_CHILDREN must not be negative")
        if self.max_cycles is not None and self.max_cycles < 1:
            raise ConfigurationError("max_cycles must be positive; leave it unset to run forever")
        if not self.remove_reaction_selectors:
            raise ConfigurationError("At least one remove-reaction selector is required")

    def ensure_directories(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        if self.browser_profile_dir is not None:
            self.browser_profile_dir.mkdir(parents=True, exist_ok=True)

    def retry_policy(self, slot: ActionSlot) -> RetryPolicy:
        if slot == "react":
            return RetryPolicy(
                limit=self.react_retry_limit,
                delay_s=self.retry_delay_s,
                log_every=self.log_every,
                fail_fast_on_absent=self.fail_fast_on_absent,
            )
        if slot == "advance":
            return RetryPolicy(
                limit=self.advance_retry_limit,
                delay_s=self.retry_delay_s,
                log_every=self.log_every,
            )
        raise ConfigurationError(f"Unknown action slot {slot!r}")

    def react_target(self) -> ActionTarget:
        return ActionTarget(
            name="Like button",
            selector=self.react_selector,
            kind=ActionKind.REACT,
            match_all=self.react_match_all,
        )

    def advance_target(self) -> ActionTarget:
        return ActionTarget(
            name="Next button",
            selector=self.advance_selector,
            kind=ActionKind.ADVANCE,
            match_all=self.advance_match_all,
        )
