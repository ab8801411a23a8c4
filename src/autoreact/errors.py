from __future__ import annotations


class AutomationError(Exception):
    """Base class for autoreact specific exceptions."""


class ConfigurationError(AutomationError):
    """Raised when a setting cannot be parsed into a usable value."""


class BrowserError(AutomationError):
    """Raised for Playwright automation failures."""


class ActionError(AutomationError):
    """Base class for recoverable failures of a single action attempt."""

    def __init__(self, selector: str, message: str | None = None) -> None:
        super().__init__(message or selector)
        self.selector = selector


class TargetAbsent(ActionError):
    """Raised when a selector matches nothing in the current document."""


class TargetNotInteractable(ActionError):
    """Raised when a matched element is hidden or disabled."""


class ActivationFailed(ActionError):
    """Raised when clicking a located element raises an error."""
