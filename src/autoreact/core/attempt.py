from __future__ import annotations

import logging

from playwright.async_api import ElementHandle

from ..browser.probe import ElementProbe
from ..errors import ActionError, ActivationFailed, BrowserError, TargetAbsent, TargetNotInteractable
from ..types import ActionTarget, AttemptResult, AttemptStatus
from .telemetry import Telemetry

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: dict[type[ActionError], AttemptStatus] = {
    TargetAbsent: AttemptStatus.NOT_FOUND,
    TargetNotInteractable: AttemptStatus.NOT_INTERACTABLE,
    ActivationFailed: AttemptStatus.ACTIVATION_ERROR,
}


class ActionAttempt:
    """Probe a target once and click it when it is interactable."""

    def __init__(self, probe: ElementProbe, telemetry: Telemetry) -> None:
        self._probe = probe
        self._telemetry = telemetry

    async def attempt(self, target: ActionTarget, attempt_index: int = 1) -> AttemptResult:
        self._telemetry.record_operation()
        handles: list[ElementHandle] = []
        try:
            handles = await self._locate(target)
            activated = await self._activate(target, handles)
        except ActionError as exc:
            return AttemptResult(
                target=target,
                status=_STATUS_BY_ERROR[type(exc)],
                attempt_index=attempt_index,
                reason=str(exc),
            )
        finally:
            if handles:
                await self._probe.release(handles)

        self._telemetry.record_activation(target.kind)
        return AttemptResult(
            target=target,
            status=AttemptStatus.ACTIVATED,
            attempt_index=attempt_index,
            activated_count=activated,
        )

    async def _locate(self, target: ActionTarget) -> list[ElementHandle]:
        try:
            if target.match_all:
                handles = await self._probe.probe_all(target.selector)
            else:
                handle = await self._probe.probe(target.selector)
                handles = [handle] if handle is not None else []
        except BrowserError as exc:
            raise ActivationFailed(target.selector, str(exc)) from exc
        if not handles:
            raise TargetAbsent(target.selector, f"{target.name} not found")
        return handles

    async def _activate(self, target: ActionTarget, handles: list[ElementHandle]) -> int:
        # The first match decides interactability; with match_all every
        # interactable match is clicked once. A click that already landed is
        # never undone by a failure on a later match.
        activated = 0
        for index, handle in enumerate(handles):
            try:
                if not await self._probe.is_interactable(handle):
                    if index == 0:
                        raise TargetNotInteractable(target.selector, f"{target.name} found but not clickable")
                    continue
                await self._probe.activate(handle)
            except BrowserError as exc:
                if activated == 0:
                    raise ActivationFailed(target.selector, str(exc)) from exc
                logger.warning(
                    "Skipping %d remaining match(es) for %s after error: %s",
                    len(handles) - index,
                    target.name,
                    exc,
                )
                break
            activated += 1
        logger.debug("Clicked %d element(s) for %s", activated, target.name)
        return activated
