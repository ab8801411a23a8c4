from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ..types import ActionTarget, AttemptResult, AttemptStatus, RetryPolicy
from .attempt import ActionAttempt
from .telemetry import Telemetry

Continuation = Callable[[AttemptResult], None]
AttemptFn = Callable[[int], Awaitable[AttemptResult]]


class RetryScheduler:
    """Repeat an action attempt until it activates or the policy gives up.

    Waiting between attempts is an ``asyncio.sleep`` on the running loop, so the
    loop stays free for other work. Continuations are never called inline: they
    are queued with ``loop.call_soon`` once the sequence has finished.
    """

    def __init__(
        self,
        attempt: ActionAttempt,
        telemetry: Telemetry,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._attempt = attempt
        self._telemetry = telemetry
        self._loop = loop
        self._in_flight: set[str] = set()

    @property
    def attempt(self) -> ActionAttempt:
        return self._attempt

    def is_running(self, slot: str) -> bool:
        return slot in self._in_flight

    async def run(
        self,
        target: ActionTarget,
        on_success: Continuation,
        on_failure: Continuation | None = None,
        policy: RetryPolicy | None = None,
        attempt_fn: AttemptFn | None = None,
    ) -> AttemptResult:
        """Drive attempts for ``target``; returns the last attempt's result.

        ``attempt_fn`` replaces the plain click attempt with a composite one that
        receives the attempt index. The target then only names the slot.
        """

        policy = policy or RetryPolicy()
        slot = target.name
        if slot in self._in_flight:
            raise RuntimeError(f"A retry sequence for {slot} is already running")
        loop = self._loop or asyncio.get_running_loop()
        self._in_flight.add(slot)
        try:
            return await self._run(loop, target, on_success, on_failure, policy, attempt_fn)
        finally:
            self._in_flight.discard(slot)

    async def _run(
        self,
        loop: asyncio.AbstractEventLoop,
        target: ActionTarget,
        on_success: Continuation,
        on_failure: Continuation | None,
        policy: RetryPolicy,
        attempt_fn: AttemptFn | None,
    ) -> AttemptResult:
        attempt_index = 1
        while True:
            if policy.should_log(attempt_index):
                self._telemetry.log(
                    f"Attempting {target.name} operation (attempt {attempt_index})",
                    selector=target.selector,
                )
            if attempt_fn is not None:
                result = await attempt_fn(attempt_index)
            else:
                result = await self._attempt.attempt(target, attempt_index)

            if result.succeeded:
                self._telemetry.log(f"{result.target.name} click successful", attempt=attempt_index)
                loop.call_soon(on_success, result)
                return result

            if (
                attempt_index == 1
                and policy.fail_fast_on_absent
                and result.status is AttemptStatus.NOT_FOUND
                and on_failure is not None
            ):
                self._telemetry.log(f"{target.name} not found on first try, taking fail path")
                loop.call_soon(on_failure, result)
                return result

            if policy.is_exhausted(attempt_index):
                self._telemetry.log(
                    f"{target.name} gave up after {attempt_index} attempts",
                    level=logging.WARNING,
                    status=result.status.value,
                    reason=result.reason,
                )
                if on_failure is not None:
                    loop.call_soon(on_failure, result)
                return result

            self._log_retry(result, attempt_index, policy)
            attempt_index += 1
            await asyncio.sleep(policy.delay_s)

    def _log_retry(self, result: AttemptResult, attempt_index: int, policy: RetryPolicy) -> None:
        if policy.should_log(attempt_index):
            self._telemetry.log(
                f"{result.summary()}, retrying...",
                status=result.status.value,
            )
        elif policy.is_suppression_point(attempt_index):
            self._telemetry.log(
                f"{result.target.name} still unavailable, retrying (suppressing future retry logs)",
                status=result.status.value,
            )
