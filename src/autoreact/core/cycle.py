from __future__ import annotations

import asyncio
import logging
from typing import Callable

from ..errors import BrowserError
from ..types import (
    ActionKind,
    ActionTarget,
    AttemptResult,
    CycleCounters,
    CyclePhase,
    CycleStrategy,
    ReactionState,
    RetryPolicy,
)
from .gate import ReactionGate
from .scheduler import RetryScheduler
from .telemetry import Telemetry

logger = logging.getLogger(__name__)

PhaseHook = Callable[[int, CyclePhase], None]


class CycleController:
    """Endless react-then-advance loop over the current page.

    Every phase runs in its own task. Moving to the next phase queues it on the
    event loop instead of calling it, so neither the stack nor a chain of
    awaiting tasks grows with the number of cycles. The loop only ends through
    :meth:`stop` or after ``max_cycles`` completed cycles.
    """

    def __init__(
        self,
        gate: ReactionGate,
        scheduler: RetryScheduler,
        telemetry: Telemetry,
        react_target: ActionTarget,
        advance_target: ActionTarget,
        react_policy: RetryPolicy | None = None,
        advance_policy: RetryPolicy | None = None,
        strategy: CycleStrategy = "sequenced",
        max_cycles: int | None = None,
        on_phase: PhaseHook | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if strategy not in ("sequenced", "poll"):
            raise ValueError(f"Unknown cycle strategy {strategy!r}")
        self._gate = gate
        self._scheduler = scheduler
        self._telemetry = telemetry
        self._react_target = react_target
        self._advance_target = advance_target
        self._react_policy = react_policy or RetryPolicy()
        self._advance_policy = advance_policy or RetryPolicy()
        self._strategy = strategy
        self._max_cycles = max_cycles
        self._on_phase = on_phase
        self._loop = loop
        self._phase = CyclePhase.EVALUATING_REACTION_STATE
        self._cycle = 0
        self._task: asyncio.Task[None] | None = None
        self._done: asyncio.Future[CycleCounters] | None = None
        self._stopped = False

    @property
    def phase(self) -> CyclePhase:
        return self._phase

    @property
    def cycle(self) -> int:
        return self._cycle

    @property
    def running(self) -> bool:
        return self._done is not None and not self._done.done()

    def start(self) -> None:
        if self._done is not None:
            raise RuntimeError("CycleController already started")
        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        self._done = loop.create_future()
        self._telemetry.log("Initializing automation", strategy=self._strategy)
        self._begin_cycle()

    async def run(self) -> CycleCounters:
        """Run until stopped; returns the counters at that point."""

        if self._done is None:
            self.start()
        assert self._done is not None
        return await asyncio.shield(self._done)

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._done is not None and not self._done.done():
            self._done.set_result(self._telemetry.counters)
        self._telemetry.log("Automation stopped", cycle=self._cycle)

    def _begin_cycle(self) -> None:
        self._cycle += 1
        self._schedule(CyclePhase.EVALUATING_REACTION_STATE)

    def _schedule(self, phase: CyclePhase) -> None:
        if self._stopped or self._loop is None:
            return
        self._loop.call_soon(self._enter, phase)

    def _continue_to(self, phase: CyclePhase) -> Callable[[AttemptResult], None]:
        # Retry continuations already arrive through call_soon.
        def continuation(_: AttemptResult) -> None:
            self._enter(phase)

        return continuation

    def _enter(self, phase: CyclePhase) -> None:
        if self._stopped or self._loop is None:
            return
        self._phase = phase
        if self._on_phase is not None:
            try:
                self._on_phase(self._cycle, phase)
            except Exception as exc:
                self._fail(exc)
                return
            if self._stopped:
                return
        handler = {
            CyclePhase.EVALUATING_REACTION_STATE: self._evaluate,
            CyclePhase.ATTEMPTING_REACT: self._attempt_react,
            CyclePhase.ATTEMPTING_ADVANCE: self._attempt_advance,
            CyclePhase.CYCLE_COMPLETE: self._complete,
        }[phase]
        task = self._loop.create_task(handler())
        task.add_done_callback(self._on_task_done)
        self._task = task

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._fail(exc)

    def _fail(self, exc: BaseException) -> None:
        logger.error("Cycle %d failed in %s", self._cycle, self._phase.value, exc_info=exc)
        self._stopped = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._done is not None and not self._done.done():
            self._done.set_exception(exc)

    async def _evaluate(self) -> None:
        self._telemetry.log("Starting new cycle", cycle=self._cycle)
        if self._strategy == "poll":
            await self._poll()
            return
        try:
            state = await self._gate.evaluate()
        except BrowserError as exc:
            self._telemetry.log(
                "Reaction state unavailable, moving to next",
                level=logging.WARNING,
                reason=str(exc),
            )
            self._schedule(CyclePhase.ATTEMPTING_ADVANCE)
            return

        if state.already_reacted:
            self._telemetry.log("Post already reacted, attempting to move to next")
            self._schedule(CyclePhase.ATTEMPTING_ADVANCE)
        elif not state.eligible:
            self._telemetry.log("Post not reactable, attempting to move to next")
            self._schedule(CyclePhase.ATTEMPTING_ADVANCE)
        else:
            self._schedule(CyclePhase.ATTEMPTING_REACT)

    async def _attempt_react(self) -> None:
        await self._scheduler.run(
            self._react_target,
            on_success=self._continue_to(CyclePhase.ATTEMPTING_ADVANCE),
            on_failure=self._continue_to(CyclePhase.ATTEMPTING_ADVANCE),
            policy=self._react_policy,
        )

    async def _attempt_advance(self) -> None:
        await self._scheduler.run(
            self._advance_target,
            on_success=self._continue_to(CyclePhase.CYCLE_COMPLETE),
            on_failure=self._continue_to(CyclePhase.CYCLE_COMPLETE),
            policy=self._advance_policy,
        )

    async def _complete(self) -> None:
        self._telemetry.record_cycle()
        self._telemetry.log("Cycle completed", cycle=self._cycle)
        if self._max_cycles is not None and self._cycle >= self._max_cycles:
            self._stopped = True
            if self._done is not None and not self._done.done():
                self._done.set_result(self._telemetry.counters)
            return
        self._begin_cycle()

    async def _poll(self) -> None:
        """Re-read the page on every tick until either control gets clicked.

        A react click continues with the advance phase; an advance click (the item
        was already reacted to or is not reactable) completes the cycle.
        """

        poll_target = ActionTarget(
            name="Button poll",
            selector=f"{self._react_target.selector}, {self._advance_target.selector}",
            kind=ActionKind.ADVANCE,
        )
        policy = RetryPolicy(
            limit=None,
            delay_s=self._advance_policy.delay_s,
            log_every=self._advance_policy.log_every,
        )

        def on_success(result: AttemptResult) -> None:
            if result.target.kind is ActionKind.REACT:
                self._enter(CyclePhase.ATTEMPTING_ADVANCE)
            else:
                self._enter(CyclePhase.CYCLE_COMPLETE)

        await self._scheduler.run(
            poll_target,
            on_success=on_success,
            policy=policy,
            attempt_fn=self._poll_once,
        )

    async def _poll_once(self, attempt_index: int) -> AttemptResult:
        try:
            state = await self._gate.evaluate()
        except BrowserError as exc:
            logger.debug("Reaction state unavailable during poll: %s", exc)
            state = ReactionState(already_reacted=False, eligible=False)
        target = self._react_target if state.should_react else self._advance_target
        return await self._scheduler.attempt.attempt(target, attempt_index)
