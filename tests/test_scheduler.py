from __future__ import annotations

import asyncio
import logging

import pytest

from autoreact.types import AttemptResult, AttemptStatus, RetryPolicy

from fakes import REACT, DummyElement, DummyPage, build_stack, react_target


class Outcomes:
    def __init__(self) -> None:
        self.successes: list[AttemptResult] = []
        self.failures: list[AttemptResult] = []
        self.settled = asyncio.Event()

    def on_success(self, result: AttemptResult) -> None:
        self.successes.append(result)
        self.settled.set()

    def on_failure(self, result: AttemptResult) -> None:
        self.failures.append(result)
        self.settled.set()


@pytest.mark.asyncio
async def test_bounded_retry_gives_up_after_limit() -> None:
    delay = 0.02
    page = DummyPage()
    _, _, scheduler = build_stack(page)
    outcomes = Outcomes()

    result = await scheduler.run(
        react_target(),
        outcomes.on_success,
        outcomes.on_failure,
        RetryPolicy(limit=3, delay_s=delay),
    )
    await asyncio.wait_for(outcomes.settled.wait(), timeout=1)

    assert result.status is AttemptStatus.NOT_FOUND
    assert result.attempt_index == 3
    assert outcomes.successes == []
    assert len(outcomes.failures) == 1
    times = page.query_times(REACT)
    assert len(times) == 3
    gaps = [later - earlier for earlier, later in zip(times, times[1:])]
    assert all(gap >= delay * 0.9 for gap in gaps)


@pytest.mark.asyncio
async def test_unbounded_retry_succeeds_on_fifth_probe() -> None:
    page = DummyPage()
    button = DummyElement()
    page.script(REACT, [[], [], [DummyElement(enabled=False)], [], [button]])
    telemetry, _, scheduler = build_stack(page)
    outcomes = Outcomes()

    result = await scheduler.run(
        react_target(),
        outcomes.on_success,
        outcomes.on_failure,
        RetryPolicy(limit=None, delay_s=0),
    )
    await asyncio.wait_for(outcomes.settled.wait(), timeout=1)

    assert result.succeeded
    assert result.attempt_index == 5
    assert page.query_count(REACT) == 5
    assert len(outcomes.successes) == 1
    assert outcomes.failures == []
    assert button.clicks == 1
    assert telemetry.counters.operations == 5
    assert telemetry.counters.reactions == 1


@pytest.mark.asyncio
async def test_continuation_runs_after_run_returns() -> None:
    page = DummyPage()
    page.set(REACT, DummyElement())
    _, _, scheduler = build_stack(page)
    outcomes = Outcomes()

    await scheduler.run(react_target(), outcomes.on_success, policy=RetryPolicy(limit=1))

    assert outcomes.successes == []
    await asyncio.wait_for(outcomes.settled.wait(), timeout=1)
    assert len(outcomes.successes) == 1


@pytest.mark.asyncio
async def test_fail_fast_when_absent_on_first_attempt() -> None:
    page = DummyPage()
    _, _, scheduler = build_stack(page)
    outcomes = Outcomes()

    await scheduler.run(
        react_target(),
        outcomes.on_success,
        outcomes.on_failure,
        RetryPolicy(limit=None, delay_s=0, fail_fast_on_absent=True),
    )
    await asyncio.wait_for(outcomes.settled.wait(), timeout=1)

    assert page.query_count(REACT) == 1
    assert len(outcomes.failures) == 1
    assert outcomes.failures[0].status is AttemptStatus.NOT_FOUND


@pytest.mark.asyncio
async def test_fail_fast_keeps_retrying_disabled_control() -> None:
    page = DummyPage()
    page.script(REACT, [[DummyElement(enabled=False)], [], [DummyElement()]])
    _, _, scheduler = build_stack(page)
    outcomes = Outcomes()

    result = await scheduler.run(
        react_target(),
        outcomes.on_success,
        outcomes.on_failure,
        RetryPolicy(limit=None, delay_s=0, fail_fast_on_absent=True),
    )
    await asyncio.wait_for(outcomes.settled.wait(), timeout=1)

    assert result.attempt_index == 3
    assert len(outcomes.successes) == 1
    assert outcomes.failures == []


@pytest.mark.asyncio
async def test_fail_fast_needs_failure_continuation() -> None:
    page = DummyPage()
    page.script(REACT, [[], [DummyElement()]])
    _, _, scheduler = build_stack(page)
    outcomes = Outcomes()

    result = await scheduler.run(
        react_target(),
        outcomes.on_success,
        policy=RetryPolicy(limit=None, delay_s=0, fail_fast_on_absent=True),
    )

    assert result.succeeded
    assert result.attempt_index == 2


@pytest.mark.asyncio
async def test_exhaustion_without_failure_continuation_is_silent() -> None:
    _, _, scheduler = build_stack(DummyPage())
    outcomes = Outcomes()

    result = await scheduler.run(react_target(), outcomes.on_success, policy=RetryPolicy(limit=2, delay_s=0))
    await asyncio.sleep(0)

    assert result.attempt_index == 2
    assert outcomes.successes == []
    assert outcomes.failures == []


@pytest.mark.asyncio
async def test_one_sequence_per_slot() -> None:
    page = DummyPage()
    page.script(REACT, [[], [], [DummyElement()]])
    _, _, scheduler = build_stack(page)
    outcomes = Outcomes()

    first = asyncio.create_task(
        scheduler.run(react_target(), outcomes.on_success, policy=RetryPolicy(delay_s=0.01))
    )
    await asyncio.sleep(0)
    assert scheduler.is_running("Like button")
    with pytest.raises(RuntimeError):
        await scheduler.run(react_target(), outcomes.on_success, policy=RetryPolicy(delay_s=0))

    await first
    assert not scheduler.is_running("Like button")


@pytest.mark.asyncio
async def test_retry_logs_are_rate_limited(caplog: pytest.LogCaptureFixture) -> None:
    page = DummyPage()
    page.script(REACT, [[]] * 7 + [[DummyElement()]])
    _, _, scheduler = build_stack(page)
    outcomes = Outcomes()

    with caplog.at_level(logging.INFO, logger="autoreact"):
        await scheduler.run(
            react_target(),
            outcomes.on_success,
            policy=RetryPolicy(limit=None, delay_s=0, log_every=3),
        )

    messages = [record.getMessage() for record in caplog.records]
    attempting = [message for message in messages if message.startswith("Attempting")]
    retrying = [message for message in messages if message.endswith("retrying...")]
    suppressing = [message for message in messages if "suppressing" in message]
    assert len(attempting) == 3
    assert len(retrying) == 3
    assert len(suppressing) == 1
    assert any("click successful" in message for message in messages)
    assert all("counters" in record.__dict__ for record in caplog.records)
