from __future__ import annotations

import asyncio
import sys
import uuid
from pathlib import Path
from typing import Optional

import typer

from .browser.controller import BrowserController
from .browser.probe import ElementProbe
from .config import Settings, parse_limit
from .core.attempt import ActionAttempt
from .core.cycle import CycleController
from .core.gate import ReactionGate
from .core.scheduler import RetryScheduler
from .core.telemetry import Telemetry
from .errors import BrowserError, ConfigurationError
from .logging import set_run_context, setup_logging
from .types import CycleCounters

app = typer.Typer(no_args_is_help=True)


def main() -> None:
    if len(sys.argv) > 1 and sys.argv[1] == "run":
        del sys.argv[1]
    app()


@app.command()
def run(
    start_url: Optional[str] = typer.Option(None, help="Page to open before the first cycle"),
    headful: Optional[bool] = typer.Option(None, "--headful/--headless", help="Show the browser window"),
    browser_profile_dir: Optional[Path] = typer.Option(
        None,
        help="Directory to store a persistent browser profile (reuse cookies and sessions)",
    ),
    strategy: Optional[str] = typer.Option(None, help="Cycle strategy: sequenced or poll"),
    max_cycles: Optional[int] = typer.Option(None, help="Stop after this many cycles"),
    retry_delay: Optional[float] = typer.Option(None, help="Seconds between retry attempts"),
    react_retry_limit: Optional[str] = typer.Option(None, help="React attempts per cycle, or 'unbounded'"),
    advance_retry_limit: Optional[str] = typer.Option(None, help="Advance attempts per cycle, or 'unbounded'"),
    no_fail_fast: bool = typer.Option(False, help="Keep retrying a react control that is absent on the first try"),
    quiet: bool = typer.Option(False, help="Only log warnings and errors"),
    wait_for_login: bool = typer.Option(False, help="Pause for Enter before starting (log in first)"),
) -> None:
    try:
        settings = Settings.from_env()
        if start_url:
            settings.start_url = start_url
        if browser_profile_dir is not None:
            settings.browser_profile_dir = browser_profile_dir.expanduser()
        if strategy:
            if strategy not in {"sequenced", "poll"}:
                raise ConfigurationError(f"Unknown strategy {strategy!r}")
            settings.strategy = strategy  # type: ignore[assignment]
        if max_cycles:
            settings.max_cycles = max_cycles
        if retry_delay is not None:
            settings.retry_delay_s = retry_delay
        if react_retry_limit is not None:
            settings.react_retry_limit = parse_limit(react_retry_limit)
        if advance_retry_limit is not None:
            settings.advance_retry_limit = parse_limit(advance_retry_limit)
        if no_fail_fast:
            settings.fail_fast_on_absent = False
        if quiet:
            settings.log_enabled = False
        settings.validate()
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    settings.ensure_directories()
    setup_logging(settings.log_level, settings.log_dir / "autoreact.log", enabled=settings.log_enabled)
    set_run_context(run_id=str(uuid.uuid4()))

    headless = settings.headless_default if headful is None else not headful
    try:
        counters = asyncio.run(_run(settings, headless=headless, wait_for_login=wait_for_login))
    except KeyboardInterrupt:
        typer.echo("Interrupted")
        return
    except BrowserError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc

    typer.echo(f"Cycles completed: {counters.cycles}")
    typer.echo(f"Operations: {counters.operations}")
    typer.echo(f"Reactions: {counters.reactions}")
    typer.echo(f"Advances: {counters.advances}")


def build_cycle_controller(settings: Settings, probe: ElementProbe, telemetry: Telemetry) -> CycleController:
    gate = ReactionGate(
        probe,
        remove_reaction_selectors=settings.remove_reaction_selectors,
        container_selector=settings.eligibility_container_selector,
        child_tag=settings.eligibility_child_tag,
        min_children=settings.eligibility_min_children,
    )
    scheduler = RetryScheduler(ActionAttempt(probe, telemetry), telemetry)
    return CycleController(
        gate=gate,
        scheduler=scheduler,
        telemetry=telemetry,
        react_target=settings.react_target(),
        advance_target=settings.advance_target(),
        react_policy=settings.retry_policy("react"),
        advance_policy=settings.retry_policy("advance"),
        strategy=settings.strategy,
        max_cycles=settings.max_cycles,
    )


async def _run(settings: Settings, headless: bool, wait_for_login: bool) -> CycleCounters:
    telemetry = Telemetry()
    async with BrowserController(headless=headless, user_data_dir=settings.browser_profile_dir) as browser:
        if settings.start_url:
            await browser.open_url(settings.start_url)
        if wait_for_login:
            await asyncio.to_thread(input, "Press Enter once the page is ready... ")

        probe = ElementProbe(browser.page)
        browser.on_page_change(probe.bind)
        controller = build_cycle_controller(settings, probe, telemetry)

        run_task = asyncio.create_task(controller.run())
        closed_task = asyncio.create_task(browser.wait_closed())
        try:
            await asyncio.wait({run_task, closed_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            controller.stop()
            closed_task.cancel()
        return await run_task
