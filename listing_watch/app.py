"""Typer CLI entrypoint for Listing Watch."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import typer
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, GlobalConfig, ScheduleConfig, TrackedTarget
from .engine import Extractor, Fetcher, ThreadPoolManager, build_identity
from .errors import StorageFailure
from .infra import ProxyPool, SQLiteListingStore, SQLiteManager, UserAgentPool
from .logging_conf import (
    available_logs,
    configure_logging,
    log_directory,
    tail_log,
    target_log_file,
)
from .notify import Notifier, TelegramChannel
from .orchestrator import ScanOrchestrator
from .records import ScanOutcome, SeenListing
from .scheduler import APSchedulerAdapter

app = typer.Typer(help="Listing Watch command line", no_args_is_help=True)
target_app = typer.Typer(name="target", help="Manage tracked searches.", no_args_is_help=True)
log_app = typer.Typer(name="log", help="Inspect log files.", no_args_is_help=True)
app.add_typer(target_app)
app.add_typer(log_app)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    config: GlobalConfig
    store: SQLiteListingStore
    orchestrator: ScanOrchestrator
    scheduler: APSchedulerAdapter
    storage: SQLiteManager


def _build_ua_pool(config: GlobalConfig) -> UserAgentPool | None:
    agents = config.user_agent_list
    if not agents:
        return None
    if isinstance(agents, Path):
        pool = UserAgentPool(file_path=agents)
    else:
        pool = UserAgentPool(agents)
    if not config.fetcher.user_agent_rotation:
        pool.pin()
    return pool


def _build_proxy_pool(config: GlobalConfig) -> ProxyPool | None:
    if not config.proxy_pool.enabled:
        return None
    if config.proxy_pool.source:
        return ProxyPool(file_path=Path(config.proxy_pool.source))
    return ProxyPool(config.proxy_pool.proxies)


def build_state(verbose: bool) -> AppState:
    logger = configure_logging(verbose=verbose)
    repository = ConfigRepository()
    config = repository.load_global_config()
    storage = SQLiteManager()
    store = SQLiteListingStore(
        storage,
        repository.database_path(),
        detail_url_template=config.extractor.detail_url_template,
    )

    identity = build_identity(
        config.fetcher,
        _build_ua_pool(config),
        _build_proxy_pool(config),
        logger=logger.bind(component="identity"),
    )
    fetcher = Fetcher(config.fetcher, identity, logger=logger.bind(component="fetcher"))
    extractor = Extractor(config.extractor, logger=logger.bind(component="extractor"))
    channel = TelegramChannel.from_config(config.telegram) if config.telegram.enabled else None
    notifier = Notifier.from_config(config.telegram, channel, logger=logger.bind(component="notifier"))
    orchestrator = ScanOrchestrator(
        fetcher,
        extractor,
        store,
        notifier,
        thread_pool=ThreadPoolManager(config.scan_workers),
        logger=logger.bind(component="orchestrator"),
    )
    return AppState(
        repository=repository,
        config=config,
        store=store,
        orchestrator=orchestrator,
        scheduler=APSchedulerAdapter(),
        storage=storage,
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _format_money(value: float | None) -> str:
    return "-" if value is None else f"{value:,.0f}"


def _format_schedule(schedule: ScheduleConfig) -> str:
    return f"{schedule.type.value}: {schedule.value}"


def _require_target(state: AppState, target_id: int) -> TrackedTarget:
    target = state.store.get_target(target_id)
    if target is None:
        console.print(f"Target {target_id} not found.", style="red")
        raise typer.Exit(code=1)
    return target


def _validation_message(exc: ValidationError) -> str:
    return "; ".join(error["msg"] for error in exc.errors())


def _render_targets_table(targets: Sequence[TrackedTarget]) -> Table:
    table = Table(title="Tracked targets", box=box.SIMPLE_HEAD)
    table.add_column("ID", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Max ₪/m²", justify="right")
    table.add_column("URL", overflow="fold")
    for target in targets:
        table.add_row(
            str(target.id),
            target.name,
            _format_money(target.max_price_per_sqm),
            target.url,
        )
    return table


def _render_listings_table(title: str, listings: Sequence[SeenListing]) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD)
    table.add_column("Price", justify="right")
    table.add_column("m²", justify="right")
    table.add_column("₪/m²", justify="right", style="green")
    table.add_column("Rooms", justify="right")
    table.add_column("Address")
    table.add_column("First seen", style="dim")
    table.add_column("Link", overflow="fold")
    for listing in listings:
        table.add_row(
            _format_money(listing.price),
            "-" if listing.area is None else f"{listing.area:g}",
            _format_money(listing.price_per_area),
            "-" if listing.rooms is None else f"{listing.rooms:g}",
            listing.address or "-",
            listing.first_seen_at,
            listing.link,
        )
    return table


def _render_outcomes_table(outcomes: Sequence[ScanOutcome]) -> Table:
    table = Table(title=f"Scan results · {len(outcomes)} target(s)", box=box.SIMPLE_HEAD)
    table.add_column("Target", style="cyan")
    table.add_column("State")
    table.add_column("Scraped", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Notified", justify="right")
    table.add_column("Notification")
    table.add_column("Median ₪/m²", justify="right")
    table.add_column("Error", style="red", overflow="fold")
    for outcome in outcomes:
        state = outcome.state.value
        if outcome.failed_at is not None:
            state = f"{state} ({outcome.failed_at.value})"
        table.add_row(
            outcome.target_name,
            state,
            str(outcome.total_scraped),
            str(outcome.new_found),
            str(outcome.notified),
            outcome.notification_status,
            _format_money(outcome.stats.median),
            outcome.error or "",
        )
    return table


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    ctx.obj = build_state(verbose)


# ----------------------------------------------------------------------
# targets
# ----------------------------------------------------------------------
@target_app.command("add", help="Track a new search-results URL.")
def target_add(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Display name used in notifications."),
    url: str = typer.Argument(..., help="Search-results page URL."),
    threshold: Optional[float] = typer.Option(
        None, "--threshold", "-t", help="Only notify listings at or below this price per m²."
    ),
) -> None:
    state = _get_state(ctx)
    try:
        target = state.store.add_target(name, url, threshold)
    except ValidationError as exc:
        console.print(f"Invalid target: {_validation_message(exc)}", style="red")
        raise typer.Exit(code=1)
    console.print(f"Target `{target.name}` added with id {target.id}.", style="green")


@target_app.command("list", help="Show tracked targets and the scan schedule.")
def target_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    targets = state.store.list_targets()
    if not targets:
        console.print("No targets yet. Use `listing-watch target add` to create one.", style="yellow")
        raise typer.Exit(code=0)
    console.print(_render_targets_table(targets))
    console.print(f"Schedule: {_format_schedule(state.config.schedule)}", style="dim")


@target_app.command("update", help="Change a target; a new URL forgets the listings seen so far.")
def target_update(
    ctx: typer.Context,
    target_id: int = typer.Argument(..., help="Target id."),
    name: Optional[str] = typer.Option(None, "--name", help="New display name."),
    url: Optional[str] = typer.Option(None, "--url", help="New search-results URL."),
    threshold: Optional[float] = typer.Option(None, "--threshold", "-t", help="New price per m² bound."),
    clear_threshold: bool = typer.Option(False, "--clear-threshold", help="Notify every new listing."),
) -> None:
    state = _get_state(ctx)
    current = _require_target(state, target_id)
    changes: dict[str, object] = {}
    if name is not None:
        changes["name"] = name
    if url is not None:
        changes["url"] = url
    if clear_threshold:
        changes["max_price_per_sqm"] = None
    elif threshold is not None:
        changes["max_price_per_sqm"] = threshold
    if not changes:
        console.print("Nothing to update.", style="yellow")
        raise typer.Exit(code=0)
    try:
        updated = state.store.update_target(target_id, **changes)
    except ValidationError as exc:
        console.print(f"Invalid target: {_validation_message(exc)}", style="red")
        raise typer.Exit(code=1)
    assert updated is not None
    if url is not None and url != current.url:
        console.print("URL changed: seen listings were cleared.", style="yellow")
    console.print(f"Target {updated.id} updated.", style="green")


@target_app.command("remove", help="Stop tracking a target and drop its listings.")
def target_remove(
    ctx: typer.Context,
    target_id: int = typer.Argument(..., help="Target id."),
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt."),
) -> None:
    state = _get_state(ctx)
    target = _require_target(state, target_id)
    if not yes and not typer.confirm(f"Remove `{target.name}` and its history?", default=False):
        console.print("Cancelled.", style="yellow")
        raise typer.Exit(code=0)
    state.store.remove_target(target_id)
    console.print(f"Target `{target.name}` removed.", style="green")


# ----------------------------------------------------------------------
# listings, scan, serve
# ----------------------------------------------------------------------
@app.command("listings", help="Show the listings recorded for a target.")
def listings(
    ctx: typer.Context,
    target_id: int = typer.Argument(..., help="Target id."),
    below: bool = typer.Option(False, "--below", help="Only listings under the target's threshold."),
) -> None:
    state = _get_state(ctx)
    target = _require_target(state, target_id)
    if below:
        if target.max_price_per_sqm is None:
            console.print("Target has no threshold.", style="yellow")
            raise typer.Exit(code=0)
        rows = state.store.get_listings_below_threshold(target_id, target.max_price_per_sqm)
    else:
        rows = state.store.get_all_listings(target_id)
    if not rows:
        console.print("No listings recorded yet.", style="dim")
        return
    console.print(_render_listings_table(f"{target.name} · {len(rows)} listing(s)", rows))


@app.command("scan", help="Scan targets now.")
def scan(
    ctx: typer.Context,
    target_id: Optional[int] = typer.Option(None, "--target", help="Only scan this target."),
    as_json: bool = typer.Option(False, "--json", help="Print outcomes as JSON."),
) -> None:
    state = _get_state(ctx)
    if target_id is not None:
        targets = [_require_target(state, target_id)]
    else:
        targets = state.store.list_targets()
    if not targets:
        console.print("No targets to scan.", style="yellow")
        raise typer.Exit(code=0)
    try:
        outcomes = state.orchestrator.run_scan_cycle(targets)
    finally:
        state.orchestrator.close()
    if as_json:
        typer.echo(json.dumps([outcome.to_dict() for outcome in outcomes], ensure_ascii=False, indent=2))
    else:
        console.print(_render_outcomes_table(outcomes))
    if any(not outcome.ok for outcome in outcomes):
        raise typer.Exit(code=1)


@app.command("serve", help="Run the scan cycle on the configured schedule until interrupted.")
def serve(
    ctx: typer.Context,
    run_now: bool = typer.Option(False, "--run-now", help="Run one cycle before waiting."),
) -> None:
    state = _get_state(ctx)

    def _cycle() -> None:
        try:
            targets = state.store.list_targets()
        except StorageFailure as exc:
            state.scheduler.logger.error("scan_cycle_skipped", error=str(exc))
            return
        state.orchestrator.run_scan_cycle(targets)

    state.scheduler.schedule_cycle(state.config.schedule, _cycle)
    if run_now:
        _cycle()
    state.scheduler.start()
    console.print(f"Scheduler running ({_format_schedule(state.config.schedule)}). Ctrl+C to stop.", style="green")
    for job in state.scheduler.list_jobs():
        next_run = job["next_run_time"]
        console.print(f"Next scan: {next_run:%Y-%m-%d %H:%M:%S}" if next_run else "Next scan: not scheduled")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping…", style="yellow")
    finally:
        state.scheduler.shutdown()
        state.orchestrator.close()
        state.storage.close_all()


# ----------------------------------------------------------------------
# logs
# ----------------------------------------------------------------------
@log_app.command("list", help="List available log files.")
def log_list() -> None:
    logs = list(available_logs())
    if not logs:
        console.print("No log files yet.", style="dim")
        return
    base_dir = log_directory()
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    table.add_column("Size", justify="right")
    for path in logs:
        table.add_row(str(path.relative_to(base_dir)), str(path.stat().st_size))
    console.print(table)


@log_app.command("show", help="Show the tail of a log file.")
def log_show(
    target: Optional[str] = typer.Option(None, "--target", help="Target name (defaults to the global log)."),
    tail: int = typer.Option(100, "--tail", help="Number of lines to show."),
    errors: bool = typer.Option(False, "--errors", help="Show the error log instead."),
) -> None:
    if target:
        path = target_log_file(target)
    else:
        path = log_directory() / ("error.log" if errors else "watch.log")
    lines = tail_log(path, tail)
    if not lines:
        console.print("Log is empty.", style="dim")
        return
    console.print(f"{path.name} · last {len(lines)} line(s)", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
