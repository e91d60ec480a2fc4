"""CLI entry point: setu command."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from rebalancer.errors import RebalancerError

app = typer.Typer(name="setu", help="Setu liquidity rebalancer")
console = Console()


def _engine():
    from rebalancer.engine import build_engine
    return build_engine()


def _run(coro):
    try:
        return asyncio.run(coro)
    except (RebalancerError, ValueError) as e:
        console.print(f"[red]{type(e).__name__}:[/red] {e}")
        raise typer.Exit(1)


def _parse_when(value: str) -> datetime:
    """ISO timestamp, or a relative offset like '2h' or '30m'."""
    units = {"m": "minutes", "h": "hours", "d": "days"}
    if value and value[-1] in units and value[:-1].isdigit():
        return datetime.now(UTC) + timedelta(**{units[value[-1]]: int(value[:-1])})
    dt = datetime.fromisoformat(value)
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt


@app.command()
def analyze():
    """Run one analysis over both chains and print the reasoning."""
    _run(_analyze())


async def _analyze():
    from rebalancer.models import format_units

    engine = _engine()
    result = await engine.run_analysis()
    record = result.record

    table = Table(title="Rebalance Analysis")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Record", record.id)
    table.add_row("Needs rebalance", "YES" if record.needs_rebalance else "no")
    table.add_row("Debt", f"{format_units(record.debt.amount)} USDC "
                          f"({record.debt.source_chain_id} -> {record.debt.destination_chain_id})")
    table.add_row("Confidence", str(record.confidence_score))
    if result.action:
        table.add_row("Suggested action", result.action.id)
    console.print(table)
    for i, thought in enumerate(record.thoughts, 1):
        console.print(f"[dim]{i}.[/dim] {thought}")


# ── Reasoning subcommands ──

reasoning_app = typer.Typer(help="Reasoning log commands")
app.add_typer(reasoning_app, name="reasoning")


@reasoning_app.command("log")
def reasoning_log(limit: int = typer.Option(10, "--limit", "-n")):
    """Show recent reasoning records."""
    _run(_reasoning_log(limit))


async def _reasoning_log(limit: int):
    from rebalancer.models import format_units

    records = await _engine().store.recent_records(limit=limit)
    if not records:
        console.print("[dim]No analyses recorded yet.[/dim]")
        return
    table = Table(title="Reasoning Log")
    table.add_column("Id", style="cyan")
    table.add_column("Time")
    table.add_column("Rebalance")
    table.add_column("Debt")
    table.add_column("Confidence")
    for r in records:
        table.add_row(r.id, r.analysis_timestamp.isoformat(), "yes" if r.needs_rebalance else "no",
                      format_units(r.debt.amount), str(r.confidence_score))
    console.print(table)


@reasoning_app.command("show")
def reasoning_show(record_id: str = typer.Argument(...)):
    """Show a reasoning record in full."""
    _run(_reasoning_show(record_id))


async def _reasoning_show(record_id: str):
    from rebalancer.journal import codec

    record = await _engine().store.show_record(record_id)
    if not record:
        console.print(f"[red]Record {record_id} not found[/red]")
        raise typer.Exit(1)
    console.print_json(data=codec.record_to_dict(record))


# ── Rebalance subcommands ──

rebalances_app = typer.Typer(help="Rebalance action commands")
app.add_typer(rebalances_app, name="rebalances")


@rebalances_app.command("list")
def rebalances_list(
    limit: int = typer.Option(20, "--limit", "-n"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="suggested, executed or failed"),
):
    """Show rebalance history."""
    _run(_rebalances_list(limit, status))


async def _rebalances_list(limit: int, status: str | None):
    from rebalancer.models import ActionStatus, format_units

    actions = await _engine().store.recent_actions(limit=limit, status=ActionStatus(status) if status else None)
    if not actions:
        console.print("[dim]No rebalance actions yet.[/dim]")
        return
    table = Table(title="Rebalances")
    table.add_column("Id", style="cyan")
    table.add_column("Time")
    table.add_column("Route")
    table.add_column("Amount")
    table.add_column("Status")
    for a in actions:
        table.add_row(a.id, a.timestamp.isoformat(), f"{a.source_chain_id} -> {a.destination_chain_id}",
                      format_units(a.amount), a.status.value)
    console.print(table)


@rebalances_app.command("execute")
def rebalances_execute(
    action_id: str = typer.Argument(...),
    signer: Optional[str] = typer.Option(None, "--signer", help="Signer address, defaults to config"),
):
    """Approve and execute a suggested rebalance."""
    _run(_rebalances_execute(action_id, signer))


async def _rebalances_execute(action_id: str, signer: str | None):
    try:
        action = await _engine().execute(action_id, signer)
    except LookupError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Executed[/green] {action.id}: {action.execution_ref}")


# ── Feed subcommands ──

events_app = typer.Typer(help="Bridge transfer events")
app.add_typer(events_app, name="events")


@events_app.command("add")
def events_add(
    source: int = typer.Option(..., "--from", help="Source chain id"),
    dest: int = typer.Option(..., "--to", help="Destination chain id"),
    amount: str = typer.Option(..., "--amount", "-a", help="USDC, e.g. 12.5"),
    tx_hash: Optional[str] = typer.Option(None, "--tx"),
):
    """Record a completed bridge transfer."""
    _run(_events_add(source, dest, amount, tx_hash))


async def _events_add(source: int, dest: int, amount: str, tx_hash: str | None):
    from rebalancer.models import TransferEvent, parse_units

    event = TransferEvent(source_chain_id=source, destination_chain_id=dest,
                          amount=parse_units(amount), occurred_at=datetime.now(UTC), tx_hash=tx_hash)
    await _engine().store.append_event(event)
    console.print(f"Recorded event {event.id}")


obligations_app = typer.Typer(help="LP unlock obligations")
app.add_typer(obligations_app, name="obligations")


@obligations_app.command("add")
def obligations_add(
    chain_id: int = typer.Option(..., "--chain", "-c"),
    amount: str = typer.Option(..., "--amount", "-a", help="USDC, e.g. 100"),
    due: str = typer.Option(..., "--due", "-d", help="ISO timestamp or offset like 2h"),
):
    """Record an upcoming LP unlock."""
    _run(_obligations_add(chain_id, amount, due))


async def _obligations_add(chain_id: int, amount: str, due: str):
    from rebalancer.models import UpcomingObligation, parse_units

    obligation = UpcomingObligation(chain_id=chain_id, amount=parse_units(amount), due_at=_parse_when(due))
    await _engine().store.append_obligation(obligation)
    console.print(f"Recorded obligation {obligation.id} due {obligation.due_at.isoformat()}")


@obligations_app.command("upcoming")
def obligations_upcoming():
    """Show obligations due within the demand horizon."""
    _run(_obligations_upcoming())


async def _obligations_upcoming():
    from rebalancer.models import format_units

    engine = _engine()
    now = datetime.now(UTC)
    end = now + timedelta(hours=engine.config.engine.demand_horizon_hours)
    obligations = await engine.store.obligations_between(now, end)
    if not obligations:
        console.print("[dim]No upcoming obligations.[/dim]")
        return
    table = Table(title="Upcoming Obligations")
    table.add_column("Chain", style="cyan")
    table.add_column("Due")
    table.add_column("Amount")
    for o in obligations:
        table.add_row(str(o.chain_id), o.due_at.isoformat(), format_units(o.amount))
    console.print(table)


# ── Scheduler commands ──

scheduler_app = typer.Typer(help="Scheduler commands")
app.add_typer(scheduler_app, name="scheduler")


@scheduler_app.command("start")
def scheduler_start(interval: Optional[int] = typer.Option(None, "--interval", "-i", help="Minutes")):
    """Run analyses periodically until interrupted."""
    _run(_scheduler_start(interval))


async def _scheduler_start(interval: int | None):
    from rebalancer.scheduler import Scheduler

    engine = _engine()
    minutes = interval or engine.config.scheduler.interval_minutes
    console.print(f"[bold]Scheduler[/bold] starting: every {minutes}m")
    await Scheduler(engine, minutes).start()


@app.command()
def serve(port: int = typer.Option(8003, "--port")):
    """Start FastAPI server."""
    import uvicorn
    uvicorn.run("api.main:app", host="0.0.0.0", port=port)


if __name__ == "__main__":
    app()
