"""CLI commands for the board: move, board, metrics."""

from __future__ import annotations

import asyncio
import sys

import click

from tickboard.board import BoardReconciler, Denied, MoveResult
from tickboard.cli_common import echo_json, fail, get_db, get_project, resolve_ticket
from tickboard.metrics import get_flow_metrics
from tickboard.persistence import SQLiteTicketStore
from tickboard.statuses import STATUSES


async def _load_and_move(board: BoardReconciler, ticket_id: str, status: str) -> MoveResult | Denied:
    await board.load()
    return await board.move(ticket_id, status)


@click.command()
@click.argument("ticket_ref")
@click.argument("status", type=click.Choice(STATUSES))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def move(ticket_ref: str, status: str, as_json: bool) -> None:
    """Move a ticket to STATUS, cascading to its parents where needed."""
    with get_db() as db:
        project = get_project(db)
        try:
            ticket = resolve_ticket(db, project, ticket_ref)
        except KeyError:
            fail(f"Not found: {ticket_ref}", as_json)

        board = BoardReconciler(project.id, SQLiteTicketStore(db))
        outcome = asyncio.run(_load_and_move(board, ticket.id, status))

        if isinstance(outcome, Denied):
            if as_json:
                echo_json({"error": outcome.message, "denial": outcome.to_dict()})
                sys.exit(1)
            fail(outcome.message)

        if as_json:
            echo_json(outcome.to_dict())
        elif outcome.plan.noop:
            click.echo(f"{ticket.key} is already {status}")
        else:
            for effect in outcome.plan.effects:
                moved = board.get(effect.ticket_id)
                label = moved.key if moved is not None else effect.ticket_id
                click.echo(f"{label}: {effect.previous} -> {effect.status}")
            for failure in outcome.failures:
                click.echo(f"Failed to save {failure.ticket_id}: {failure.message}", err=True)
        if not outcome.ok:
            sys.exit(1)


@click.command("board")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show_board(as_json: bool) -> None:
    """Show tickets by status column."""
    with get_db() as db:
        project = get_project(db)
        board = BoardReconciler(project.id, SQLiteTicketStore(db), tickets=db.list_tickets(project.id))
        if as_json:
            echo_json(board.snapshot())
            return
        for column in board.columns:
            click.echo(f"== {column.status} ({len(column.ticket_ids)}) ==")
            for tid in column.ticket_ids:
                t = board.get(tid)
                if t is not None:
                    click.echo(f"  {t.key:<10} {t.issue_type:<8} {t.summary}")
        degraded = board.index.degraded
        if degraded:
            click.echo(f"\nWarning: broken hierarchy around {len(degraded)} ticket(s); cascade is off for them", err=True)


@click.command()
@click.option("--days", default=30, type=click.IntRange(min=1), help="Lookback window in days (default 30)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def metrics(days: int, as_json: bool) -> None:
    """Flow metrics: throughput, cycle time, lead time."""
    with get_db() as db:
        project = get_project(db)
        data = get_flow_metrics(db.list_tickets(project.id), days=days)
        if as_json:
            echo_json(data)
            return
        click.echo(f"Flow metrics (last {data['period_days']} days)")
        click.echo(f"  Throughput:      {data['throughput']} tickets done")
        click.echo(f"  Avg cycle time:  {_days(data['avg_cycle_time_days'])}")
        click.echo(f"  Avg lead time:   {_days(data['avg_lead_time_days'])}")
        for issue_type, tm in sorted(data["by_type"].items()):
            click.echo(f"    {issue_type:<8} {tm['count']} done, avg cycle {_days(tm['avg_cycle_time_days'])}")
        click.echo("  By status:       " + ", ".join(f"{s}={n}" for s, n in data["status_distribution"].items()))


def _days(value: float | None) -> str:
    return "n/a" if value is None else f"{value}d"


def register(cli: click.Group) -> None:
    """Register board commands with the CLI group."""
    for cmd in [move, show_board, metrics]:
        cli.add_command(cmd)
