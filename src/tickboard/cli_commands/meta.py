"""CLI commands for ticket discussion and lookup: comment, comments, search."""

from __future__ import annotations

import click

from tickboard.cli_common import echo_json, fail, get_db, get_project, resolve_ticket


@click.command()
@click.argument("ticket_ref")
@click.argument("text")
@click.option("--author", default="", help="Comment author")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def comment(ticket_ref: str, text: str, author: str, as_json: bool) -> None:
    """Add a comment to a ticket."""
    with get_db() as db:
        project = get_project(db)
        try:
            ticket = resolve_ticket(db, project, ticket_ref)
        except KeyError:
            fail(f"Not found: {ticket_ref}", as_json)
        try:
            record = db.add_comment(ticket.id, text, author=author)
        except ValueError as e:
            fail(str(e), as_json)
        if as_json:
            echo_json(record)
        else:
            click.echo(f"Added comment {record['id']} to {ticket.key}")


@click.command()
@click.argument("ticket_ref")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def comments(ticket_ref: str, as_json: bool) -> None:
    """List comments on a ticket, oldest first."""
    with get_db() as db:
        project = get_project(db)
        try:
            ticket = resolve_ticket(db, project, ticket_ref)
        except KeyError:
            fail(f"Not found: {ticket_ref}", as_json)
        result = db.get_comments(ticket.id)
        if as_json:
            echo_json(result)
            return
        if not result:
            click.echo("No comments.")
            return
        for c in result:
            click.echo(f"[{c['created_at']}] {c['author'] or 'anonymous'}: {c['text']}")


@click.command()
@click.argument("query")
@click.option("--limit", default=100, type=click.IntRange(min=1), help="Max results (default 100)")
@click.option("--offset", default=0, type=click.IntRange(min=0), help="Skip first N results")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def search(query: str, limit: int, offset: int, as_json: bool) -> None:
    """Search tickets by summary, description or key."""
    with get_db() as db:
        project = get_project(db)
        tickets = db.search_tickets(project.id, query, limit=limit, offset=offset)

        if as_json:
            echo_json([t.to_dict() for t in tickets])
            return
        for t in tickets:
            click.echo(f"{t.key:<10} {t.status:<12} {t.issue_type:<8} {t.summary}")
        click.echo(f"\n{len(tickets)} results")


def register(cli: click.Group) -> None:
    """Register comment and search commands with the CLI group."""
    for cmd in [comment, comments, search]:
        cli.add_command(cmd)
