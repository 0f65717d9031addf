"""CLI commands for ticket CRUD: create, show, list, update, delete."""

from __future__ import annotations

import click

from tickboard.cli_common import echo_json, fail, get_db, get_project, resolve_ticket
from tickboard.core import TicketDraft
from tickboard.db_base import DuplicateKeyError
from tickboard.statuses import ISSUE_TYPES, PRIORITIES, STATUSES


@click.command()
@click.argument("summary")
@click.option("--type", "issue_type", default="task", type=click.Choice(ISSUE_TYPES), help="Issue type")
@click.option("--parent", default=None, help="Parent ticket key or ID")
@click.option("--status", default="backlog", type=click.Choice(STATUSES), help="Initial status")
@click.option("--priority", "-p", default="medium", type=click.Choice(PRIORITIES), help="Priority")
@click.option("--assignee", default="", help="Assignee")
@click.option("--description", "-d", default="", help="Description")
@click.option("--key", default=None, help="Explicit ticket key (default: next free <PROJECT>-<n>)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def create(
    summary: str,
    issue_type: str,
    parent: str | None,
    status: str,
    priority: str,
    assignee: str,
    description: str,
    key: str | None,
    as_json: bool,
) -> None:
    """Create a new ticket."""
    with get_db() as db:
        project = get_project(db)
        parent_id = None
        if parent:
            try:
                parent_id = resolve_ticket(db, project, parent).id
            except KeyError:
                fail(f"Parent not found: {parent}", as_json)
        draft = TicketDraft(
            summary=summary,
            project_id=project.id,
            key=key,
            status=status,
            issue_type=issue_type,
            parent_id=parent_id,
            priority=priority,
            assignee=assignee,
            description=description,
        )
        try:
            ticket = db.create_ticket(draft)
        except (DuplicateKeyError, ValueError) as e:
            fail(str(e), as_json)
        if as_json:
            echo_json(ticket.to_dict())
        else:
            click.echo(f"Created {ticket.key}: {ticket.summary}")


@click.command()
@click.argument("ticket_ref")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(ticket_ref: str, as_json: bool) -> None:
    """Show ticket details."""
    with get_db() as db:
        project = get_project(db)
        try:
            ticket = resolve_ticket(db, project, ticket_ref)
        except KeyError:
            fail(f"Not found: {ticket_ref}", as_json)
        children = db.get_children(ticket.id)

        if as_json:
            echo_json({**ticket.to_dict(), "children": [c.key for c in children]})
            return

        click.echo(f"Key:      {ticket.key}")
        click.echo(f"ID:       {ticket.id}")
        click.echo(f"Summary:  {ticket.summary}")
        click.echo(f"Status:   {ticket.status}")
        click.echo(f"Type:     {ticket.issue_type}")
        click.echo(f"Priority: {ticket.priority}")
        if ticket.parent_id:
            try:
                click.echo(f"Parent:   {db.get_ticket(ticket.parent_id).key}")
            except KeyError:
                click.echo(f"Parent:   {ticket.parent_id} (missing)")
        if ticket.assignee:
            click.echo(f"Assignee: {ticket.assignee}")
        click.echo(f"Created:  {ticket.created_at}")
        click.echo(f"Updated:  {ticket.updated_at}")
        if children:
            click.echo(f"Children: {', '.join(f'{c.key} [{c.status}]' for c in children)}")
        if ticket.description:
            click.echo(f"\n--- Description ---\n{ticket.description}")


@click.command("list")
@click.option("--status", default=None, type=click.Choice(STATUSES), help="Filter by status")
@click.option("--type", "issue_type", default=None, type=click.Choice(ISSUE_TYPES), help="Filter by type")
@click.option("--parent", default=None, help="Filter by parent key or ID")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_tickets(status: str | None, issue_type: str | None, parent: str | None, as_json: bool) -> None:
    """List tickets."""
    with get_db() as db:
        project = get_project(db)
        parent_id = None
        if parent:
            try:
                parent_id = resolve_ticket(db, project, parent).id
            except KeyError:
                fail(f"Parent not found: {parent}", as_json)
        tickets = db.list_tickets(project.id, status=status, issue_type=issue_type, parent_id=parent_id)

        if as_json:
            echo_json([t.to_dict() for t in tickets])
            return
        if not tickets:
            click.echo("No tickets.")
            return
        for t in tickets:
            click.echo(f"{t.key:<10} {t.status:<12} {t.issue_type:<8} {t.priority:<7} {t.summary}")


@click.command()
@click.argument("ticket_ref")
@click.option("--summary", default=None, help="New summary")
@click.option("--priority", "-p", default=None, type=click.Choice(PRIORITIES), help="New priority")
@click.option("--assignee", default=None, help="New assignee")
@click.option("--description", "-d", default=None, help="New description")
@click.option("--parent", default=None, help="New parent key or ID (empty string to clear)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def update(
    ticket_ref: str,
    summary: str | None,
    priority: str | None,
    assignee: str | None,
    description: str | None,
    parent: str | None,
    as_json: bool,
) -> None:
    """Update ticket fields. Use 'move' to change status."""
    with get_db() as db:
        project = get_project(db)
        try:
            ticket = resolve_ticket(db, project, ticket_ref)
            parent_id = resolve_ticket(db, project, parent).id if parent else parent
        except KeyError as e:
            fail(f"Not found: {e.args[0] if e.args else ticket_ref}", as_json)
        try:
            ticket = db.update_ticket(
                ticket.id,
                summary=summary,
                description=description,
                priority=priority,
                assignee=assignee,
                parent_id=parent_id,
            )
        except ValueError as e:
            fail(str(e), as_json)
        if as_json:
            echo_json(ticket.to_dict())
        else:
            click.echo(f"Updated {ticket.key}")


@click.command()
@click.argument("ticket_ref")
@click.option("--cascade", is_flag=True, help="Also delete every descendant (default: detach children)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def delete(ticket_ref: str, cascade: bool, as_json: bool) -> None:
    """Delete a ticket."""
    with get_db() as db:
        project = get_project(db)
        try:
            ticket = resolve_ticket(db, project, ticket_ref)
        except KeyError:
            fail(f"Not found: {ticket_ref}", as_json)
        deleted = db.delete_ticket(ticket.id, mode="cascade" if cascade else "detach")
        if as_json:
            echo_json({"deleted": deleted})
        else:
            click.echo(f"Deleted {ticket.key}" + (f" and {len(deleted) - 1} descendant(s)" if len(deleted) > 1 else ""))


def register(cli: click.Group) -> None:
    """Register ticket CRUD commands with the CLI group."""
    for cmd in [create, show, list_tickets, update, delete]:
        cli.add_command(cmd)
