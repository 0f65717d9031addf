"""Tickboard: project-ticket tracker with a hierarchy-aware status workflow."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tickboard")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from tickboard.board import BoardReconciler
from tickboard.bus import NotificationBus
from tickboard.core import Project, Ticket, TicketDB, TicketDraft

__all__ = ["BoardReconciler", "NotificationBus", "Project", "Ticket", "TicketDB", "TicketDraft", "__version__"]
