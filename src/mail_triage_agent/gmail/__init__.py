"""Gmail implementation of the mailbox collaborator."""

from .client import GmailMailbox

__all__ = ["GmailMailbox"]
