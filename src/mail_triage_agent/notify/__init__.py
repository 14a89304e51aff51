"""Notification sinks."""

from .webhook import WebhookNotifier

__all__ = ["WebhookNotifier"]
