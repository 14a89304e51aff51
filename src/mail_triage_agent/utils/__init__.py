"""Utility functions for Mail Triage Agent."""

from mail_triage_agent.utils.text import clean_body, clean_subject, is_calendar_invite, truncate

__all__ = ["clean_body", "clean_subject", "is_calendar_invite", "truncate"]
