"""Mail Triage Agent - LLM-assisted mailbox triage.

This package runs a scheduled batch job that classifies recently arrived
mail with Gemini, applies labels and mailbox actions through the Gmail API,
and drafts replies in the mailbox owner's voice.
"""

__version__ = "0.1.0"
__author__ = "Trickl"

from mail_triage_agent.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__", "__author__"]
