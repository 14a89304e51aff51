"""Custom exceptions for Mail Triage Agent."""


class MailTriageError(Exception):
    """Base exception for all Mail Triage Agent errors."""


class GmailAPIError(MailTriageError):
    """Exception raised for Gmail API related errors."""


class LLMTransportError(MailTriageError):
    """Exception raised when the LLM endpoint cannot be reached.

    Fatal for the current run: the watermark must not advance.
    """


class LLMResponseError(MailTriageError):
    """Exception raised when an LLM response does not match the expected shape."""


class StateStoreError(MailTriageError):
    """Exception raised when persisted state cannot be read or written."""


class ConfigurationError(MailTriageError):
    """Exception raised for configuration related errors."""


class AuthenticationError(MailTriageError):
    """Exception raised for authentication failures."""
