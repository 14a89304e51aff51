"""LLM gateway, response normalization and prompt contracts."""

from .gateway import LLMGateway
from .payload import KeyedPayload, ListPayload, classify_payload, flatten_payload

__all__ = ["KeyedPayload", "LLMGateway", "ListPayload", "classify_payload", "flatten_payload"]
