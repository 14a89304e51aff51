"""Persisted pipeline state.

This package holds the small amount of state that survives between runs:
the incremental fetch watermark and the cached active context.
"""

from .repository import (
    KeyValueStore,
    SQLiteStateRepository,
    clear_watermark,
    get_watermark,
    set_watermark,
)

__all__ = [
    "KeyValueStore",
    "SQLiteStateRepository",
    "clear_watermark",
    "get_watermark",
    "set_watermark",
]
