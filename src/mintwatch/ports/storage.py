# mintwatch/ports/storage.py
from __future__ import annotations

from typing import Protocol
from ..domain.models import CycleRec


class KeyValueStore(Protocol):
    """Port for durable key -> bytes persistence (aggregate, ledger, cursor)."""

    async def load(self, key: str) -> bytes | None:
        """Return the stored bytes, or None when the key has never been saved."""

    async def save(self, key: str, data: bytes) -> None:
        """Replace the value for `key`; durable once this returns. Raises StoreUnavailable."""


class JournalSink(Protocol):
    """Port for appending ingestion cycle records (e.g., JSONL journal)."""

    async def append(self, rec: CycleRec) -> None:
        """Append a cycle record atomically (callers handle ordering/locking)."""
