from __future__ import annotations

from ..ports.storage import KeyValueStore


class MemoryStore(KeyValueStore):
    """In-process store; `saves` counts writes per key."""
    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self.data: dict[str, bytes] = dict(initial or {})
        self.saves: dict[str, int] = {}

    async def load(self, key: str) -> bytes | None:
        return self.data.get(key)

    async def save(self, key: str, data: bytes) -> None:
        self.data[key] = data
        self.saves[key] = self.saves.get(key, 0) + 1
