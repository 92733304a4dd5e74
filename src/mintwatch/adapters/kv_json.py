from __future__ import annotations
import os, asyncio

from ..exceptions import StoreUnavailable
from ..ports.storage import KeyValueStore


class JsonFileStore(KeyValueStore):
    """
    One `<key>.json` file per key under `root_dir`.
    Saves go to a temp file, are fsynced, then atomically replace the previous file.
    """
    def __init__(self, root_dir: str) -> None:
        self.root = root_dir
        os.makedirs(self.root, exist_ok=True)
        self._lock = asyncio.Lock()

    def path(self, key: str) -> str:
        return os.path.join(self.root, f"{key}.json")

    async def load(self, key: str) -> bytes | None:
        try:
            return await asyncio.to_thread(self._read, self.path(key))
        except OSError as e:
            raise StoreUnavailable(key, str(e)) from e

    async def save(self, key: str, data: bytes) -> None:
        async with self._lock:
            try:
                await asyncio.to_thread(self._write, self.path(key), data)
            except OSError as e:
                raise StoreUnavailable(key, str(e)) from e

    @staticmethod
    def _read(path: str) -> bytes | None:
        if not os.path.exists(path):
            return None
        with open(path, "rb") as f:
            return f.read()

    @staticmethod
    def _write(path: str, data: bytes) -> None:
        tmp = path + ".tmp"
        with open(tmp, "wb") as f:
            f.write(data); f.flush(); os.fsync(f.fileno())
        os.replace(tmp, path)
