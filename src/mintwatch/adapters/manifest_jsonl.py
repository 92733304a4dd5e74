from __future__ import annotations
import os, json, asyncio
from dataclasses import asdict
from ..ports.storage import JournalSink
from ..domain.models import CycleRec

class JSONLJournal(JournalSink):
    def __init__(self, path: str) -> None:
        self.path = path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        self._lock = asyncio.Lock()

    async def append(self, rec: CycleRec) -> None:
        line = json.dumps(asdict(rec), separators=(",", ":")) + "\n"
        async with self._lock:
            await asyncio.to_thread(self._write_line, self.path, line)

    @staticmethod
    def _write_line(path: str, line: str) -> None:
        with open(path, "a", buffering=1) as f:
            f.write(line); f.flush(); os.fsync(f.fileno())


def read_journal(path: str) -> list[CycleRec]:
    out: list[CycleRec] = []
    if not os.path.exists(path):
        return out
    with open(path, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            out.append(CycleRec(**json.loads(line)))
    return out
