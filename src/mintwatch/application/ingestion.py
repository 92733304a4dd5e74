from __future__ import annotations
import asyncio, time
from typing import Sequence

from ..config import CURSOR_KEY, LEDGER_KEY
from ..domain.decoding import MINT_T0, decode_mint
from ..domain.models import CycleRec, EventLog
from ..domain.state import AggregateStore, DedupLedger, cursor_from_bytes, cursor_to_bytes
from ..domain.value_types import Address, CycleKind, Topic0
from ..exceptions import MalformedEvent, MintwatchError, SourceUnavailable, StoreUnavailable
from ..logging import logger
from ..ports.rpc import RPCClient
from ..ports.storage import JournalSink, KeyValueStore
from .aggregator import Aggregator
from .planning import plan_windows


class IngestionEngine:
    """
    Folds `MintExecuted` logs into the aggregate store exactly once.

    The engine owns the aggregate store, the dedup ledger and the cursor (highest
    block fully processed). `catch_up()` replays from the configured start block
    (or from cursor + 1 after a restart) to the chain head; `poll()` then fetches
    only blocks past the cursor. Both abort without touching the cursor when the
    source or the store fails, so the next cycle retries the same range and the
    ledger turns any overlap into a no-op.
    """
    def __init__(
        self,
        *,
        rpc: RPCClient,
        store: KeyValueStore,
        address: Address,
        start_block: int,
        topic0s: Sequence[Topic0] = (MINT_T0,),
        max_block_range: int | None = None,
        journal: JournalSink | None = None,
    ) -> None:
        self.rpc = rpc
        self.store = store
        self.address = address
        self.start_block = start_block
        self.topic0s = list(topic0s)
        self.max_block_range = max_block_range
        self.journal = journal

        self.aggregates = AggregateStore()
        self.ledger = DedupLedger()
        self.aggregator = Aggregator(self.aggregates, store)
        self.cursor: int | None = None
        self.caught_up = False

    async def load(self) -> None:
        """Restore aggregate, ledger and cursor from the store. Absent keys mean a fresh start."""
        raw_aggregates = await self.store.load(self.aggregator.key)
        raw_ledger = await self.store.load(LEDGER_KEY)
        raw_cursor = await self.store.load(CURSOR_KEY)
        try:
            aggregates = AggregateStore.from_bytes(raw_aggregates)
            ledger = DedupLedger.from_bytes(raw_ledger)
            cursor = cursor_from_bytes(raw_cursor)
        except (ValueError, KeyError, TypeError) as e:
            raise StoreUnavailable("*", f"unreadable snapshot: {e}") from e

        # keep the same AggregateStore object: readers may already hold it
        self.aggregates.replace(aggregates)
        self.ledger = ledger
        self.cursor = cursor
        logger.info(
            f"Loaded {len(self.aggregates)} users, {len(self.ledger)} processed events, "
            f"cursor={self.cursor}"
        )

    # ---------------------------------------------------------------- cycles

    async def catch_up(self) -> CycleRec:
        head = await self._latest_block("catch_up")
        from_block = self.start_block if self.cursor is None else max(self.start_block, self.cursor + 1)

        if from_block > head:
            self.cursor = from_block - 1
            self.caught_up = True
            rec = CycleRec("catch_up", from_block, head, "idle", updated_at=time.time())
            await self._journal(rec)
            logger.info(f"Catch-up: nothing between block {from_block} and head {head}")
            return rec

        rec = await self._cycle("catch_up", from_block, head)
        self.caught_up = True
        logger.info(
            f"Fetched historical events from block {from_block} to {head}: "
            f"{rec.applied} applied, {rec.duplicates} duplicate, {rec.malformed} malformed"
        )
        return rec

    async def poll(self) -> CycleRec | None:
        """One polling cycle. Returns None when the head has not moved past the cursor."""
        if self.cursor is None or not self.caught_up:
            raise RuntimeError("catch_up() must complete before polling")
        logger.debug("Polling for new events...")
        head = await self._latest_block("poll")
        if head <= self.cursor:
            logger.info(f"No new blocks (head={head}, cursor={self.cursor})")
            return None

        rec = await self._cycle("poll", self.cursor + 1, head)
        if rec.applied:
            logger.info(f"Poll {rec.from_block}..{rec.to_block}: {rec.applied} new events")
        return rec

    async def run(self, poll_interval_s: float, stop: asyncio.Event | None = None) -> None:
        """Catch up, then poll every `poll_interval_s` seconds until `stop` is set."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            try:
                if self.caught_up:
                    await self.poll()
                else:
                    await self.catch_up()
            except SourceUnavailable as e:
                logger.warning(f"Source unavailable, skipping cycle: {e.message}")
            except StoreUnavailable as e:
                logger.error(f"Store unavailable, batch aborted: {e.message}")
            try:
                await asyncio.wait_for(stop.wait(), timeout=poll_interval_s)
            except asyncio.TimeoutError:
                pass

    # -------------------------------------------------------------- internals

    async def _latest_block(self, kind: CycleKind) -> int:
        try:
            return await self.rpc.latest_block()
        except SourceUnavailable as e:
            await self._journal(CycleRec(kind, -1, -1, "failed", error=e.message, updated_at=time.time()))
            raise

    async def _cycle(self, kind: CycleKind, from_block: int, to_block: int) -> CycleRec:
        try:
            logs = await self._fetch(from_block, to_block)
            applied, duplicates, malformed = await self._ingest(logs)
            # an earlier cycle may have folded events whose flush failed; the ledger must not outrun them
            if self.aggregator.dirty:
                await self.aggregator.flush()
            await self.store.save(LEDGER_KEY, self.ledger.to_bytes())
            await self.store.save(CURSOR_KEY, cursor_to_bytes(to_block))
        except MintwatchError as e:
            await self._journal(CycleRec(kind, from_block, to_block, "failed", error=e.message, updated_at=time.time()))
            raise

        # advance even on an empty batch so the same empty range is not re-queried
        self.cursor = to_block
        rec = CycleRec(
            kind, from_block, to_block, "done",
            logs=len(logs), applied=applied, duplicates=duplicates, malformed=malformed,
            updated_at=time.time(),
        )
        await self._journal(rec)
        return rec

    async def _fetch(self, from_block: int, to_block: int) -> list[EventLog]:
        # every window is fetched before anything is applied: a failed window leaves state untouched
        logs: list[EventLog] = []
        for w in plan_windows(from_block, to_block, self.max_block_range):
            logs.extend(await self.rpc.get_logs(self.address, self.topic0s, w.start, w.end))
        return logs

    async def _ingest(self, logs: Sequence[EventLog]) -> tuple[int, int, int]:
        applied = duplicates = malformed = 0
        for log in logs:
            try:
                ev = decode_mint(log)
            except MalformedEvent as e:
                malformed += 1
                logger.warning(f"Skipping {e.message}")
                continue

            if ev.event_id in self.ledger:
                duplicates += 1
                continue

            self.aggregator.accrue(ev.user, ev.morpheus_amount, ev.cycle_id)
            self.ledger.add(ev.event_id)
            await self.aggregator.flush()
            applied += 1
            logger.debug(f"Processed event for user: {ev.user}")
        return applied, duplicates, malformed

    async def _journal(self, rec: CycleRec) -> None:
        if self.journal is None:
            return
        try:
            await self.journal.append(rec)
        except OSError as e:
            logger.warning(f"Cycle journal write failed: {e}")
