import asyncio
import dataclasses
import json

import pytest

from mintwatch.adapters.manifest_jsonl import JSONLJournal, read_journal
from mintwatch.exceptions import SourceUnavailable, StoreUnavailable

from conftest import ALICE, BOB, CAROL, mint_log


def _snapshot(store) -> list[dict]:
    return json.loads(store.data["mintEvents"])


def _ledger(store) -> list[str]:
    return json.loads(store.data["processedEvents"])


def _cursor(store) -> int:
    return json.loads(store.data["cursor"])["block"]


async def test_catch_up_is_gap_free(rpc, store, make_engine):
    rpc.head = 120
    rpc.logs = [
        mint_log(101, ALICE, 1000, 3),
        mint_log(105, BOB, 500, 999, log_index=0),
        mint_log(105, ALICE, 200, 1, log_index=1),
    ]
    engine = make_engine(start_block=100)
    await engine.load()

    rec = await engine.catch_up()

    assert rpc.calls == [(100, 120)]
    assert (rec.applied, rec.duplicates, rec.malformed) == (3, 0, 0)
    assert len(_ledger(store)) == 3
    assert _snapshot(store) == [
        {"user": ALICE, "morpheusAmount": "1200", "titanXAmount": "1286"},
        {"user": BOB, "morpheusAmount": "500", "titanXAmount": "500"},
    ]
    assert engine.cursor == 120
    assert _cursor(store) == 120
    assert store.saves["processedEvents"] == 1


async def test_reingesting_the_same_event_is_a_noop(rpc, store, make_engine):
    rpc.head = 110
    rpc.logs = [mint_log(101, ALICE, 1000, 3)]
    engine = make_engine()
    await engine.catch_up()
    aggregates, ledger = store.data["mintEvents"], store.data["processedEvents"]

    # the same log reappears in a later range (reorg replay / overlapping query)
    rpc.head = 111
    rpc.logs.append(dataclasses.replace(rpc.logs[0], block_number=111))
    rec = await engine.poll()

    assert (rec.applied, rec.duplicates) == (0, 1)
    assert store.data["mintEvents"] == aggregates
    assert store.data["processedEvents"] == ledger


async def test_poll_without_new_blocks_writes_nothing(rpc, store, make_engine):
    rpc.head = 110
    engine = make_engine()
    await engine.catch_up()
    saves = dict(store.saves)

    assert await engine.poll() is None

    assert store.saves == saves
    assert engine.cursor == 110
    assert rpc.calls == [(100, 110)]


async def test_poll_fetches_only_blocks_past_the_cursor(rpc, store, make_engine):
    rpc.head = 110
    engine = make_engine()
    await engine.catch_up()

    rpc.head = 115
    rpc.logs = [mint_log(113, CAROL, 42, 2)]
    rec = await engine.poll()

    assert rpc.calls[-1] == (111, 115)
    assert rec.applied == 1
    assert engine.cursor == 115


async def test_empty_poll_still_advances_the_cursor(rpc, store, make_engine):
    rpc.head = 110
    engine = make_engine()
    await engine.catch_up()

    rpc.head = 130
    rec = await engine.poll()

    assert rec.logs == 0
    assert engine.cursor == 130
    assert _cursor(store) == 130
    rpc.head = 131
    await engine.poll()
    assert rpc.calls[-1] == (131, 131)


async def test_head_failure_aborts_the_cycle(rpc, store, make_engine):
    rpc.head = 110
    engine = make_engine()
    await engine.catch_up()
    saves = dict(store.saves)

    rpc.fail_head = True
    with pytest.raises(SourceUnavailable):
        await engine.poll()

    assert engine.cursor == 110
    assert store.saves == saves


async def test_range_failure_aborts_the_cycle_and_retries_same_range(rpc, store, make_engine):
    rpc.head = 110
    engine = make_engine()
    await engine.catch_up()

    rpc.head = 120
    rpc.logs = [mint_log(118, ALICE, 7, 1)]
    rpc.fail_logs = True
    with pytest.raises(SourceUnavailable):
        await engine.poll()
    assert engine.cursor == 110
    assert "mintEvents" not in store.data

    rpc.fail_logs = False
    rpc.head = 125
    rec = await engine.poll()
    assert rpc.calls[-1] == (111, 125)
    assert rec.applied == 1


async def test_failed_catch_up_leaves_engine_not_caught_up(rpc, make_engine):
    rpc.fail_head = True
    engine = make_engine()
    with pytest.raises(SourceUnavailable):
        await engine.catch_up()
    assert engine.cursor is None
    assert not engine.caught_up
    with pytest.raises(RuntimeError):
        await engine.poll()


async def test_malformed_log_is_skipped_not_fatal(rpc, store, make_engine):
    bad = dataclasses.replace(mint_log(102, BOB, 5, 1), data_hex="0x")
    rpc.head = 110
    rpc.logs = [mint_log(101, ALICE, 10, 1), bad, mint_log(103, CAROL, 20, 1)]
    engine = make_engine()

    rec = await engine.catch_up()

    assert (rec.applied, rec.malformed) == (2, 1)
    assert [r["user"] for r in _snapshot(store)] == [CAROL, ALICE]
    assert len(_ledger(store)) == 2


async def test_store_failure_does_not_double_count(rpc, store, make_engine):
    rpc.head = 110
    engine = make_engine()
    await engine.catch_up()

    rpc.head = 112
    rpc.logs = [mint_log(111, ALICE, 100, 1), mint_log(112, BOB, 50, 1)]
    store.failing.add("mintEvents")
    with pytest.raises(StoreUnavailable):
        await engine.poll()
    assert engine.cursor == 110

    store.failing.clear()
    rec = await engine.poll()

    assert (rec.applied, rec.duplicates) == (1, 1)
    assert _snapshot(store) == [
        {"user": ALICE, "morpheusAmount": "100", "titanXAmount": "100"},
        {"user": BOB, "morpheusAmount": "50", "titanXAmount": "50"},
    ]
    assert len(_ledger(store)) == 2
    assert engine.cursor == 112


async def test_failed_flush_on_last_event_is_persisted_before_the_ledger(rpc, store, make_engine):
    rpc.head = 110
    engine = make_engine()
    await engine.catch_up()

    rpc.head = 111
    rpc.logs = [mint_log(111, ALICE, 100, 1)]
    store.failing.add("mintEvents")
    with pytest.raises(StoreUnavailable):
        await engine.poll()
    # still failing: the retry must not persist a ledger ahead of the aggregate
    with pytest.raises(StoreUnavailable):
        await engine.poll()
    assert _ledger(store) == []
    assert _cursor(store) == 110

    store.failing.clear()
    rec = await engine.poll()
    assert (rec.applied, rec.duplicates) == (0, 1)
    assert _snapshot(store) == [{"user": ALICE, "morpheusAmount": "100", "titanXAmount": "100"}]
    assert len(_ledger(store)) == 1
    assert not engine.aggregator.dirty

    restarted = make_engine()
    await restarted.load()
    assert restarted.aggregates.get(ALICE).morpheus_amount == 100
    assert restarted.cursor == 111


async def test_restart_resumes_from_persisted_cursor(rpc, store, make_engine):
    rpc.head = 110
    rpc.logs = [mint_log(101, ALICE, 10, 1)]
    await make_engine().catch_up()

    # blocks mined while the process was down must not be skipped
    rpc.head = 140
    rpc.logs.append(mint_log(125, BOB, 20, 1))
    restarted = make_engine()
    await restarted.load()
    rec = await restarted.catch_up()

    assert rpc.calls[-1] == (111, 140)
    assert rec.applied == 1
    assert len(restarted.aggregates) == 2
    assert restarted.cursor == 140


async def test_catch_up_before_start_block_is_idle(rpc, store, make_engine):
    rpc.head = 50
    engine = make_engine(start_block=100)
    rec = await engine.catch_up()

    assert rec.status == "idle"
    assert rpc.calls == []
    assert engine.cursor == 99
    assert await engine.poll() is None


async def test_max_block_range_splits_queries(rpc, store, make_engine):
    rpc.head = 125
    rpc.logs = [mint_log(101, ALICE, 1, 1), mint_log(124, BOB, 2, 1)]
    engine = make_engine(max_block_range=10)

    rec = await engine.catch_up()

    assert rpc.calls == [(100, 109), (110, 119), (120, 125)]
    assert rec.applied == 2


async def test_unreadable_snapshot_raises_store_unavailable(store, make_engine):
    store.data["processedEvents"] = b"{not json"
    with pytest.raises(StoreUnavailable):
        await make_engine().load()


async def test_load_keeps_the_shared_aggregate_handle(rpc, store, make_engine):
    rpc.head = 110
    rpc.logs = [mint_log(101, ALICE, 10, 1)]
    await make_engine().catch_up()

    engine = make_engine()
    handle = engine.aggregates
    await engine.load()
    assert handle is engine.aggregates
    assert handle.get(ALICE).morpheus_amount == 10


async def test_cycles_are_journaled(rpc, store, make_engine, tmp_path):
    journal_path = tmp_path / "journal" / "cycles.jsonl"
    engine = make_engine(journal=JSONLJournal(str(journal_path)))
    rpc.head = 110
    rpc.logs = [mint_log(101, ALICE, 10, 1)]
    await engine.catch_up()
    rpc.head = 111
    rpc.fail_logs = True
    with pytest.raises(SourceUnavailable):
        await engine.poll()

    recs = read_journal(str(journal_path))
    assert [(r.kind, r.status) for r in recs] == [("catch_up", "done"), ("poll", "failed")]
    assert recs[0].applied == 1
    assert recs[1].from_block == 111
    assert "more than 10000" in recs[1].error


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    async def _spin():
        while not predicate():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_spin(), timeout)


async def test_run_catches_up_then_polls(rpc, store, make_engine):
    rpc.head = 110
    rpc.logs = [mint_log(101, ALICE, 10, 1)]
    engine = make_engine()
    stop = asyncio.Event()
    task = asyncio.create_task(engine.run(poll_interval_s=0.01, stop=stop))

    await _wait_for(lambda: engine.caught_up)
    rpc.logs.append(mint_log(117, BOB, 3, 1))
    rpc.head = 120
    await _wait_for(lambda: engine.cursor == 120)
    stop.set()
    await task

    assert rpc.calls[0] == (100, 110)
    assert (111, 120) in rpc.calls
    assert len(engine.ledger) == 2


async def test_run_retries_catch_up_after_source_failure(rpc, make_engine):
    rpc.head = 110
    rpc.fail_head = True
    engine = make_engine()
    stop = asyncio.Event()
    task = asyncio.create_task(engine.run(poll_interval_s=0.01, stop=stop))

    await asyncio.sleep(0.05)
    assert not engine.caught_up
    rpc.fail_head = False
    await _wait_for(lambda: engine.caught_up)
    stop.set()
    await task

    assert engine.cursor == 110


async def test_corrupt_ledger_shape_raises_store_unavailable(store, make_engine):
    store.data["processedEvents"] = b'"abc"'
    with pytest.raises(StoreUnavailable, match="unreadable"):
        await make_engine().load()
