import logging

import pytest
from eth_utils import to_checksum_address

from mintwatch.adapters.kv_memory import MemoryStore
from mintwatch.application.ingestion import IngestionEngine
from mintwatch.domain.decoding import MINT_T0
from mintwatch.domain.models import EventLog
from mintwatch.domain.value_types import Address
from mintwatch.exceptions import SourceUnavailable, StoreUnavailable
from mintwatch.logging import logger

CONTRACT = Address("0xf8c4b0e8322ebec10580e34667210386007c4398")
ALICE = to_checksum_address("0x" + "a1" * 20)
BOB = to_checksum_address("0x" + "b2" * 20)
CAROL = to_checksum_address("0x" + "c3" * 20)


def mint_log(
    block: int,
    user: str,
    amount: int,
    cycle: int,
    *,
    log_index: int = 0,
    tx_hash: str | None = None,
) -> EventLog:
    return EventLog(
        address=CONTRACT,
        topics=(MINT_T0, "0x" + "0" * 24 + user[2:].lower(), "0x" + f"{cycle:064x}"),
        data_hex="0x" + f"{amount:064x}",
        block_number=block,
        tx_hash=tx_hash or "0x" + f"{block:062x}{log_index:02x}",
        log_index=log_index,
    )


class FakeRPC:
    """Serves a fixed list of logs and a settable chain head."""

    def __init__(self, head: int = 0, logs: list[EventLog] | None = None) -> None:
        self.head = head
        self.logs = list(logs or [])
        self.calls: list[tuple[int, int]] = []
        self.fail_head = False
        self.fail_logs = False

    async def latest_block(self) -> int:
        if self.fail_head:
            raise SourceUnavailable("eth_blockNumber", "connection refused")
        return self.head

    async def get_logs(self, address, topic0s, from_block, to_block):
        self.calls.append((from_block, to_block))
        if self.fail_logs:
            raise SourceUnavailable("eth_getLogs", "query returned more than 10000 results")
        hits = [log for log in self.logs if from_block <= log.block_number <= to_block]
        return sorted(hits, key=lambda log: (log.block_number, log.log_index))


class FlakyStore(MemoryStore):
    """MemoryStore whose saves fail for the keys listed in `failing`."""

    def __init__(self) -> None:
        super().__init__()
        self.failing: set[str] = set()

    async def save(self, key: str, data: bytes) -> None:
        if key in self.failing:
            raise StoreUnavailable(key, "disk full")
        await super().save(key, data)


@pytest.fixture(scope="session", autouse=True)
def _set_mintwatch_logging():
    """
    Set the logging level to DEBUG for the test run
    """
    logger.setLevel(logging.DEBUG)


@pytest.fixture
def rpc() -> FakeRPC:
    return FakeRPC()


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def make_engine(rpc, store):
    def _make(start_block: int = 100, **kwargs) -> IngestionEngine:
        kwargs.setdefault("rpc", rpc)
        kwargs.setdefault("store", store)
        return IngestionEngine(address=CONTRACT, start_block=start_block, **kwargs)

    return _make
