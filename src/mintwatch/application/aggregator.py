from __future__ import annotations

from ..config import AGGREGATE_KEY
from ..domain.conversion import titanx_for
from ..domain.models import UserAggregate
from ..domain.state import AggregateStore
from ..domain.value_types import Address
from ..ports.storage import KeyValueStore


class Aggregator:
    """
    Sole writer of the aggregate store.

    `accrue` folds one mint into memory and cannot fail; `flush` rewrites the
    whole snapshot to the key-value store and may raise StoreUnavailable.
    `dirty` stays set until a flush succeeds after the last accrual.
    """
    def __init__(self, aggregates: AggregateStore, store: KeyValueStore, key: str = AGGREGATE_KEY) -> None:
        self.aggregates = aggregates
        self.store = store
        self.key = key
        self.dirty = False

    def accrue(self, user: Address, morpheus_amount: int, cycle_id: int) -> UserAggregate:
        if morpheus_amount < 0:
            raise ValueError(f"negative mint amount {morpheus_amount}")
        row = self.aggregates.accrue(user, morpheus_amount, titanx_for(morpheus_amount, cycle_id))
        self.dirty = True
        return row

    async def flush(self) -> None:
        await self.store.save(self.key, self.aggregates.to_bytes())
        self.dirty = False

    async def apply(self, user: Address, morpheus_amount: int, cycle_id: int) -> UserAggregate:
        row = self.accrue(user, morpheus_amount, cycle_id)
        await self.flush()
        return row
