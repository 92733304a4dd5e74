from __future__ import annotations
from dataclasses import dataclass
from .value_types import Address, CycleKind, EventId, Status, Topic0

@dataclass(slots=True, frozen=True)
class BlockRange:
    start: int
    end: int
    def span(self) -> int: return self.end - self.start + 1

@dataclass(slots=True, frozen=True)
class EventLog:
    address: Address
    topics: tuple[str, ...]            # all topics, lowercased with 0x
    data_hex: str
    block_number: int
    tx_hash: str
    log_index: int

    @property
    def topic0(self) -> Topic0 | None:
        return Topic0(self.topics[0]) if self.topics else None

@dataclass(slots=True, frozen=True)
class MintEvent:
    user: Address                      # checksum
    morpheus_amount: int
    cycle_id: int
    tx_hash: str
    log_index: int
    block_number: int

    @property
    def event_id(self) -> EventId:
        return EventId(f"{self.tx_hash}-{self.log_index}")

@dataclass(slots=True)
class UserAggregate:
    user: Address
    morpheus_amount: int
    titanx_amount: int

@dataclass(slots=True, frozen=True)
class CycleRec:
    kind: CycleKind
    from_block: int
    to_block: int
    status: Status = "done"
    logs: int = 0
    applied: int = 0
    duplicates: int = 0
    malformed: int = 0
    error: str | None = None
    updated_at: float = 0.0
