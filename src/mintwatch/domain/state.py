from __future__ import annotations

import json
from typing import Iterable, Iterator

from .models import UserAggregate
from .value_types import Address, EventId


class AggregateStore:
    """
    Per-user MORPHEUS / TitanX totals, keyed by checksum address.

    Insertion order is kept so ties in `snapshot()` stay in first-seen order.
    """
    def __init__(self, rows: Iterable[UserAggregate] = ()) -> None:
        self._by_user: dict[Address, UserAggregate] = {}
        self.replace(rows)

    def replace(self, rows: Iterable[UserAggregate]) -> None:
        self._by_user = {row.user: row for row in rows}

    def __len__(self) -> int:
        return len(self._by_user)

    def __iter__(self) -> Iterator[UserAggregate]:
        return iter(self._by_user.values())

    def get(self, user: Address) -> UserAggregate | None:
        return self._by_user.get(user)

    def accrue(self, user: Address, morpheus_amount: int, titanx_amount: int) -> UserAggregate:
        row = self._by_user.get(user)
        if row is None:
            row = UserAggregate(user=user, morpheus_amount=morpheus_amount, titanx_amount=titanx_amount)
            self._by_user[user] = row
        else:
            row.morpheus_amount += morpheus_amount
            row.titanx_amount += titanx_amount
        return row

    def snapshot(self) -> list[dict[str, str]]:
        """Wire representation, sorted by MORPHEUS amount descending."""
        rows = sorted(self._by_user.values(), key=lambda r: r.morpheus_amount, reverse=True)
        return [
            {"user": r.user, "morpheusAmount": str(r.morpheus_amount), "titanXAmount": str(r.titanx_amount)}
            for r in rows
        ]

    def to_bytes(self) -> bytes:
        return json.dumps(self.snapshot(), separators=(",", ":")).encode()

    @classmethod
    def from_bytes(cls, raw: bytes | None) -> "AggregateStore":
        if not raw:
            return cls()
        recs = json.loads(raw)
        if not isinstance(recs, list):
            raise ValueError(f"aggregate snapshot is a {type(recs).__name__}, expected a list")
        rows: list[UserAggregate] = []
        for rec in recs:
            row = UserAggregate(
                user=Address(rec["user"]),
                morpheus_amount=int(rec["morpheusAmount"]),
                titanx_amount=int(rec["titanXAmount"]),
            )
            if row.morpheus_amount < 0 or row.titanx_amount < 0:
                raise ValueError(f"negative amount for {row.user}")
            rows.append(row)
        return cls(rows)


class DedupLedger:
    """Set of processed event ids; serialized in the order they were recorded."""

    def __init__(self, ids: Iterable[str] = ()) -> None:
        self._ids: dict[EventId, None] = dict.fromkeys(EventId(i) for i in ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._ids

    def add(self, event_id: EventId) -> None:
        self._ids[event_id] = None

    def to_bytes(self) -> bytes:
        return json.dumps(list(self._ids), separators=(",", ":")).encode()

    @classmethod
    def from_bytes(cls, raw: bytes | None) -> "DedupLedger":
        if not raw:
            return cls()
        ids = json.loads(raw)
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise ValueError("ledger is not a list of event id strings")
        return cls(ids)


def cursor_to_bytes(block: int) -> bytes:
    return json.dumps({"block": block}).encode()

def cursor_from_bytes(raw: bytes | None) -> int | None:
    if not raw:
        return None
    return int(json.loads(raw)["block"])
