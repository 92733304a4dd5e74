from __future__ import annotations
from typing import NewType, Literal

Address = NewType("Address", str)   # 0x-prefixed; checksum for users, lowercase for filters
Topic0  = NewType("Topic0", str)    # 66-char 0x-hash
EventId = NewType("EventId", str)   # "<tx_hash>-<log_index>"
Status  = Literal["done", "idle", "failed"]
CycleKind = Literal["catch_up", "poll"]
