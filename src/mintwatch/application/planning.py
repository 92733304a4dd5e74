from __future__ import annotations
from ..domain.models import BlockRange

def plan_windows(start_block: int, end_block: int, step: int | None) -> list[BlockRange]:
    """Split [start_block, end_block] into inclusive windows of at most `step` blocks."""
    if start_block > end_block: return []
    if step is None: return [BlockRange(start_block, end_block)]
    out: list[BlockRange] = []
    b = start_block
    while b <= end_block:
        fb, tb = b, min(end_block, b + step - 1)
        out.append(BlockRange(fb, tb))
        b = tb + 1
    return out
