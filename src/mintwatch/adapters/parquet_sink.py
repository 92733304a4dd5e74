from __future__ import annotations
import os, pyarrow as pa, pyarrow.parquet as pq
from typing import Iterable, Mapping

# amounts are uint256 sums: kept as decimal strings, they do not fit int64
AGGREGATE_SCHEMA = pa.schema([
    pa.field("rank",            pa.int32()),
    pa.field("user",            pa.large_string()),
    pa.field("morpheus_amount", pa.large_string()),
    pa.field("titanx_amount",   pa.large_string()),
])

def _rows_to_table(rows: Iterable[Mapping[str, str]]) -> pa.Table:
    rs = list(rows)
    return pa.Table.from_arrays(
        arrays=[
            pa.array(list(range(1, len(rs) + 1)), pa.int32()),
            pa.array([r["user"] for r in rs], pa.large_string()),
            pa.array([r["morpheusAmount"] for r in rs], pa.large_string()),
            pa.array([r["titanXAmount"] for r in rs], pa.large_string()),
        ],
        schema=AGGREGATE_SCHEMA,
    )

def write_aggregates_parquet(rows: Iterable[Mapping[str, str]], path: str, codec: str = "zstd") -> int:
    """
    Write an aggregate snapshot (wire rows, already sorted) to `path`.
    Returns the number of rows written.
    """
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    table = _rows_to_table(rows)
    tmp = path + ".tmp"
    pq.write_table(table, tmp, compression=codec)
    os.replace(tmp, path)
    return len(table)
