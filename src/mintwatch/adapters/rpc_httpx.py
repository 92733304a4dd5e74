from __future__ import annotations
import httpx
from typing import Any, Sequence
from ..domain.models import EventLog
from ..domain.value_types import Address, Topic0
from ..exceptions import SourceUnavailable
from ..ports.rpc import RPCClient

def _to_hex_block(n: int) -> str: return hex(int(n))
def _is_topic_hash(x: str) -> bool: return isinstance(x, str) and x.startswith("0x") and len(x)==66
def _normalize_topic0_list(t0s: Sequence[Topic0]) -> list[str]:
    out: list[str] = []
    for t in t0s:
        s = str(t).strip().lower()
        out.append(s)
    return out

def _build_topics_param(topic0s: Sequence[Topic0]) -> list[list[str]]:
    t0s = _normalize_topic0_list(topic0s)
    if not all(_is_topic_hash(x) for x in t0s):
        raise ValueError(f"Invalid topic0(s): {t0s}")
    return [t0s]

class HttpxRPC(RPCClient):
    def __init__(
        self,
        rpc_url: str,
        timeout_s: float = 20,
        max_conn: int = 8,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.client = httpx.AsyncClient(
            http2=transport is None,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max(1, max_conn//2)),
            transport=transport,
        )

    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc":"2.0","id":1,"method":method,"params":params}
        try:
            r = await self.client.post(self.rpc_url, json=payload)
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise SourceUnavailable(method, f"{type(e).__name__}: {e}") from e
        if "error" in data:
            err = data["error"]
            msg = f"code={err.get('code')} message={err.get('message')}" if isinstance(err, dict) else str(err)
            raise SourceUnavailable(method, f"RPC error {msg}")
        if "result" not in data:
            raise SourceUnavailable(method, "response has no result")
        return data["result"]

    async def latest_block(self) -> int:
        result = await self._call("eth_blockNumber", [])
        try:
            return int(result, 16)
        except (TypeError, ValueError) as e:
            raise SourceUnavailable("eth_blockNumber", f"bad block number {result!r}") from e

    async def get_logs(self, address: Address, topic0s: Sequence[Topic0], from_block: int, to_block: int) -> list[EventLog]:
        res = await self._call("eth_getLogs", [{
            "address": str(address).lower(),
            "fromBlock": _to_hex_block(from_block),
            "toBlock": _to_hex_block(to_block),
            "topics": _build_topics_param(topic0s),
        }])
        typed: list[EventLog] = []
        for rl in res or []:
            if rl.get("removed"):
                continue
            try:
                typed.append(EventLog(
                    address=Address(rl["address"].lower()),
                    topics=tuple(t.lower() for t in rl.get("topics", [])),
                    data_hex=str(rl.get("data") or "0x"),
                    block_number=int(rl["blockNumber"], 16),
                    tx_hash=(rl.get("transactionHash") or "").lower(),
                    log_index=int(rl["logIndex"], 16),
                ))
            except (KeyError, TypeError, ValueError) as e:
                # a log without block/index cannot be ordered or deduplicated
                raise SourceUnavailable("eth_getLogs", f"unparseable log entry: {e!r}") from e
        return typed

    async def aclose(self) -> None:
        await self.client.aclose()
