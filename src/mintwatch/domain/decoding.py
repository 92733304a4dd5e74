from __future__ import annotations

from eth_utils import keccak, to_checksum_address

from ..exceptions import MalformedEvent
from .models import EventLog, MintEvent
from .value_types import Address, Topic0


MINT_SIGNATURE = "MintExecuted(address,uint256,uint32)"
MINT_T0 = Topic0("0x" + keccak(text=MINT_SIGNATURE).hex())

_UINT32_MAX = (1 << 32) - 1

# --------- 32B word slicing (no eth_abi) --------------------------------------

def _strip0x(s: str) -> str:
    return s[2:] if s[:2].lower() == "0x" else s

def _hex_to_bytes(s: str) -> bytes:
    h = _strip0x(s)
    if len(h) % 2: h = "0" + h
    return bytes.fromhex(h) if h else b""

def _word(b: bytes, i: int) -> bytes:
    return b[i*32:(i+1)*32]

def _u256(w: bytes) -> int:
    return int.from_bytes(w, "big")

def _addr_from_topic(t: str) -> Address:
    h = _strip0x(t)
    if len(h) != 64:
        raise ValueError(f"topic is {len(h)} hex chars, expected 64")
    if int(h[:24], 16) != 0:
        raise ValueError(f"address topic has non-zero upper bytes: 0x{h[:24]}")
    return Address(to_checksum_address("0x" + h[-40:]))

# ---------------------------- public API --------------------------------------

def decode_mint(log: EventLog) -> MintEvent:
    """
    Decode a raw `MintExecuted` log.

    topics: [t0, user (indexed address), mintCycleId (indexed uint32)]
    data:   [morpheusAmount (uint256)]

    Raises MalformedEvent for anything that is not a well-formed mint log.
    """
    if not log.tx_hash:
        raise MalformedEvent(log.tx_hash, log.log_index, "missing transaction hash")
    if log.topic0 != MINT_T0:
        raise MalformedEvent(log.tx_hash, log.log_index, f"unexpected topic0 {log.topic0}")
    if len(log.topics) < 3:
        raise MalformedEvent(log.tx_hash, log.log_index, f"expected 3 topics, got {len(log.topics)}")

    try:
        data = _hex_to_bytes(log.data_hex)
        if len(data) < 32:
            raise ValueError(f"data is {len(data)} bytes, expected >= 32")
        user = _addr_from_topic(log.topics[1])
        cycle_id = _u256(_hex_to_bytes(log.topics[2]))
        amount = _u256(_word(data, 0))
    except ValueError as e:
        raise MalformedEvent(log.tx_hash, log.log_index, str(e)) from e

    if cycle_id > _UINT32_MAX:
        raise MalformedEvent(log.tx_hash, log.log_index, f"cycle id {cycle_id} overflows uint32")

    return MintEvent(
        user=user,
        morpheus_amount=amount,
        cycle_id=cycle_id,
        tx_hash=log.tx_hash,
        log_index=log.log_index,
        block_number=log.block_number,
    )
