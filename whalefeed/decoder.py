"""ERC-20 Transfer log decoding.

Transfer(address indexed from, address indexed to, uint256 value):
  topics[0] = keccak256("Transfer(address,address,uint256)")
  topics[1] = from, left-padded to 32 bytes
  topics[2] = to, left-padded to 32 bytes
  data      = value, big-endian uint256

ERC-721 also emits `Transfer` with the same signature but indexes the token id
as a fourth topic, so the topic count check matters.
"""

from __future__ import annotations

from whalefeed.exceptions import DecodeError
from whalefeed.models import TokenTransfer
from whalefeed.providers.base import LogEntry

TRANSFER_EVENT_SIGNATURE = (
    "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
)

UINT256_MAX = 2**256 - 1
_WORD_HEX_LEN = 64


def is_transfer_log(log: LogEntry) -> bool:
    """Cheap pre-check on topic 0 only."""
    return bool(log.topics) and log.topics[0].lower() == TRANSFER_EVENT_SIGNATURE


def decode_transfer_log(
    log: LogEntry,
    tx_hash: str = "",
    block_number: int | None = None,
) -> TokenTransfer:
    """
    Decode a Transfer log into a TokenTransfer.

    Raises:
        DecodeError: wrong signature, topic count != 3, malformed topic
                     words or data that is not a uint256.
    """
    topics = log.topics
    if len(topics) != 3:
        raise DecodeError(
            f"Transfer log must have 3 topics, got {len(topics)}",
            details={"address": log.address, "tx_hash": tx_hash},
        )
    if topics[0].lower() != TRANSFER_EVENT_SIGNATURE:
        raise DecodeError(
            "Log is not a Transfer event",
            details={"address": log.address, "topic0": topics[0]},
        )

    from_addr = _topic_to_address(topics[1])
    to_addr = _topic_to_address(topics[2])
    amount = _data_to_uint(log.data)

    return TokenTransfer(
        contract=log.address.lower(),
        from_addr=from_addr,
        to_addr=to_addr,
        amount=amount,
        tx_hash=tx_hash,
        block_number=block_number,
        log_index=log.log_index,
    )


def _strip_hex(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


def _topic_to_address(topic: str) -> str:
    word = _strip_hex(topic)
    if len(word) != _WORD_HEX_LEN:
        raise DecodeError(f"Topic is not a 32-byte word: {topic!r}")
    try:
        int(word, 16)
    except ValueError as e:
        raise DecodeError(f"Topic is not hex: {topic!r}") from e
    # low-order 20 bytes
    return "0x" + word[-40:].lower()


def _data_to_uint(data: str) -> int:
    body = _strip_hex(data or "")
    if not body:
        raise DecodeError("Transfer log has empty data")
    try:
        value = int(body, 16)
    except ValueError as e:
        raise DecodeError(f"Transfer data is not hex: {data[:20]!r}") from e
    if value > UINT256_MAX:
        raise DecodeError("Transfer amount exceeds uint256")
    return value
