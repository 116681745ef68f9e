"""Transaction and proposal data model.

- MetaTransaction: one requested call (to, value, data, operation)
- SafeTransaction: a MetaTransaction plus the Safe fee/nonce fields, the unit
  that gets hashed and authorized
- SafeTxProposal: persisted proposal, content addressed by its Safe tx hash

JSON field names follow the Safe tooling conventions (safeTxGas, baseGas, ...)
so proposal files stay interoperable with existing tools.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Union

from eth_utils import encode_hex, is_address, to_checksum_address

from .exceptions import InvalidInputError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

HexLike = Union[str, bytes]


class Operation(IntEnum):
    """Safe call type."""
    CALL = 0
    DELEGATE_CALL = 1


def checksum_address(value: str, field: str | None = None) -> str:
    """Return the EIP-55 form of an address or raise InvalidInputError."""
    if not isinstance(value, str) or not is_address(value):
        raise InvalidInputError(f"Invalid address: {value}", field=field)
    return to_checksum_address(value)


def hex_to_bytes(value: HexLike, field: str | None = None) -> bytes:
    """Decode a 0x-prefixed (or bare) hex string; bytes pass through."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str):
        raise InvalidInputError(f"Invalid hex string provided: {value!r}", field=field)
    raw = value[2:] if value[:2] in ("0x", "0X") else value
    if len(raw) % 2:
        raise InvalidInputError(f"Invalid hex string provided: {value}", field=field)
    try:
        return bytes.fromhex(raw)
    except ValueError:
        raise InvalidInputError(f"Invalid hex string provided: {value}", field=field) from None


def parse_int(value: Any, field: str | None = None) -> int:
    """Parse an integer given as a number, a decimal string or a 0x-hex string."""
    if isinstance(value, bool):
        raise InvalidInputError(f"Invalid integer: {value!r}", field=field)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if text[:2] in ("0x", "0X"):
                return int(text, 16)
            return int(text, 10)
        except ValueError:
            pass
    raise InvalidInputError(f"Invalid integer: {value!r}", field=field)


def normalize_hash(value: HexLike, field: str = "safe_tx_hash") -> str:
    """Return a 32-byte hash as a lowercase 0x-prefixed hex string."""
    raw = hex_to_bytes(value, field=field)
    if len(raw) != 32:
        raise InvalidInputError(
            f"Expected a 32 byte hash, got {len(raw)} bytes", field=field
        )
    return encode_hex(raw)


@dataclass(frozen=True)
class MetaTransaction:
    """A single requested call. Immutable once constructed."""
    to: str
    value: int = 0
    data: bytes = b""
    operation: Operation = Operation.CALL

    def __post_init__(self) -> None:
        if self.value < 0:
            raise InvalidInputError("Value must not be negative", field="value")
        if not isinstance(self.data, bytes):
            raise InvalidInputError("Data must be bytes", field="data")

    @property
    def is_delegate_call(self) -> bool:
        return self.operation == Operation.DELEGATE_CALL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "to": self.to,
            "value": str(self.value),
            "data": encode_hex(self.data),
            "operation": int(self.operation),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetaTransaction":
        return cls(
            to=checksum_address(data["to"], field="to"),
            value=parse_int(data.get("value", 0), field="value"),
            data=hex_to_bytes(data.get("data") or "0x", field="data"),
            operation=_parse_operation(data.get("operation", 0)),
        )


@dataclass(frozen=True)
class SafeTransaction(MetaTransaction):
    """A fully specified Safe transaction; one hash per (Safe, chain)."""
    safe_tx_gas: int = 0
    base_gas: int = 0
    gas_price: int = 0
    gas_token: str = ZERO_ADDRESS
    refund_receiver: str = ZERO_ADDRESS
    nonce: int = 0

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.nonce < 0:
            raise InvalidInputError("Nonce must not be negative", field="nonce")

    @classmethod
    def from_meta(cls, meta: MetaTransaction, nonce: int) -> "SafeTransaction":
        """Build a transaction from an action with default fee fields."""
        return cls(
            to=meta.to,
            value=meta.value,
            data=meta.data,
            operation=meta.operation,
            nonce=nonce,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "to": self.to,
            "value": str(self.value),
            "data": encode_hex(self.data),
            "operation": int(self.operation),
            "safeTxGas": self.safe_tx_gas,
            "baseGas": self.base_gas,
            "gasPrice": self.gas_price,
            "gasToken": self.gas_token,
            "refundReceiver": self.refund_receiver,
            "nonce": str(self.nonce),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SafeTransaction":
        return cls(
            to=checksum_address(data["to"], field="to"),
            value=parse_int(data.get("value", 0), field="value"),
            data=hex_to_bytes(data.get("data") or "0x", field="data"),
            operation=_parse_operation(data.get("operation", 0)),
            safe_tx_gas=parse_int(data.get("safeTxGas", 0), field="safeTxGas"),
            base_gas=parse_int(data.get("baseGas", 0), field="baseGas"),
            gas_price=parse_int(data.get("gasPrice", 0), field="gasPrice"),
            gas_token=checksum_address(data.get("gasToken", ZERO_ADDRESS), field="gasToken"),
            refund_receiver=checksum_address(
                data.get("refundReceiver", ZERO_ADDRESS), field="refundReceiver"
            ),
            nonce=parse_int(data.get("nonce", 0), field="nonce"),
        )


@dataclass(frozen=True)
class SafeTxProposal:
    """A Safe transaction together with its canonical hash.

    Created once when the transaction is first hashed and looked up by hash
    for all later signing and submission steps.
    """
    safe: str
    chain_id: int
    safe_tx_hash: str
    tx: SafeTransaction = field(repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "safe": self.safe,
            "chainId": self.chain_id,
            "safeTxHash": self.safe_tx_hash,
            "tx": self.tx.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SafeTxProposal":
        try:
            return cls(
                safe=checksum_address(data["safe"], field="safe"),
                chain_id=parse_int(data["chainId"], field="chainId"),
                safe_tx_hash=normalize_hash(data["safeTxHash"], field="safeTxHash"),
                tx=SafeTransaction.from_dict(data["tx"]),
            )
        except KeyError as e:
            raise InvalidInputError(f"Proposal is missing field {e.args[0]}") from None


def _parse_operation(value: Any) -> Operation:
    try:
        return Operation(parse_int(value, field="operation"))
    except ValueError:
        raise InvalidInputError(f"Unknown operation: {value!r}", field="operation") from None
