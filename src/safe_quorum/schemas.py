"""Validated request payloads for the proposal commands.

CLI options and transaction description files are converted into these
models once, at the boundary; the proposal flows only see validated values.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import InvalidInputError
from .models import MetaTransaction, Operation, checksum_address, hex_to_bytes, normalize_hash
from .signatures import split_signatures


def parse_ether(value: str) -> int:
    """Convert an ETH amount string to wei."""
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidInputError(f"Invalid ETH amount: {value}", field="value") from None
    if amount < 0:
        raise InvalidInputError(f"Invalid ETH amount: {value}", field="value")
    wei = amount * Decimal(10**18)
    if wei != wei.to_integral_value():
        raise InvalidInputError(f"ETH amount has too many decimals: {value}", field="value")
    return int(wei)


def raise_invalid_input(error: ValidationError) -> None:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    raise InvalidInputError(first.get("msg", str(error)), field=field or None) from error


class _Request(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    @classmethod
    def parse(cls, **data: Any):
        """Validate input, mapping validation failures to InvalidInputError."""
        try:
            return cls(**data)
        except ValidationError as e:
            raise_invalid_input(e)


class TxDescription(_Request):
    """One entry of a transaction description file."""
    to: str
    value: str = "0"
    data: Optional[str] = None
    method: Optional[str] = None
    params: List[Any] = Field(default_factory=list)
    operation: Literal[0, 1] = 0

    @field_validator("to")
    @classmethod
    def _checksum_to(cls, value: str) -> str:
        return checksum_address(value, field="to")

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, value: Any) -> Any:
        return str(value) if isinstance(value, (int, float)) else value


class ProposeRequest(_Request):
    """Single-action proposal."""
    safe: str
    to: str
    value: str = "0"
    data: str = "0x"
    delegatecall: bool = False
    on_chain_hash: bool = False

    @field_validator("safe", "to")
    @classmethod
    def _checksum(cls, value: str) -> str:
        return checksum_address(value)

    @field_validator("data")
    @classmethod
    def _check_hex(cls, value: str) -> str:
        hex_to_bytes(value, field="data")
        return value

    def to_meta_transaction(self) -> MetaTransaction:
        return MetaTransaction(
            to=self.to,
            value=parse_ether(self.value),
            data=hex_to_bytes(self.data, field="data"),
            operation=Operation.DELEGATE_CALL if self.delegatecall else Operation.CALL,
        )


class SubmitRequest(_Request):
    """Submission of a stored proposal."""
    safe_tx_hash: str
    signatures: List[str] = Field(default_factory=list)
    gas_price: Optional[int] = Field(default=None, ge=0)
    gas_limit: Optional[int] = Field(default=None, gt=0)
    build_only: bool = False
    on_chain_hash: bool = False

    @field_validator("safe_tx_hash")
    @classmethod
    def _normalize_hash(cls, value: str) -> str:
        return normalize_hash(value)

    @field_validator("signatures", mode="before")
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return split_signatures(value)
        return value
