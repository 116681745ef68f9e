"""Transaction description files and transaction-builder export.

A description file is a JSON list of entries:

    [{"to": "0x...", "value": "0.1", "data": "0x...", "operation": 0},
     {"to": "0x...", "value": "0", "method": "transfer(address,uint256)",
      "params": ["0x...", "1000"], "operation": 0}]

`data` wins when it is a hex string; otherwise `method`/`params` are ABI
encoded; otherwise the call carries no data.
"""
from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

from eth_abi import encode
from pydantic import ValidationError
from web3 import Web3

from .exceptions import EmptyBatchError, InvalidInputError
from .models import MetaTransaction, Operation, checksum_address, hex_to_bytes, parse_int
from .schemas import TxDescription, parse_ether, raise_invalid_input

logger = logging.getLogger(__name__)

DEFAULT_BATCH_NAME = "Custom Transactions"

_IGNORED_KEYWORDS = {"memory", "calldata", "storage", "indexed", "payable"}


def _split_top_level(text: str) -> List[str]:
    parts, depth, current = [], 0, []
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    if current or parts:
        parts.append("".join(current))
    return [p.strip() for p in parts]


def parse_method_signature(method: str) -> Tuple[str, List[str]]:
    """Split `name(type name, ...)` into the function name and ABI types."""
    method = method.strip()
    if method.startswith("function "):
        method = method[len("function "):].strip()
    open_idx, close_idx = method.find("("), method.rfind(")")
    if open_idx <= 0 or close_idx < open_idx:
        raise InvalidInputError(f"Invalid method signature: {method}", field="method")

    name = method[:open_idx].strip()
    types = []
    for part in _split_top_level(method[open_idx + 1:close_idx]):
        if not part:
            raise InvalidInputError(f"Invalid method signature: {method}", field="method")
        tokens = [t for t in part.split() if t not in _IGNORED_KEYWORDS]
        types.append(tokens[0])
    return name, types


def _coerce(abi_type: str, value: Any) -> Any:
    if abi_type.endswith("]"):
        inner = abi_type[: abi_type.rfind("[")]
        return [_coerce(inner, item) for item in value]
    if abi_type == "address":
        return checksum_address(value, field="params")
    if abi_type.startswith(("uint", "int")):
        return parse_int(value, field="params")
    if abi_type.startswith("bytes") and isinstance(value, str):
        return hex_to_bytes(value, field="params")
    return value


def encode_function_call(method: str, params: Sequence[Any]) -> bytes:
    """ABI-encode a call from a human readable signature and parameters."""
    name, types = parse_method_signature(method)
    if len(types) != len(params):
        raise InvalidInputError(
            f"{method} expects {len(types)} params, got {len(params)}", field="params"
        )
    selector = Web3.keccak(text=f"{name}({','.join(types)})")[:4]
    args = [_coerce(t, p) for t, p in zip(types, params)]
    try:
        return bytes(selector) + encode(types, args)
    except Exception as e:
        raise InvalidInputError(f"Could not encode {method}: {e}", field="params") from e


def build_meta_transaction(description: TxDescription) -> MetaTransaction:
    """Turn a validated description into a MetaTransaction."""
    if description.data and description.data[:2] in ("0x", "0X"):
        data = hex_to_bytes(description.data, field="data")
    elif description.method:
        data = encode_function_call(description.method, description.params)
    else:
        data = b""
    return MetaTransaction(
        to=description.to,
        value=parse_ether(description.value),
        data=data,
        operation=Operation(description.operation),
    )


def load_meta_transactions(path: str | Path) -> List[MetaTransaction]:
    """Load and validate a transaction description file.

    Raises:
        EmptyBatchError: The file holds no transactions
        InvalidInputError: The file is not valid JSON or an entry is invalid
    """
    try:
        with open(path) as f:
            content = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"Invalid transactions file {path}: {e}") from e

    if not isinstance(content, list):
        raise InvalidInputError(f"Transactions file {path} must contain a JSON list")
    if not content:
        raise EmptyBatchError()

    descriptions = []
    for entry in content:
        try:
            descriptions.append(TxDescription(**entry))
        except ValidationError as e:
            raise_invalid_input(e)
        except TypeError:
            raise InvalidInputError(f"Invalid transaction entry: {entry!r}") from None
    return [build_meta_transaction(d) for d in descriptions]


def write_tx_builder_json(
    path: str | Path,
    chain_id: str,
    transactions: Sequence[MetaTransaction],
    name: str = DEFAULT_BATCH_NAME,
    description: Optional[str] = None,
) -> dict:
    """Write a batch as a Safe transaction-builder document."""
    document = {
        "version": "1.0",
        "chainId": str(chain_id),
        "createdAt": int(time.time() * 1000),
        "meta": {
            "name": name,
            "description": description,
        },
        "transactions": [tx.to_dict() for tx in transactions],
    }
    with open(path, "w") as f:
        json.dump(document, f, indent=2)
    logger.info(f"Exported {len(transactions)} transactions to {path}")
    return document
