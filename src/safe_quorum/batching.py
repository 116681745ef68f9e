"""Batch planning: one action stays a plain call, several become a MultiSend.

MultiSend (a Safe library contract) executes a packed list of calls inside a
single delegate call, so the batch is atomic and one Safe tx hash covers it.

Packed entry layout, concatenated in input order:

    uint8 operation | address to | uint256 value | uint256 dataLength | bytes data
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from web3 import Web3
from eth_abi import encode

from .deployments import multi_send_address
from .exceptions import EmptyBatchError, InvalidInputError
from .models import MetaTransaction, Operation, SafeTransaction

logger = logging.getLogger(__name__)

# multiSend(bytes)
_MULTI_SEND_SELECTOR = Web3.keccak(text="multiSend(bytes)")[:4]


class BatchEncoder(Protocol):
    def encode(self, actions: Sequence[MetaTransaction]) -> bytes: ...


def encode_multi_send_transactions(actions: Sequence[MetaTransaction]) -> bytes:
    """Pack actions into the MultiSend `transactions` byte string."""
    parts = []
    for action in actions:
        parts.append(bytes([int(action.operation)]))
        parts.append(bytes.fromhex(Web3.to_checksum_address(action.to)[2:]))
        parts.append(action.value.to_bytes(32, "big"))
        parts.append(len(action.data).to_bytes(32, "big"))
        parts.append(action.data)
    return b"".join(parts)


class MultiSendEncoder:
    """Encodes actions as calldata for MultiSend.multiSend(bytes)."""

    def encode(self, actions: Sequence[MetaTransaction]) -> bytes:
        packed = encode_multi_send_transactions(actions)
        return bytes(_MULTI_SEND_SELECTOR) + encode(["bytes"], [packed])


def plan_transaction(
    actions: Sequence[MetaTransaction],
    nonce: int,
    multi_send: Optional[str] = None,
    encoder: Optional[BatchEncoder] = None,
    call_only: bool = False,
) -> SafeTransaction:
    """Turn requested actions into the single Safe transaction to sign.

    Args:
        actions: Ordered actions (at least one)
        nonce: Safe nonce to use
        multi_send: Batch helper address override
        encoder: Batch encoder (defaults to MultiSendEncoder)
        call_only: Use MultiSendCallOnly, which rejects delegate calls

    Returns:
        SafeTransaction for the single action, or a delegate call into the
        batch helper for two or more actions

    Raises:
        EmptyBatchError: No actions were given
    """
    actions = list(actions)
    if not actions:
        raise EmptyBatchError()

    if len(actions) == 1:
        return SafeTransaction.from_meta(actions[0], nonce)

    if call_only and any(a.is_delegate_call for a in actions):
        raise InvalidInputError(
            "MultiSendCallOnly cannot execute delegate calls", field="operation"
        )

    target = multi_send_address(multi_send, call_only=call_only)
    data = (encoder or MultiSendEncoder()).encode(actions)
    logger.info(f"Batching {len(actions)} transactions through MultiSend at {target}")
    return SafeTransaction(
        to=target,
        value=0,
        data=data,
        operation=Operation.DELEGATE_CALL,
        nonce=nonce,
    )
