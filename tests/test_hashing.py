"""Tests for EIP-712 Safe transaction hashing."""

import dataclasses

import pytest
from eth_account.messages import encode_typed_data
from web3 import Web3

from safe_quorum.exceptions import HashMismatchError, InvalidInputError
from safe_quorum.hashing import (
    calc_safe_tx_hash,
    calculate_safe_tx_hash,
    domain_separator,
    verify_proposal,
)
from safe_quorum.models import Operation, SafeTransaction, SafeTxProposal, normalize_hash

from conftest import CHAIN_ID, RECIPIENT, SAFE

TOKEN = "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0"


def _typed_data(tx: SafeTransaction, safe: str = SAFE, chain_id: int = CHAIN_ID) -> dict:
    return {
        "types": {
            "EIP712Domain": [
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "SafeTx": [
                {"name": "to", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "data", "type": "bytes"},
                {"name": "operation", "type": "uint8"},
                {"name": "safeTxGas", "type": "uint256"},
                {"name": "baseGas", "type": "uint256"},
                {"name": "gasPrice", "type": "uint256"},
                {"name": "gasToken", "type": "address"},
                {"name": "refundReceiver", "type": "address"},
                {"name": "nonce", "type": "uint256"},
            ],
        },
        "primaryType": "SafeTx",
        "domain": {"chainId": chain_id, "verifyingContract": safe},
        "message": {
            "to": tx.to,
            "value": tx.value,
            "data": "0x" + tx.data.hex(),
            "operation": int(tx.operation),
            "safeTxGas": tx.safe_tx_gas,
            "baseGas": tx.base_gas,
            "gasPrice": tx.gas_price,
            "gasToken": tx.gas_token,
            "refundReceiver": tx.refund_receiver,
            "nonce": tx.nonce,
        },
    }


def _eip712_hash(tx: SafeTransaction) -> bytes:
    signable = encode_typed_data(full_message=_typed_data(tx))
    return bytes(Web3.keccak(b"\x19" + signable.version + signable.header + signable.body))


# ============ calculate_safe_tx_hash ============


class TestCalculateSafeTxHash:
    def test_matches_generic_eip712_encoding(self, safe_tx):
        assert calculate_safe_tx_hash(SAFE, safe_tx, CHAIN_ID) == _eip712_hash(safe_tx)

    def test_matches_with_calldata_and_fee_fields(self):
        tx = SafeTransaction(
            to=RECIPIENT,
            value=5,
            data=bytes.fromhex("a9059cbb") + bytes(64),
            operation=Operation.DELEGATE_CALL,
            safe_tx_gas=100000,
            base_gas=21000,
            gas_price=10**9,
            gas_token=TOKEN,
            refund_receiver=RECIPIENT,
            nonce=42,
        )
        assert calculate_safe_tx_hash(SAFE, tx, CHAIN_ID) == _eip712_hash(tx)

    def test_returns_32_bytes(self, safe_tx):
        assert len(calculate_safe_tx_hash(SAFE, safe_tx, CHAIN_ID)) == 32

    def test_deterministic(self, safe_tx):
        assert calculate_safe_tx_hash(SAFE, safe_tx, CHAIN_ID) == calculate_safe_tx_hash(
            SAFE, safe_tx, CHAIN_ID
        )

    @pytest.mark.parametrize(
        "field,value",
        [
            ("to", TOKEN),
            ("value", 1),
            ("data", b"\x01"),
            ("operation", Operation.DELEGATE_CALL),
            ("safe_tx_gas", 1),
            ("base_gas", 1),
            ("gas_price", 1),
            ("gas_token", TOKEN),
            ("refund_receiver", TOKEN),
            ("nonce", 8),
        ],
    )
    def test_every_field_changes_hash(self, safe_tx, field, value):
        changed = dataclasses.replace(safe_tx, **{field: value})
        assert calculate_safe_tx_hash(SAFE, changed, CHAIN_ID) != calculate_safe_tx_hash(
            SAFE, safe_tx, CHAIN_ID
        )

    def test_safe_and_chain_change_hash(self, safe_tx):
        base = calculate_safe_tx_hash(SAFE, safe_tx, CHAIN_ID)
        assert calculate_safe_tx_hash(TOKEN, safe_tx, CHAIN_ID) != base
        assert calculate_safe_tx_hash(SAFE, safe_tx, 1) != base

    def test_domain_separator_depends_on_chain(self):
        assert domain_separator(SAFE, 1) != domain_separator(SAFE, CHAIN_ID)


# ============ calc_safe_tx_hash ============


class TestCalcSafeTxHash:
    def test_agreeing_on_chain_hash(self, safe_tx):
        local = calculate_safe_tx_hash(SAFE, safe_tx, CHAIN_ID)
        assert calc_safe_tx_hash(SAFE, safe_tx, CHAIN_ID, on_chain_hash=local) == local

    def test_accepts_hex_on_chain_hash(self, safe_tx):
        local = calculate_safe_tx_hash(SAFE, safe_tx, CHAIN_ID)
        assert calc_safe_tx_hash(SAFE, safe_tx, CHAIN_ID, on_chain_hash="0x" + local.hex()) == local

    def test_mismatch_raises(self, safe_tx):
        bogus = b"\x11" * 32
        with pytest.raises(HashMismatchError) as exc_info:
            calc_safe_tx_hash(SAFE, safe_tx, CHAIN_ID, on_chain_hash=bogus)
        assert exc_info.value.details["on_chain"] == "0x" + "11" * 32
        assert exc_info.value.details["local"] == normalize_hash(
            calculate_safe_tx_hash(SAFE, safe_tx, CHAIN_ID)
        )

    def test_on_chain_only_trusts_chain(self, safe_tx):
        bogus = b"\x11" * 32
        assert calc_safe_tx_hash(
            SAFE, safe_tx, CHAIN_ID, on_chain_hash=bogus, on_chain_only=True
        ) == bogus

    def test_on_chain_only_requires_hash(self, safe_tx):
        with pytest.raises(InvalidInputError) as exc_info:
            calc_safe_tx_hash(SAFE, safe_tx, CHAIN_ID, on_chain_only=True)
        assert exc_info.value.details["field"] == "on_chain_hash"

    def test_without_on_chain_hash_returns_local(self, safe_tx):
        assert calc_safe_tx_hash(SAFE, safe_tx, CHAIN_ID) == calculate_safe_tx_hash(
            SAFE, safe_tx, CHAIN_ID
        )


class TestVerifyProposal:
    def test_valid_proposal(self, safe_tx):
        proposal = SafeTxProposal(
            safe=SAFE,
            chain_id=CHAIN_ID,
            safe_tx_hash=normalize_hash(calculate_safe_tx_hash(SAFE, safe_tx, CHAIN_ID)),
            tx=safe_tx,
        )
        verify_proposal(proposal)

    def test_tampered_proposal(self, safe_tx):
        proposal = SafeTxProposal(
            safe=SAFE,
            chain_id=CHAIN_ID,
            safe_tx_hash=normalize_hash(calculate_safe_tx_hash(SAFE, safe_tx, CHAIN_ID)),
            tx=dataclasses.replace(safe_tx, value=safe_tx.value + 1),
        )
        with pytest.raises(HashMismatchError):
            verify_proposal(proposal)
