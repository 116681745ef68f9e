"""EIP-712 Safe transaction hashing.

The Safe transaction hash is the universal identity of a proposal:

    safeTxHash = keccak256(0x19 || 0x01 || domainSeparator || safeTxStructHash)

where the domain binds the Safe address and chain id (Safe >= 1.3.0) and the
struct hash covers every transaction field in the fixed SafeTx order.

References:
- https://github.com/safe-global/safe-smart-account/blob/main/contracts/Safe.sol
- https://eips.ethereum.org/EIPS/eip-712
"""

from __future__ import annotations

import logging
from typing import Optional

from web3 import Web3
from eth_abi import encode

from .exceptions import HashMismatchError, InvalidInputError
from .models import HexLike, SafeTransaction, SafeTxProposal, hex_to_bytes, normalize_hash

logger = logging.getLogger(__name__)


# Type hashes
DOMAIN_SEPARATOR_TYPEHASH = Web3.keccak(
    text="EIP712Domain(uint256 chainId,address verifyingContract)"
)

SAFE_TX_TYPEHASH = Web3.keccak(
    text="SafeTx(address to,uint256 value,bytes data,uint8 operation,uint256 safeTxGas,uint256 baseGas,uint256 gasPrice,address gasToken,address refundReceiver,uint256 nonce)"
)


def domain_separator(safe: str, chain_id: int) -> bytes:
    """Build the EIP-712 domain separator for a Safe on a chain."""
    return Web3.keccak(
        encode(
            ["bytes32", "uint256", "address"],
            [
                DOMAIN_SEPARATOR_TYPEHASH,
                chain_id,
                Web3.to_checksum_address(safe),
            ],
        )
    )


def safe_tx_struct_hash(tx: SafeTransaction) -> bytes:
    """Hash the SafeTx struct; dynamic `data` is hashed first."""
    return Web3.keccak(
        encode(
            [
                "bytes32",
                "address",
                "uint256",
                "bytes32",
                "uint8",
                "uint256",
                "uint256",
                "uint256",
                "address",
                "address",
                "uint256",
            ],
            [
                SAFE_TX_TYPEHASH,
                Web3.to_checksum_address(tx.to),
                tx.value,
                Web3.keccak(tx.data),
                int(tx.operation),
                tx.safe_tx_gas,
                tx.base_gas,
                tx.gas_price,
                Web3.to_checksum_address(tx.gas_token),
                Web3.to_checksum_address(tx.refund_receiver),
                tx.nonce,
            ],
        )
    )


def calculate_safe_tx_hash(safe: str, tx: SafeTransaction, chain_id: int) -> bytes:
    """Compute the canonical off-chain Safe transaction hash.

    Args:
        safe: Safe address (verifying contract)
        tx: Transaction to hash
        chain_id: Chain the Safe lives on

    Returns:
        32-byte hash
    """
    return bytes(
        Web3.keccak(
            b"\x19\x01" + domain_separator(safe, chain_id) + safe_tx_struct_hash(tx)
        )
    )


def calc_safe_tx_hash(
    safe: str,
    tx: SafeTransaction,
    chain_id: int,
    on_chain_hash: Optional[HexLike] = None,
    on_chain_only: bool = False,
) -> bytes:
    """Compute the Safe transaction hash and cross-check it.

    Args:
        safe: Safe address
        tx: Transaction to hash
        chain_id: Chain id
        on_chain_hash: Hash reported by Safe.getTransactionHash, when available
        on_chain_only: Trust only the on-chain hash (Safes before 1.3.0 do not
            include the chain id in their domain)

    Returns:
        32-byte Safe transaction hash

    Raises:
        HashMismatchError: If the on-chain and local hashes differ
        InvalidInputError: on_chain_only without an on-chain hash
    """
    if on_chain_only:
        if on_chain_hash is None:
            raise InvalidInputError(
                "on_chain_only requires an on-chain hash", field="on_chain_hash"
            )
        return hex_to_bytes(on_chain_hash, field="on_chain_hash")

    local_hash = calculate_safe_tx_hash(safe, tx, chain_id)
    if on_chain_hash is not None:
        authoritative = hex_to_bytes(on_chain_hash, field="on_chain_hash")
        if authoritative != local_hash:
            logger.error(
                f"Safe tx hash mismatch for {safe}: local={normalize_hash(local_hash)} "
                f"on_chain={normalize_hash(authoritative)}"
            )
            raise HashMismatchError(
                normalize_hash(local_hash), normalize_hash(authoritative)
            )
    return local_hash


def verify_proposal(proposal: SafeTxProposal) -> None:
    """Check that a stored proposal still hashes to its recorded hash.

    Raises:
        HashMismatchError: The record was corrupted or hashed under a
            different scheme
    """
    recomputed = normalize_hash(
        calculate_safe_tx_hash(proposal.safe, proposal.tx, proposal.chain_id)
    )
    if recomputed != proposal.safe_tx_hash:
        raise HashMismatchError(
            recomputed,
            proposal.safe_tx_hash,
            message=(
                f"Stored proposal {proposal.safe_tx_hash} does not match its "
                f"transaction (recomputed {recomputed})"
            ),
        )
