"""Chain access for Safe accounts.

ChainClient is the boundary to the network: owners, threshold and nonce are
read live for each operation and execTransaction is submitted through it.
Web3ChainClient implements it on top of web3.py with a minimal Safe ABI.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from eth_account import Account
from eth_utils import encode_hex
from web3 import Web3
from web3.exceptions import Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware

from .exceptions import ConfigurationError
from .models import SafeTransaction, checksum_address
from .signatures import SafeSignature, build_signature_bytes

logger = logging.getLogger(__name__)


# Minimal ABI for the Safe functions we interact with
SAFE_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "uint256", "name": "value", "type": "uint256"},
            {"internalType": "bytes", "name": "data", "type": "bytes"},
            {"internalType": "uint8", "name": "operation", "type": "uint8"},
            {"internalType": "uint256", "name": "safeTxGas", "type": "uint256"},
            {"internalType": "uint256", "name": "baseGas", "type": "uint256"},
            {"internalType": "uint256", "name": "gasPrice", "type": "uint256"},
            {"internalType": "address", "name": "gasToken", "type": "address"},
            {"internalType": "address payable", "name": "refundReceiver", "type": "address"},
            {"internalType": "bytes", "name": "signatures", "type": "bytes"},
        ],
        "name": "execTransaction",
        "outputs": [{"internalType": "bool", "name": "success", "type": "bool"}],
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "uint256", "name": "value", "type": "uint256"},
            {"internalType": "bytes", "name": "data", "type": "bytes"},
            {"internalType": "uint8", "name": "operation", "type": "uint8"},
            {"internalType": "uint256", "name": "safeTxGas", "type": "uint256"},
            {"internalType": "uint256", "name": "baseGas", "type": "uint256"},
            {"internalType": "uint256", "name": "gasPrice", "type": "uint256"},
            {"internalType": "address", "name": "gasToken", "type": "address"},
            {"internalType": "address", "name": "refundReceiver", "type": "address"},
            {"internalType": "uint256", "name": "_nonce", "type": "uint256"},
        ],
        "name": "getTransactionHash",
        "outputs": [{"internalType": "bytes32", "name": "", "type": "bytes32"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "nonce",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getOwners",
        "outputs": [{"internalType": "address[]", "name": "", "type": "address[]"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getThreshold",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


@dataclass
class ExecutionResult:
    """Outcome of an execTransaction submission."""
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    success: bool = False
    populated_tx: Optional[Dict[str, Any]] = None


class ChainClient(Protocol):
    def chain_id(self) -> int: ...
    def current_nonce(self, safe: str) -> int: ...
    def owners(self, safe: str) -> List[str]: ...
    def threshold(self, safe: str) -> int: ...
    def on_chain_hash(self, safe: str, tx: SafeTransaction) -> bytes: ...
    def submit(
        self,
        safe: str,
        tx: SafeTransaction,
        signatures: Sequence[SafeSignature],
        private_key: str,
        gas_limit: Optional[int] = None,
        gas_price: Optional[int] = None,
        build_only: bool = False,
    ) -> ExecutionResult: ...


class Web3ChainClient(ChainClient):
    """ChainClient backed by a web3.py HTTP provider."""

    def __init__(
        self,
        rpc_url: str,
        expected_chain_id: Optional[int] = None,
        timeout_seconds: float = 30.0,
        receipt_timeout_seconds: float = 120.0,
    ) -> None:
        if not rpc_url:
            raise ConfigurationError("No RPC URL configured (set SAFE_QUORUM_RPC_URL)")
        self.w3 = Web3(
            Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds})
        )
        self.w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        self.receipt_timeout_seconds = receipt_timeout_seconds
        self._expected_chain_id = expected_chain_id
        self._chain_id: Optional[int] = None

    def _safe(self, safe: str):
        return self.w3.eth.contract(address=checksum_address(safe, field="safe"), abi=SAFE_ABI)

    def chain_id(self) -> int:
        if self._chain_id is None:
            received = int(self.w3.eth.chain_id)
            if self._expected_chain_id is not None and received != self._expected_chain_id:
                logger.error(
                    f"SECURITY: Chain ID mismatch! Expected {self._expected_chain_id}, "
                    f"got {received}. This could indicate connecting to wrong network."
                )
                raise ConfigurationError(
                    f"Connected to chain {received}, expected {self._expected_chain_id}",
                    details={"expected": self._expected_chain_id, "received": received},
                )
            self._chain_id = received
        return self._chain_id

    def current_nonce(self, safe: str) -> int:
        return int(self._safe(safe).functions.nonce().call())

    def owners(self, safe: str) -> List[str]:
        return [Web3.to_checksum_address(o) for o in self._safe(safe).functions.getOwners().call()]

    def threshold(self, safe: str) -> int:
        return int(self._safe(safe).functions.getThreshold().call())

    def on_chain_hash(self, safe: str, tx: SafeTransaction) -> bytes:
        """Ask the Safe for its hash of `tx`.

        Raises:
            ConfigurationError: The call reverted or returned nothing, which
                usually means no Safe is deployed at `safe` on this chain
        """
        try:
            return bytes(
                self._safe(safe).functions.getTransactionHash(
                    tx.to,
                    tx.value,
                    tx.data,
                    int(tx.operation),
                    tx.safe_tx_gas,
                    tx.base_gas,
                    tx.gas_price,
                    tx.gas_token,
                    tx.refund_receiver,
                    tx.nonce,
                ).call()
            )
        except Web3Exception as e:
            logger.error(f"getTransactionHash failed for {safe}: {e}")
            raise ConfigurationError(
                f"Could not read the transaction hash from Safe {safe}: {e}",
                details={"safe": safe},
            ) from e

    def populate_execute_tx(
        self,
        safe: str,
        tx: SafeTransaction,
        signatures: Sequence[SafeSignature],
        sender: str,
        gas_limit: Optional[int] = None,
        gas_price: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Build the execTransaction call for a signature bundle."""
        params: Dict[str, Any] = {
            "from": sender,
            "nonce": self.w3.eth.get_transaction_count(sender),
            "chainId": self.chain_id(),
        }
        if gas_limit is not None:
            params["gas"] = gas_limit
        if gas_price is not None:
            params["gasPrice"] = gas_price
        return self._safe(safe).functions.execTransaction(
            tx.to,
            tx.value,
            tx.data,
            int(tx.operation),
            tx.safe_tx_gas,
            tx.base_gas,
            tx.gas_price,
            tx.gas_token,
            tx.refund_receiver,
            build_signature_bytes(signatures),
        ).build_transaction(params)

    def submit(
        self,
        safe: str,
        tx: SafeTransaction,
        signatures: Sequence[SafeSignature],
        private_key: str,
        gas_limit: Optional[int] = None,
        gas_price: Optional[int] = None,
        build_only: bool = False,
    ) -> ExecutionResult:
        account = Account.from_key(private_key)
        populated = self.populate_execute_tx(
            safe, tx, signatures, account.address, gas_limit=gas_limit, gas_price=gas_price
        )
        if build_only:
            return ExecutionResult(populated_tx=populated)

        signed = account.sign_transaction(populated)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info(f"Submitted execTransaction for {safe}: {encode_hex(tx_hash)}")
        receipt = self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self.receipt_timeout_seconds
        )
        return ExecutionResult(
            tx_hash=encode_hex(receipt["transactionHash"]),
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
            success=receipt.get("status") == 1,
            populated_tx=populated,
        )
