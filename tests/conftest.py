"""
Pytest configuration for safe-quorum tests.
"""
from __future__ import annotations

import os
from typing import List, Optional, Sequence

import pytest
from click.testing import CliRunner
from eth_account import Account

from safe_quorum.chain import ExecutionResult
from safe_quorum.hashing import calculate_safe_tx_hash
from safe_quorum.models import SafeTransaction
from safe_quorum.signatures import SafeSignature, build_signature_bytes
from safe_quorum.store import InMemoryProposalStore

# Keep the developer's environment out of the settings
for _var in [v for v in os.environ if v.startswith("SAFE_QUORUM_")]:
    del os.environ[_var]

# Hardhat / Foundry development keys
KEY_1 = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
KEY_2 = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
KEY_3 = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"
KEY_OUTSIDER = "0x7c852118294e51e653712a81e05800f419141751be58f605c371e15141b007a6"

SAFE = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
RECIPIENT = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
CHAIN_ID = 31337


class FakeChainClient:
    """In-memory ChainClient double.

    The on-chain hash is computed with the local algorithm unless
    `on_chain_override` is set, which simulates a disagreeing node.
    """

    def __init__(
        self,
        owners: Sequence[str],
        threshold: int,
        nonce: int = 0,
        chain_id: int = CHAIN_ID,
    ) -> None:
        self._owners = list(owners)
        self._threshold = threshold
        self.nonce = nonce
        self._chain_id = chain_id
        self.on_chain_override: Optional[bytes] = None
        self.submissions: List[dict] = []

    def chain_id(self) -> int:
        return self._chain_id

    def current_nonce(self, safe: str) -> int:
        return self.nonce

    def owners(self, safe: str) -> List[str]:
        return list(self._owners)

    def threshold(self, safe: str) -> int:
        return self._threshold

    def on_chain_hash(self, safe: str, tx: SafeTransaction) -> bytes:
        if self.on_chain_override is not None:
            return self.on_chain_override
        return calculate_safe_tx_hash(safe, tx, self._chain_id)

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
        populated = {
            "to": safe,
            "from": Account.from_key(private_key).address,
            "data": "0x" + build_signature_bytes(signatures).hex(),
            "gas": gas_limit,
            "gasPrice": gas_price,
        }
        self.submissions.append(
            {"safe": safe, "tx": tx, "signatures": list(signatures), "build_only": build_only}
        )
        if build_only:
            return ExecutionResult(populated_tx=populated)
        self.nonce += 1
        return ExecutionResult(
            tx_hash="0x" + "ab" * 32,
            block_number=1,
            gas_used=21000,
            success=True,
            populated_tx=populated,
        )


@pytest.fixture
def owner_keys():
    """Private keys of the three Safe owners."""
    return [KEY_1, KEY_2, KEY_3]


@pytest.fixture
def owners(owner_keys):
    """Checksummed owner addresses, in key order."""
    return [Account.from_key(k).address for k in owner_keys]


@pytest.fixture
def outsider():
    return Account.from_key(KEY_OUTSIDER).address


@pytest.fixture
def chain(owners):
    """Three owner Safe with threshold two."""
    return FakeChainClient(owners, threshold=2, nonce=7)


@pytest.fixture
def store():
    return InMemoryProposalStore()


@pytest.fixture
def safe_tx():
    return SafeTransaction(to=RECIPIENT, value=10**18, data=b"", nonce=7)


@pytest.fixture
def cli_runner():
    return CliRunner()
