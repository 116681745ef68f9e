"""Proposal workflows: propose, sign, show and submit.

These functions tie the pure pieces (batching, hashing, signature parsing,
aggregation) to the injected ChainClient and ProposalStore. The CLI is a thin
shell over them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from eth_account import Account

from .aggregation import prepare_signatures
from .batching import plan_transaction
from .chain import ChainClient, ExecutionResult
from .exceptions import ConfigurationError, NonceMismatchError, NotOwnerError
from .hashing import calc_safe_tx_hash, verify_proposal
from .logging_config import LogContext
from .models import MetaTransaction, SafeTxProposal, checksum_address, normalize_hash
from .schemas import SubmitRequest
from .signatures import SafeSignature, sign_hash
from .store import ProposalStore

logger = logging.getLogger(__name__)


@dataclass
class ProposalStatus:
    """Snapshot of a stored proposal against the live Safe state."""
    proposal: SafeTxProposal
    current_nonce: int
    signers: List[str] = field(default_factory=list)

    @property
    def nonce_used(self) -> bool:
        return self.proposal.tx.nonce < self.current_nonce


def _require_key(private_key: Optional[str]) -> str:
    if not private_key:
        raise ConfigurationError("No private key configured (set SAFE_QUORUM_PRIVATE_KEY)")
    return private_key


def create_proposal(
    chain: ChainClient,
    store: Optional[ProposalStore],
    safe: str,
    actions: Sequence[MetaTransaction],
    nonce: Optional[int] = None,
    multi_send: Optional[str] = None,
    call_only: bool = False,
    on_chain_only: bool = False,
) -> SafeTxProposal:
    """Plan, hash and persist a proposal.

    Args:
        chain: Chain access
        store: Where to persist the proposal (not persisted when None)
        safe: Safe address
        actions: Requested actions, batched through MultiSend when more than one
        nonce: Nonce to use (defaults to the Safe's current nonce)
        multi_send: Batch helper override
        call_only: Use MultiSendCallOnly
        on_chain_only: Trust the Safe's getTransactionHash only

    Returns:
        The stored proposal

    Raises:
        EmptyBatchError: No actions given
        HashMismatchError: Local and on-chain hashes disagree
    """
    safe = checksum_address(safe, field="safe")
    if nonce is None:
        nonce = chain.current_nonce(safe)
    tx = plan_transaction(actions, nonce, multi_send=multi_send, call_only=call_only)
    chain_id = chain.chain_id()
    safe_tx_hash = calc_safe_tx_hash(
        safe,
        tx,
        chain_id,
        on_chain_hash=chain.on_chain_hash(safe, tx),
        on_chain_only=on_chain_only,
    )
    proposal = SafeTxProposal(
        safe=safe,
        chain_id=chain_id,
        safe_tx_hash=normalize_hash(safe_tx_hash),
        tx=tx,
    )
    with LogContext(safe=safe, safe_tx_hash=proposal.safe_tx_hash):
        if store is not None:
            store.put(proposal.safe_tx_hash, proposal)
        logger.info(f"Created proposal with nonce {nonce} and {len(actions)} action(s)")
    return proposal


def load_proposal(
    store: ProposalStore, safe_tx_hash: str, verify: bool = True
) -> SafeTxProposal:
    """Load a stored proposal, re-checking its hash unless `verify` is False."""
    proposal = store.get(safe_tx_hash)
    if verify:
        verify_proposal(proposal)
    return proposal


def sign_proposal(
    chain: ChainClient,
    store: ProposalStore,
    safe_tx_hash: str,
    private_key: Optional[str],
    typed: bool = False,
    verify: bool = True,
) -> SafeSignature:
    """Sign a stored proposal and add the signature to its signature map.

    Raises:
        ProposalNotFoundError: Unknown hash
        NotOwnerError: The key is not an owner of the Safe
    """
    proposal = load_proposal(store, safe_tx_hash, verify=verify)
    with LogContext(safe=proposal.safe, safe_tx_hash=proposal.safe_tx_hash):
        signer = Account.from_key(_require_key(private_key)).address
        owners = chain.owners(proposal.safe)
        if signer not in owners:
            raise NotOwnerError(signer, owners)
        signature = sign_hash(private_key, proposal.safe_tx_hash, typed=typed)
        store.append_signature(proposal.safe_tx_hash, signature)
        logger.info(f"Stored {signature.kind.value} signature of {signer}")
    return signature


def show_proposal(
    chain: ChainClient, store: ProposalStore, safe_tx_hash: str, verify: bool = True
) -> ProposalStatus:
    proposal = load_proposal(store, safe_tx_hash, verify=verify)
    current_nonce = chain.current_nonce(proposal.safe)
    signers = list(store.list_signatures(proposal.safe_tx_hash))
    if proposal.tx.nonce < current_nonce:
        logger.warning(
            f"Proposal {proposal.safe_tx_hash} uses nonce {proposal.tx.nonce}, "
            f"Safe is at {current_nonce}: nonce has already been used"
        )
    return ProposalStatus(proposal=proposal, current_nonce=current_nonce, signers=signers)


def _execute(
    chain: ChainClient,
    proposal: SafeTxProposal,
    raw_signatures: Iterable[str],
    private_key: str,
    gas_limit: Optional[int] = None,
    gas_price: Optional[int] = None,
    build_only: bool = False,
) -> ExecutionResult:
    submitter = Account.from_key(private_key).address
    bundle = prepare_signatures(
        chain,
        proposal.safe,
        proposal.safe_tx_hash,
        raw_signatures,
        submitter=submitter,
    )
    result = chain.submit(
        proposal.safe,
        proposal.tx,
        bundle,
        private_key,
        gas_limit=gas_limit,
        gas_price=gas_price,
        build_only=build_only,
    )
    if not build_only:
        logger.info(f"Executed with {len(bundle)} signatures in {result.tx_hash}")
    return result


def submit_proposal(
    chain: ChainClient,
    store: ProposalStore,
    request: SubmitRequest,
    private_key: Optional[str],
) -> ExecutionResult:
    """Submit a stored proposal with its cached and supplied signatures.

    Cached signatures are ingested before the ones passed on the command
    line, so for a signer present in both the cached one is used.

    Raises:
        NonceMismatchError: The Safe nonce moved past (or is behind) the proposal
        InsufficientSignaturesError: Not enough owners signed
    """
    private_key = _require_key(private_key)
    proposal = load_proposal(store, request.safe_tx_hash, verify=not request.on_chain_hash)
    with LogContext(safe=proposal.safe, safe_tx_hash=proposal.safe_tx_hash):
        current_nonce = chain.current_nonce(proposal.safe)
        if proposal.tx.nonce != current_nonce:
            raise NonceMismatchError(proposal.tx.nonce, current_nonce)

        cached = list(store.list_signatures(proposal.safe_tx_hash).values())
        return _execute(
            chain,
            proposal,
            cached + list(request.signatures),
            private_key,
            gas_limit=request.gas_limit,
            gas_price=request.gas_price,
            build_only=request.build_only,
        )


def submit_tx(
    chain: ChainClient,
    safe: str,
    action: MetaTransaction,
    signatures: Sequence[str],
    private_key: Optional[str],
    on_chain_only: bool = False,
    gas_limit: Optional[int] = None,
    gas_price: Optional[int] = None,
    build_only: bool = False,
) -> ExecutionResult:
    """Execute a single action at the Safe's current nonce without a stored proposal."""
    private_key = _require_key(private_key)
    proposal = create_proposal(chain, None, safe, [action], on_chain_only=on_chain_only)
    with LogContext(safe=proposal.safe, safe_tx_hash=proposal.safe_tx_hash):
        return _execute(
            chain,
            proposal,
            signatures,
            private_key,
            gas_limit=gas_limit,
            gas_price=gas_price,
            build_only=build_only,
        )


def execute_custom_proposal(
    chain: ChainClient,
    store: ProposalStore,
    safe: str,
    actions: Sequence[MetaTransaction],
    private_key: Optional[str],
    multi_send: Optional[str] = None,
    on_chain_only: bool = False,
    gas_limit: Optional[int] = None,
    gas_price: Optional[int] = None,
) -> ExecutionResult:
    """Propose, sign and submit a batch in one go."""
    private_key = _require_key(private_key)
    proposal = create_proposal(
        chain, store, safe, actions, multi_send=multi_send, on_chain_only=on_chain_only
    )
    sign_proposal(chain, store, proposal.safe_tx_hash, private_key, verify=not on_chain_only)
    request = SubmitRequest.parse(
        safe_tx_hash=proposal.safe_tx_hash,
        gas_limit=gas_limit,
        gas_price=gas_price,
        on_chain_hash=on_chain_only,
    )
    return submit_proposal(chain, store, request, private_key)
