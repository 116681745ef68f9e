"""Multi-owner signature collection and execution for Safe accounts."""

__version__ = "0.1.0"

from .aggregation import AggregationState, SignatureAggregator, prepare_signatures
from .batching import MultiSendEncoder, plan_transaction
from .chain import ChainClient, ExecutionResult, Web3ChainClient
from .exceptions import (
    EmptyBatchError,
    HashMismatchError,
    InsufficientSignaturesError,
    InvalidInputError,
    MalformedSignatureError,
    NonceMismatchError,
    NotOwnerError,
    ProposalNotFoundError,
    SafeQuorumError,
    SignatureError,
    UnsupportedSignatureKindError,
)
from .hashing import calc_safe_tx_hash, calculate_safe_tx_hash
from .models import MetaTransaction, Operation, SafeTransaction, SafeTxProposal
from .signatures import SafeSignature, SignatureKind, parse_signature, sign_hash
from .store import FileProposalStore, InMemoryProposalStore, ProposalStore

__all__ = [
    "__version__",
    "AggregationState",
    "SignatureAggregator",
    "prepare_signatures",
    "MultiSendEncoder",
    "plan_transaction",
    "ChainClient",
    "ExecutionResult",
    "Web3ChainClient",
    "EmptyBatchError",
    "HashMismatchError",
    "InsufficientSignaturesError",
    "InvalidInputError",
    "MalformedSignatureError",
    "NonceMismatchError",
    "NotOwnerError",
    "ProposalNotFoundError",
    "SafeQuorumError",
    "SignatureError",
    "UnsupportedSignatureKindError",
    "calc_safe_tx_hash",
    "calculate_safe_tx_hash",
    "MetaTransaction",
    "Operation",
    "SafeTransaction",
    "SafeTxProposal",
    "SafeSignature",
    "SignatureKind",
    "parse_signature",
    "sign_hash",
    "FileProposalStore",
    "InMemoryProposalStore",
    "ProposalStore",
]
