"""Threshold aggregation of owner signatures.

Signatures trickle in from several sources (the signature cache, a comma
separated CLI list, the submitter itself). The aggregator keeps at most one
signature per owner, first seen wins, and decides when enough owners have
authorized the transaction.

When the submitter is an owner it approves by submitting (a pre-approved
signature) and one fewer collected signature is required.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from .exceptions import InsufficientSignaturesError, NotOwnerError
from .models import HexLike, checksum_address
from .signatures import SafeSignature, build_pre_approved_signature, parse_signature

if TYPE_CHECKING:
    from .chain import ChainClient

logger = logging.getLogger(__name__)


class AggregationState(str, Enum):
    """Progress of a signature set toward the threshold."""
    EMPTY = "empty"
    ACCUMULATING = "accumulating"
    SATISFIED = "satisfied"


class SignatureAggregator:
    """Collects owner signatures for one Safe transaction hash.

    Args:
        owners: Current owners of the Safe
        threshold: Current Safe threshold
        submitter: Address that will submit the transaction, if known
    """

    def __init__(
        self,
        owners: Iterable[str],
        threshold: int,
        submitter: Optional[str] = None,
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        self.owners: List[str] = [checksum_address(o, field="owners") for o in owners]
        self.threshold = threshold
        self.submitter = checksum_address(submitter, field="submitter") if submitter else None
        self._signatures: Dict[str, SafeSignature] = {}

    @property
    def submitter_is_owner(self) -> bool:
        return self.submitter is not None and self.submitter in self.owners

    @property
    def required(self) -> int:
        """Number of collected signatures needed besides the self-approval."""
        return self.threshold - 1 if self.submitter_is_owner else self.threshold

    @property
    def signatures(self) -> Dict[str, SafeSignature]:
        return dict(self._signatures)

    @property
    def state(self) -> AggregationState:
        if self.is_satisfied():
            return AggregationState.SATISFIED
        if not self._signatures:
            return AggregationState.EMPTY
        return AggregationState.ACCUMULATING

    def ingest(self, raw_signatures: Iterable[HexLike], safe_tx_hash: HexLike) -> int:
        """Parse and add signatures.

        Args:
            raw_signatures: Signatures in arrival order
            safe_tx_hash: Hash the signatures must attest to

        Returns:
            Number of signatures accepted (duplicates are not counted)

        Raises:
            NotOwnerError: A signature was made by a non-owner
        """
        accepted = 0
        for raw in raw_signatures:
            signature = parse_signature(raw, safe_tx_hash)
            if signature.signer not in self.owners:
                raise NotOwnerError(signature.signer, self.owners)
            if signature.signer == self.submitter:
                logger.debug(f"Skipping signature of submitter {signature.signer}")
                continue
            if signature.signer in self._signatures:
                logger.debug(f"Dropping duplicate signature of {signature.signer}")
                continue
            self._signatures[signature.signer] = signature
            accepted += 1
        return accepted

    def is_satisfied(self) -> bool:
        return len(self._signatures) >= self.required

    def select(self) -> List[SafeSignature]:
        """Return the final ordered signature bundle.

        The submitter's self-approval comes first, followed by the first
        `required` collected signatures in arrival order.

        Raises:
            InsufficientSignaturesError: Threshold not reached yet
        """
        if not self.is_satisfied():
            raise InsufficientSignaturesError(
                have=len(self._signatures),
                need=self.required,
                threshold=self.threshold,
            )
        bundle: List[SafeSignature] = []
        if self.submitter_is_owner:
            bundle.append(build_pre_approved_signature(self.submitter))
        bundle.extend(list(self._signatures.values())[: self.required])
        return bundle


def prepare_signatures(
    chain: "ChainClient",
    safe: str,
    safe_tx_hash: HexLike,
    raw_signatures: Iterable[HexLike],
    submitter: Optional[str] = None,
) -> List[SafeSignature]:
    """Aggregate signatures against the Safe's live owners and threshold.

    Owners and threshold are read from the chain on every call since they can
    change between proposal and execution.
    """
    owners = chain.owners(safe)
    threshold = chain.threshold(safe)
    aggregator = SignatureAggregator(owners, threshold, submitter=submitter)
    aggregator.ingest(raw_signatures, safe_tx_hash)
    logger.info(
        f"Collected {len(aggregator.signatures)} signatures for {safe} "
        f"(threshold {threshold}, required {aggregator.required})"
    )
    return aggregator.select()
