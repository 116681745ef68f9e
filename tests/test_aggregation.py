"""Tests for threshold aggregation of owner signatures."""

import pytest
from eth_account import Account
from web3 import Web3

from safe_quorum.aggregation import AggregationState, SignatureAggregator, prepare_signatures
from safe_quorum.exceptions import InsufficientSignaturesError, NotOwnerError
from safe_quorum.hashing import calculate_safe_tx_hash
from safe_quorum.signatures import SignatureKind, build_signature_bytes, parse_signature, sign_hash

from conftest import CHAIN_ID, KEY_1, KEY_2, KEY_3, KEY_OUTSIDER, SAFE

SAFE_TX_HASH = Web3.keccak(text="aggregation test")


def _sig(key, typed=False):
    return sign_hash(key, SAFE_TX_HASH, typed=typed).hex


class TestRequired:
    def test_non_owner_submitter_needs_threshold(self, owners, outsider):
        aggregator = SignatureAggregator(owners, 2, submitter=outsider)
        assert not aggregator.submitter_is_owner
        assert aggregator.required == 2

    def test_owner_submitter_needs_one_less(self, owners):
        aggregator = SignatureAggregator(owners, 2, submitter=owners[0])
        assert aggregator.submitter_is_owner
        assert aggregator.required == 1

    def test_unknown_submitter(self, owners):
        assert SignatureAggregator(owners, 3).required == 3

    def test_threshold_must_be_positive(self, owners):
        with pytest.raises(ValueError):
            SignatureAggregator(owners, 0)

    def test_submitter_case_insensitive(self, owners):
        aggregator = SignatureAggregator(owners, 2, submitter=owners[0].lower())
        assert aggregator.submitter_is_owner


class TestIngest:
    def test_state_progression(self, owners, outsider):
        aggregator = SignatureAggregator(owners, 2, submitter=outsider)
        assert aggregator.state == AggregationState.EMPTY

        aggregator.ingest([_sig(KEY_1)], SAFE_TX_HASH)
        assert aggregator.state == AggregationState.ACCUMULATING

        aggregator.ingest([_sig(KEY_2, typed=True)], SAFE_TX_HASH)
        assert aggregator.state == AggregationState.SATISFIED

    def test_duplicate_signer_first_wins(self, owners, outsider):
        aggregator = SignatureAggregator(owners, 2, submitter=outsider)
        first = _sig(KEY_1)
        second = _sig(KEY_1, typed=True)

        assert aggregator.ingest([first, second], SAFE_TX_HASH) == 1
        kept = aggregator.signatures[owners[0]]
        assert kept.hex == first
        assert kept.kind == SignatureKind.ETH_SIGNED

    def test_non_owner_rejected(self, owners, outsider):
        aggregator = SignatureAggregator(owners, 2, submitter=owners[0])
        with pytest.raises(NotOwnerError) as exc_info:
            aggregator.ingest([_sig(KEY_OUTSIDER)], SAFE_TX_HASH)
        assert exc_info.value.details["signer"] == outsider

    def test_submitter_signature_skipped(self, owners):
        aggregator = SignatureAggregator(owners, 2, submitter=owners[0])
        assert aggregator.ingest([_sig(KEY_1)], SAFE_TX_HASH) == 0
        assert aggregator.signatures == {}

    def test_owner_check_before_dedup(self, owners):
        """A repeated non-owner signature is still rejected."""
        aggregator = SignatureAggregator(owners, 2)
        aggregator.ingest([_sig(KEY_1)], SAFE_TX_HASH)
        with pytest.raises(NotOwnerError):
            aggregator.ingest([_sig(KEY_OUTSIDER), _sig(KEY_OUTSIDER)], SAFE_TX_HASH)


class TestSelect:
    def test_insufficient(self, owners, outsider):
        aggregator = SignatureAggregator(owners, 2, submitter=outsider)
        aggregator.ingest([_sig(KEY_1)], SAFE_TX_HASH)

        with pytest.raises(InsufficientSignaturesError) as exc_info:
            aggregator.select()
        assert exc_info.value.have == 1
        assert exc_info.value.need == 2

    def test_owner_submitter_self_approval_first(self, owners):
        aggregator = SignatureAggregator(owners, 2, submitter=owners[2])
        aggregator.ingest([_sig(KEY_1)], SAFE_TX_HASH)

        bundle = aggregator.select()
        assert len(bundle) == 2
        assert bundle[0].kind == SignatureKind.PRE_APPROVED
        assert bundle[0].signer == owners[2]
        assert bundle[1].signer == owners[0]

    def test_takes_first_required_in_arrival_order(self, owners, outsider):
        aggregator = SignatureAggregator(owners, 2, submitter=outsider)
        aggregator.ingest([_sig(KEY_3), _sig(KEY_1), _sig(KEY_2)], SAFE_TX_HASH)

        bundle = aggregator.select()
        assert [s.signer for s in bundle] == [owners[2], owners[0]]

    def test_threshold_one_owner_submitter_needs_nothing(self, owners):
        aggregator = SignatureAggregator(owners, 1, submitter=owners[1])
        bundle = aggregator.select()
        assert len(bundle) == 1
        assert bundle[0].v == 1


class TestPrepareSignatures:
    def test_reads_live_owners_and_threshold(self, chain, owners, outsider):
        bundle = prepare_signatures(
            chain, SAFE, SAFE_TX_HASH, [_sig(KEY_1), _sig(KEY_2)], submitter=outsider
        )
        assert {s.signer for s in bundle} == {owners[0], owners[1]}

    def test_threshold_raised_on_chain(self, chain, owners, outsider):
        chain._threshold = 3
        with pytest.raises(InsufficientSignaturesError):
            prepare_signatures(
                chain, SAFE, SAFE_TX_HASH, [_sig(KEY_1), _sig(KEY_2)], submitter=outsider
            )


class TestThreeOwnerScenario:
    """Owners A, B, C with threshold 2; B submits after A and C signed."""

    def test_end_to_end(self, chain, owners, safe_tx):
        safe_tx_hash = calculate_safe_tx_hash(SAFE, safe_tx, CHAIN_ID)
        sig_a = sign_hash(KEY_1, safe_tx_hash, typed=True).hex
        sig_c = sign_hash(KEY_3, safe_tx_hash).hex

        bundle = prepare_signatures(
            chain, SAFE, safe_tx_hash, [sig_a, sig_c], submitter=owners[1]
        )

        assert len(bundle) == 2
        assert bundle[0].signer == owners[1]
        assert bundle[0].kind == SignatureKind.PRE_APPROVED
        assert bundle[1].signer == owners[0]

        packed = build_signature_bytes(bundle)
        chunks = [packed[i:i + 65] for i in range(0, len(packed), 65)]
        signers = [parse_signature(c, safe_tx_hash).signer for c in chunks]
        assert signers == sorted(signers, key=str.lower)
        assert set(signers) == {owners[0], owners[1]}

    def test_addresses_derived_from_keys(self, owners):
        assert owners[0] == Account.from_key(KEY_1).address
