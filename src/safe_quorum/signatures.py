"""Safe signature encoding, parsing and signer recovery.

A Safe signature is 65 bytes `r (32) | s (32) | v (1)`. The trailing byte
selects how the signer is derived:

- v == 1:       pre-approved hash, `r` holds the owner address (no recovery)
- v in 27, 28:  ECDSA signature over the Safe tx hash itself
- v in 31, 32:  eth_sign signature over the EIP-191 prefixed hash, v + 4

References:
- https://docs.safe.global/advanced/smart-account-signatures
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.datatypes import Signature as EthSignature
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import encode_hex, to_checksum_address

from .exceptions import (
    MalformedSignatureError,
    SignatureRecoveryError,
    UnsupportedSignatureKindError,
)
from .models import HexLike, checksum_address, hex_to_bytes, normalize_hash

logger = logging.getLogger(__name__)

SIGNATURE_LENGTH = 65


class SignatureKind(str, Enum):
    """How the signer of a Safe signature is derived."""
    PRE_APPROVED = "pre_approved"
    TYPED_DATA = "typed_data"
    ETH_SIGNED = "eth_signed"


_KIND_BY_V: Dict[int, SignatureKind] = {
    1: SignatureKind.PRE_APPROVED,
    27: SignatureKind.TYPED_DATA,
    28: SignatureKind.TYPED_DATA,
    31: SignatureKind.ETH_SIGNED,
    32: SignatureKind.ETH_SIGNED,
}


@dataclass(frozen=True)
class SafeSignature:
    """A signature attributed to its signer. Never mutated after creation."""
    signer: str
    data: bytes
    kind: SignatureKind

    @property
    def v(self) -> int:
        return self.data[-1]

    @property
    def hex(self) -> str:
        return encode_hex(self.data)


def _ecrecover(message_hash: bytes, data: bytes, v: int) -> str:
    r = int.from_bytes(data[0:32], "big")
    s = int.from_bytes(data[32:64], "big")
    try:
        sig = EthSignature(vrs=(v, r, s))
        return sig.recover_public_key_from_msg_hash(message_hash).to_checksum_address()
    except (BadSignature, ValidationError, ValueError) as e:
        raise SignatureRecoveryError(
            f"Could not recover signer from {encode_hex(data)}: {e}",
            details={"signature": encode_hex(data)},
        ) from e


def _recover_pre_approved(data: bytes, safe_tx_hash: bytes) -> str:
    return to_checksum_address(data[12:32])


def _recover_typed_data(data: bytes, safe_tx_hash: bytes) -> str:
    return _ecrecover(safe_tx_hash, data, data[64] - 27)


def _recover_eth_signed(data: bytes, safe_tx_hash: bytes) -> str:
    adjusted = data[:64] + bytes([data[64] - 4])
    try:
        return Account.recover_message(
            encode_defunct(primitive=safe_tx_hash),
            signature=adjusted,
        )
    except (BadSignature, ValidationError, ValueError) as e:
        raise SignatureRecoveryError(
            f"Could not recover signer from {encode_hex(data)}: {e}",
            details={"signature": encode_hex(data)},
        ) from e


_RECOVERY: Dict[SignatureKind, Callable[[bytes, bytes], str]] = {
    SignatureKind.PRE_APPROVED: _recover_pre_approved,
    SignatureKind.TYPED_DATA: _recover_typed_data,
    SignatureKind.ETH_SIGNED: _recover_eth_signed,
}


def parse_signature(signature: HexLike, safe_tx_hash: HexLike) -> SafeSignature:
    """Parse a raw 65-byte signature and attribute it to its signer.

    Args:
        signature: Hex string (with or without 0x) or raw bytes
        safe_tx_hash: Hash the signature must attest to

    Returns:
        SafeSignature with the recovered signer

    Raises:
        MalformedSignatureError: Signature is not 65 bytes
        UnsupportedSignatureKindError: Unknown trailing v byte (including 0)
        InvalidInputError: The hash is not 32 bytes
        SignatureRecoveryError: ECDSA recovery failed
    """
    message_hash = hex_to_bytes(normalize_hash(safe_tx_hash))
    data = hex_to_bytes(signature, field="signature")
    if len(data) != SIGNATURE_LENGTH:
        raise MalformedSignatureError(_display(signature), len(data))

    kind = _KIND_BY_V.get(data[-1])
    if kind is None:
        raise UnsupportedSignatureKindError(data[-1], _display(signature))

    signer = _RECOVERY[kind](data, message_hash)
    return SafeSignature(signer=signer, data=data, kind=kind)


def split_signatures(signatures_csv: Optional[str]) -> List[str]:
    """Split a comma separated list of signatures, dropping blanks."""
    if not signatures_csv:
        return []
    return [part.strip() for part in signatures_csv.split(",") if part.strip()]


def build_pre_approved_signature(owner: str) -> SafeSignature:
    """Encode the v == 1 signature for an owner that approves by submitting."""
    owner = checksum_address(owner, field="owner")
    data = (
        bytes(12)
        + bytes.fromhex(owner[2:])
        + bytes(32)
        + b"\x01"
    )
    return SafeSignature(signer=owner, data=data, kind=SignatureKind.PRE_APPROVED)


def build_signature_bytes(signatures: Iterable[SafeSignature]) -> bytes:
    """Pack signatures for execTransaction.

    The Safe contract requires owners in strictly increasing order, so the
    blob is sorted by signer address regardless of the bundle order.
    """
    ordered = sorted(signatures, key=lambda sig: sig.signer.lower())
    return b"".join(sig.data for sig in ordered)


def sign_hash(private_key: str, safe_tx_hash: HexLike, typed: bool = False) -> SafeSignature:
    """Sign a Safe transaction hash with a local key.

    Args:
        private_key: Hex private key of an owner
        safe_tx_hash: Hash to sign
        typed: Sign the raw hash (v 27/28) instead of the eth_sign form (v 31/32)

    Returns:
        SafeSignature for the key's address
    """
    message_hash = hex_to_bytes(normalize_hash(safe_tx_hash))
    account = Account.from_key(private_key)

    if typed:
        signed = account.unsafe_sign_hash(message_hash)
        data = bytes(signed.signature)
        kind = SignatureKind.TYPED_DATA
    else:
        signed = account.sign_message(encode_defunct(primitive=message_hash))
        raw = bytes(signed.signature)
        # eth_sign flow: shift v so the Safe applies the message prefix
        data = raw[:64] + bytes([raw[64] + 4])
        kind = SignatureKind.ETH_SIGNED

    logger.debug(f"Signed Safe tx hash {encode_hex(message_hash)} as {account.address}")
    return SafeSignature(signer=account.address, data=data, kind=kind)


def _display(signature: HexLike) -> str:
    if isinstance(signature, (bytes, bytearray)):
        return encode_hex(bytes(signature))
    return signature
