"""Proposal and signature persistence.

ProposalStore is injected into the proposal flows; implementations:

- InMemoryProposalStore: process-local, for tests and embedding
- FileProposalStore: JSON files in a cache directory, compatible with the
  `<safeTxHash>.proposal.json` / `<safeTxHash>.signatures.json` layout used by
  existing Safe CLI tooling
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from .exceptions import InvalidInputError, ProposalNotFoundError
from .models import SafeTxProposal, normalize_hash
from .signatures import SafeSignature

logger = logging.getLogger(__name__)


class ProposalStore(Protocol):
    def put(self, safe_tx_hash: str, proposal: SafeTxProposal) -> None: ...
    def get(self, safe_tx_hash: str) -> SafeTxProposal: ...
    def append_signature(self, safe_tx_hash: str, signature: SafeSignature) -> None: ...
    def list_signatures(self, safe_tx_hash: str) -> Dict[str, str]: ...


def proposal_file(safe_tx_hash: str) -> str:
    return f"{safe_tx_hash}.proposal.json"


def signatures_file(safe_tx_hash: str) -> str:
    return f"{safe_tx_hash}.signatures.json"


class InMemoryProposalStore(ProposalStore):
    """In-memory proposal store."""

    def __init__(self) -> None:
        self._proposals: Dict[str, SafeTxProposal] = {}
        self._signatures: Dict[str, Dict[str, str]] = {}
        self._lock = threading.Lock()

    def put(self, safe_tx_hash: str, proposal: SafeTxProposal) -> None:
        key = normalize_hash(safe_tx_hash)
        with self._lock:
            self._proposals[key] = proposal

    def get(self, safe_tx_hash: str) -> SafeTxProposal:
        key = normalize_hash(safe_tx_hash)
        with self._lock:
            proposal = self._proposals.get(key)
        if proposal is None:
            raise ProposalNotFoundError(key)
        return proposal

    def append_signature(self, safe_tx_hash: str, signature: SafeSignature) -> None:
        key = normalize_hash(safe_tx_hash)
        with self._lock:
            self._signatures.setdefault(key, {})[signature.signer] = signature.hex

    def list_signatures(self, safe_tx_hash: str) -> Dict[str, str]:
        key = normalize_hash(safe_tx_hash)
        with self._lock:
            return dict(self._signatures.get(key, {}))


class FileProposalStore(ProposalStore):
    """Stores proposals and signature maps as JSON files.

    Signature appends are read-modify-write under a lock and files are
    replaced atomically, so concurrent signers in one process never lose
    each other's signatures and readers never see a partial file.
    """

    def __init__(self, cache_dir: str | Path = "cli_cache") -> None:
        self.cache_dir = Path(cache_dir)
        self._lock = threading.Lock()

    def put(self, safe_tx_hash: str, proposal: SafeTxProposal) -> None:
        key = normalize_hash(safe_tx_hash)
        self._write_json(proposal_file(key), proposal.to_dict())
        logger.debug(f"Stored proposal {key} in {self.cache_dir}")

    def get(self, safe_tx_hash: str) -> SafeTxProposal:
        key = normalize_hash(safe_tx_hash)
        content = self._read_json(proposal_file(key))
        if content is None:
            raise ProposalNotFoundError(key)
        return SafeTxProposal.from_dict(content)

    def append_signature(self, safe_tx_hash: str, signature: SafeSignature) -> None:
        key = normalize_hash(safe_tx_hash)
        with self._lock:
            signatures = self._read_json(signatures_file(key)) or {}
            signatures[signature.signer] = signature.hex
            self._write_json(signatures_file(key), signatures)

    def list_signatures(self, safe_tx_hash: str) -> Dict[str, str]:
        key = normalize_hash(safe_tx_hash)
        return self._read_json(signatures_file(key)) or {}

    def _read_json(self, name: str) -> Optional[Any]:
        path = self.cache_dir / name
        try:
            with open(path) as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            raise InvalidInputError(f"Corrupted cache file {path}: {e}") from e

    def _write_json(self, name: str, content: Any) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.cache_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(content, f, indent=2)
            os.replace(tmp_path, self.cache_dir / name)
        except BaseException:
            os.unlink(tmp_path)
            raise
