"""Canonical Safe deployment addresses.

Same on all EVM chains (CREATE2 deterministic deployment), Safe v1.4.1.

References:
- https://github.com/safe-global/safe-deployments
"""

from __future__ import annotations

from .models import checksum_address


SAFE_ADDRESSES = {
    "safe_singleton": "0x41675C099F32341bf84BFc5382aF534df5C7461a",
    "multi_send": "0x38869bf66a61cF6bDB996A6aE40D5853Fd43B526",
    "multi_send_call_only": "0x9641d764fc13c8B624c04430C7356C1C7C8102e2",
}


def multi_send_address(override: str | None = None, call_only: bool = False) -> str:
    """Resolve the batch helper address, preferring an explicit override."""
    if override:
        return checksum_address(override, field="multi_send")
    key = "multi_send_call_only" if call_only else "multi_send"
    return checksum_address(SAFE_ADDRESSES[key])
