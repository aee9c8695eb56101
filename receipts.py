"""
receipts.py - Audit Receipt Foundation

Every state-changing decision in the simulation (admission, refusal, failure,
completion, operator switches, run result) is written as one receipt into the
session's ReceiptLedger. The ledger only accepts the receipt types it was
built with; anything else is a broken contract.

Never single hash. Always dual_hash (SHA256:BLAKE3).
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Union

import blake3

__all__ = [
    "dual_hash",
    "emit_receipt",
    "write_receipt_jsonl",
    "merkle",
    "ReceiptLedger",
    "StopRule",
]

DEFAULT_TENANT = "nea_studio"


# =============================================================================
# STOPRULE EXCEPTION
# =============================================================================

class StopRule(Exception):
    """Raised when an internal contract breaks. Never catch silently."""


# =============================================================================
# HASHING
# =============================================================================

def dual_hash(data: Union[bytes, str]) -> str:
    """
    SHA256:BLAKE3 - ALWAYS use this, never single hash.

    Args:
        data: Bytes or string to hash

    Returns:
        str: "sha256_hex:blake3_hex" format
    """
    if isinstance(data, str):
        data = data.encode()
    return f"{hashlib.sha256(data).hexdigest()}:{blake3.blake3(data).hexdigest()}"


def merkle(items: List[Any]) -> str:
    """
    Merkle root over JSON-serialized items; odd levels repeat the last node.

    Returns:
        str: Root in dual_hash format (dual_hash(b"empty") for no items)
    """
    if not items:
        return dual_hash(b"empty")
    level = [dual_hash(json.dumps(i, sort_keys=True, default=str)) for i in items]
    while len(level) > 1:
        if len(level) % 2:
            level.append(level[-1])
        level = [dual_hash(a + b) for a, b in zip(level[0::2], level[1::2])]
    return level[0]


# =============================================================================
# RECEIPTS
# =============================================================================

def emit_receipt(receipt_type: str, data: Dict[str, Any],
                 tenant_id: str = DEFAULT_TENANT) -> Dict[str, Any]:
    """
    Build one receipt. The payload hash covers data only, not the timestamp.

    Args:
        receipt_type: Type identifier for this receipt
        data: Receipt payload, merged into the receipt
        tenant_id: Owner of the receipt

    Returns:
        dict with receipt_type, ts, tenant_id, payload_hash and the data fields
    """
    return {
        "receipt_type": receipt_type,
        "ts": datetime.now(timezone.utc).isoformat(),
        "tenant_id": tenant_id,
        "payload_hash": dual_hash(json.dumps(data, sort_keys=True, default=str)),
        **data,
    }


def write_receipt_jsonl(receipt: Dict[str, Any], fh) -> None:
    """Append receipt as a single compact JSON line to an open file handle."""
    fh.write(json.dumps(receipt, separators=(",", ":"), default=str) + "\n")


class ReceiptLedger:
    """Append-only, type-checked receipt log for one session."""

    def __init__(self, allowed_types: Iterable[str], tenant_id: str = DEFAULT_TENANT):
        self.allowed_types = frozenset(allowed_types)
        self.tenant_id = tenant_id
        self._receipts: List[Dict[str, Any]] = []

    def emit(self, receipt_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Build and record a receipt.

        Raises:
            StopRule: receipt_type is not one this ledger was built for
        """
        if receipt_type not in self.allowed_types:
            raise StopRule(f"Unknown receipt type '{receipt_type}'")
        receipt = emit_receipt(receipt_type, data, tenant_id=self.tenant_id)
        self._receipts.append(receipt)
        return receipt

    def of_type(self, receipt_type: str) -> List[Dict[str, Any]]:
        return [r for r in self._receipts if r["receipt_type"] == receipt_type]

    def root(self) -> str:
        """Merkle root over the payload hashes, in emission order."""
        return merkle([r["payload_hash"] for r in self._receipts])

    def write_jsonl(self, fh) -> int:
        for receipt in self._receipts:
            write_receipt_jsonl(receipt, fh)
        return len(self._receipts)

    def to_list(self) -> List[Dict[str, Any]]:
        return list(self._receipts)

    def __len__(self) -> int:
        return len(self._receipts)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self._receipts)

    def __getitem__(self, index):
        return self._receipts[index]
