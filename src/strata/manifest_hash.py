"""Fingerprints for resource manifests and registry contents."""

from __future__ import annotations

import hashlib
from typing import Any, Iterable

from .canonical_json import canonical_dumps


def manifest_hash(manifest_obj: Any) -> str:
    """Return the canonical SHA-256 hash for a resource manifest."""
    data = canonical_dumps(manifest_obj).encode("utf-8")
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def combined_hash(hashes: Iterable[str]) -> str:
    """Order-independent hash over a set of manifest hashes."""
    return manifest_hash(sorted(hashes))
