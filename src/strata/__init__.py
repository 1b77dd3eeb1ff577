"""strata kernel utilities."""

from .canonical_json import CanonicalJsonTypeError, canonical_dumps
from .inflector import humanize, singularize, titleize
from .manifest_hash import combined_hash, manifest_hash

__version__ = "0.4.0"

__all__ = [
    "CanonicalJsonTypeError",
    "canonical_dumps",
    "combined_hash",
    "humanize",
    "manifest_hash",
    "singularize",
    "titleize",
]
