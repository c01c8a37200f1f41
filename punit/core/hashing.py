"""
punit.core.hashing
==================

SHA-256 helpers shared by fingerprints, footprints and covariate hashes.

Examples
--------
>>> from punit.core.hashing import sha256_hex, short_hash
>>> sha256_hex("")[:8]
'e3b0c442'
>>> short_hash("", 4)
'e3b0'
"""

from __future__ import annotations
import hashlib


def sha256_hex(text: str) -> str:
    """Hex SHA-256 digest of the UTF-8 encoding of `text`."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def short_hash(text: str, length: int = 8) -> str:
    return sha256_hex(text)[:length]
