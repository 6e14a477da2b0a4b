"""Hashing helpers."""

from __future__ import annotations

import hashlib
from typing import Any, Mapping


def sha3_hash(text: str) -> str:
    """Return the hex SHA3-256 digest of the UTF-8 encoded text."""
    return hashlib.sha3_256(text.encode("utf-8")).hexdigest()


def key_exists(mapping: Mapping[str, Any], key: str) -> bool:
    """Tell whether ``key`` is present in ``mapping``."""
    return key in mapping