"""
Stable hashing of cache keys.
"""

import hashlib


def compute_key_hash(resource_type: str, key: str) -> str:
    """SHA-256 of ``resource_type:key``; backs the one-row-per-key constraint."""
    material = f"{resource_type}:{key}"
    return hashlib.sha256(material.encode("utf-8", errors="replace")).hexdigest()
