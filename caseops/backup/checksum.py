"""Backup payload checksums.

``sha256`` hashes the canonical JSON (sorted keys, compact, UTF-8).
``legacy`` reproduces the 32-bit shift-subtract string hash that 1.x backups
carry, over compact JSON in file key order, so those files still verify.
"""

from __future__ import annotations

import hashlib
import json
import struct
from typing import Any

SHA256 = "sha256"
LEGACY = "legacy"
ALGORITHMS = (SHA256, LEGACY)


def canonical_payload(data: Any) -> bytes:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sha256_checksum(data: Any) -> str:
    return hashlib.sha256(canonical_payload(data)).hexdigest()


def legacy_hash(text: str) -> str:
    """32-bit ``h = h*31 + c`` over UTF-16 code units, abs, hex, zero-padded to 16."""
    raw = text.encode("utf-16-le")
    h = 0
    for unit in struct.unpack(f"<{len(raw) // 2}H", raw):
        h = (h << 5) - h + unit
        h = ((h + 2**31) % 2**32) - 2**31
    return format(abs(h), "x").rjust(16, "0")


def legacy_checksum(data: Any) -> str:
    return legacy_hash(json.dumps(data, separators=(",", ":"), ensure_ascii=False))


def compute_checksum(data: Any, algorithm: str = SHA256) -> str:
    if algorithm == SHA256:
        return sha256_checksum(data)
    if algorithm == LEGACY:
        return legacy_checksum(data)
    raise ValueError(f"Unknown checksum algorithm: {algorithm}. Must be one of {ALGORITHMS}")
