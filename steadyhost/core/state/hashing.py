from __future__ import annotations

import hashlib


def normalize_line_endings(b: bytes) -> bytes:
    return b.replace(b"\r\n", b"\n").replace(b"\r", b"\n")


def sha256_bytes(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()


def manifest_hash_bytes(b: bytes) -> str:
    """CRLF, CR and LF authored copies of the same manifest hash identically."""
    return sha256_bytes(normalize_line_endings(b))


def manifest_hash_file(path: str) -> str:
    with open(path, "rb") as f:
        return manifest_hash_bytes(f.read())
