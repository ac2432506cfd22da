# rowverify/services/hasher.py
"""Content fingerprint of a submitted image (SHA-256, hex)."""

import hashlib


def compute_image_hash(image_bytes: bytes) -> str:
    """
    Same bytes always give the same 64-char digest.
    Empty input still hashes; callers reject empty images before getting here.
    """
    return hashlib.sha256(bytes(image_bytes)).hexdigest()
