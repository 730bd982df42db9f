"""
Text fingerprinting and similarity helpers.
"""

import math
from hashlib import md5
from typing import Optional, Sequence


def content_fingerprint(text: str) -> str:
    """
    Fingerprint scraped text for deduplication.

    MD5 hex digest of the UTF-8 bytes of the full text. Byte-identical text
    always yields the same 32-char digest; no normalization is applied so
    any change to the page text counts as new content.
    """
    return md5((text or "").encode("utf-8")).hexdigest()


def text_similarity(text_a: Optional[str], text_b: Optional[str]) -> float:
    """
    Jaccard similarity over lowercase whitespace tokens, in [0, 1].

    Symmetric; identical non-empty text scores 1.0; empty text scores 0.
    """
    if not text_a or not text_b:
        return 0.0
    tokens_a = set(text_a.lower().split())
    tokens_b = set(text_b.lower().split())
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors (0.0 for zero vectors)."""
    if len(vec_a) != len(vec_b):
        raise ValueError(f"Vector length mismatch: {len(vec_a)} != {len(vec_b)}")
    dot = sum(a * b for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(sum(a * a for a in vec_a))
    norm_b = math.sqrt(sum(b * b for b in vec_b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)
