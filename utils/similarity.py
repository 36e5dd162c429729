# utils/similarity.py
"""Text similarity helpers used to match near-duplicate findings."""

from __future__ import annotations

import re
import unicodedata
from collections import Counter

import numpy as np
import structlog

logger = structlog.get_logger(__name__)

_WORD_RE = re.compile(r"[a-z0-9]+")

# English and Spanish function words; review output arrives in either.
STOPWORDS = frozenset(
    """
    about after again also been before being between both chapter chapters
    could does during each from have having here into more most other over
    same should some such than that their them then there these they this
    those through under unit units very were what when where which while
    will with would your

    como cuando desde donde entre esta este esto estos esas esos hace hacia
    hasta para pero porque sobre tambien tiene tienen todo todos capitulo
    capitulos muy mismo misma
    """.split()
)


def strip_accents(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def normalize_keywords(text: str, min_length: int = 4) -> frozenset[str]:
    """Lower-cased, accent-free content words of at least ``min_length`` chars."""
    words = _WORD_RE.findall(strip_accents(text.lower()))
    return frozenset(w for w in words if len(w) >= min_length and w not in STOPWORDS)


def keyword_overlap(a: str, b: str, min_length: int = 4) -> float:
    """Overlap coefficient of the two keyword sets (0.0 when either is empty)."""
    ka = normalize_keywords(a, min_length)
    kb = normalize_keywords(b, min_length)
    if not ka or not kb:
        return 0.0
    return len(ka & kb) / min(len(ka), len(kb))


def numpy_cosine_similarity(vec1: np.ndarray | None, vec2: np.ndarray | None) -> float:
    """Calculate cosine similarity between two numpy vectors."""
    if vec1 is None or vec2 is None:
        return 0.0
    v1 = np.asarray(vec1, dtype=np.float32).flatten()
    v2 = np.asarray(vec2, dtype=np.float32).flatten()
    if v1.shape != v2.shape:
        logger.warning(
            "Cosine similarity: shape mismatch %s vs %s. Returning 0.0.",
            v1.shape,
            v2.shape,
        )
        return 0.0
    if v1.size == 0:
        return 0.0
    norm_v1 = np.linalg.norm(v1)
    norm_v2 = np.linalg.norm(v2)
    if norm_v1 == 0.0 or norm_v2 == 0.0:
        return 0.0
    similarity = np.dot(v1, v2) / (norm_v1 * norm_v2)
    return float(np.clip(similarity, -1.0, 1.0))


def bag_of_words_cosine(a: str, b: str, min_length: int = 4) -> float:
    """Cosine similarity of keyword count vectors."""
    words_a = [
        w
        for w in _WORD_RE.findall(strip_accents(a.lower()))
        if len(w) >= min_length and w not in STOPWORDS
    ]
    words_b = [
        w
        for w in _WORD_RE.findall(strip_accents(b.lower()))
        if len(w) >= min_length and w not in STOPWORDS
    ]
    if not words_a or not words_b:
        return 0.0
    ca, cb = Counter(words_a), Counter(words_b)
    vocab = sorted(set(ca) | set(cb))
    va = np.array([ca[w] for w in vocab], dtype=np.float32)
    vb = np.array([cb[w] for w in vocab], dtype=np.float32)
    return numpy_cosine_similarity(va, vb)
