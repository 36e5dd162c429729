# utils/__init__.py
"""General utility functions for Chronicle."""

from .locale_rules import editorial_rules, language_name
from .logging import setup_logging
from .similarity import bag_of_words_cosine, keyword_overlap, numpy_cosine_similarity

__all__ = [
    "bag_of_words_cosine",
    "editorial_rules",
    "keyword_overlap",
    "language_name",
    "numpy_cosine_similarity",
    "setup_logging",
]
