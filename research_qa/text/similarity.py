"""
Similarity calculations for comparing finding descriptions.
"""

from typing import Set

from .normalize import significant_tokens


def jaccard(tokens1: Set[str], tokens2: Set[str]) -> float:
    """Calculate Jaccard similarity between two token sets."""
    if not tokens1 or not tokens2:
        return 0.0

    intersection = tokens1 & tokens2
    union = tokens1 | tokens2

    if not union:
        return 0.0

    return len(intersection) / len(union)


def topic_similarity(text1: str, text2: str) -> float:
    """
    Topic overlap between two descriptions.

    Jaccard over the sets of case-folded words longer than three characters.

    Returns:
        Similarity score between 0.0 and 1.0
    """
    if not text1 or not text2:
        return 0.0
    return jaccard(significant_tokens(text1), significant_tokens(text2))
