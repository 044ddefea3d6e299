"""
Text normalization utilities shared by grouping, similarity and selection.
"""

import re
from typing import Iterable, List, Optional, Set

_WORD_RE = re.compile(r"[a-z0-9][a-z0-9'\-]*")


def collapse_whitespace(text: str) -> str:
    """Lower-case and collapse all whitespace runs to single spaces."""
    if not text:
        return ""
    return " ".join(text.lower().split())


def prefix_key(text: str, length: int = 100) -> str:
    """Normalized leading slice of a text, used as a cheap grouping key."""
    return collapse_whitespace(text)[:length]


def significant_tokens(text: str, min_length: int = 4,
                       stopwords: Optional[Iterable[str]] = None) -> Set[str]:
    """
    Case-folded word set keeping only words longer than three characters.

    Args:
        text: Text to tokenize
        min_length: Minimum token length kept
        stopwords: Optional words to drop

    Returns:
        Set of tokens
    """
    if not text:
        return set()
    stop = set(stopwords or ())
    return {
        w for w in (t.strip("'-") for t in _WORD_RE.findall(text.lower()))
        if len(w) >= min_length and w not in stop
    }


def ordered_keywords(text: str, stopwords: Iterable[str], min_length: int = 4) -> List[str]:
    """Significant tokens in first-seen order, de-duplicated."""
    stop = set(stopwords)
    seen = []
    for w in (t.strip("'-") for t in _WORD_RE.findall((text or "").lower())):
        if len(w) >= min_length and w not in stop and w not in seen:
            seen.append(w)
    return seen


def lower_first(text: str) -> str:
    """Lower-case the leading word unless it is an acronym (e.g. 'ATP'); drops a trailing period."""
    text = text.strip().rstrip(".")
    if not text:
        return text
    first = text.split()[0]
    if len(first) > 1 and first.isupper():
        return text
    return text[0].lower() + text[1:]
