"""
Text processing utilities module.
"""

from .normalize import (
    collapse_whitespace,
    prefix_key,
    significant_tokens,
    ordered_keywords,
    lower_first,
)
from .similarity import (
    jaccard,
    topic_similarity,
)
from .contradictions import (
    find_antonym_conflict,
    has_result_conflict,
)

__all__ = [
    'collapse_whitespace',
    'prefix_key',
    'significant_tokens',
    'ordered_keywords',
    'lower_first',
    'jaccard',
    'topic_similarity',
    'find_antonym_conflict',
    'has_result_conflict',
]
