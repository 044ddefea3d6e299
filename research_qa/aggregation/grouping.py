"""
Grouping strategies deciding which per-paper claims describe the same finding.
"""

from typing import Protocol, runtime_checkable

from research_qa.text.normalize import prefix_key


@runtime_checkable
class GroupingStrategy(Protocol):
    """Maps a claim's text to a group key; equal keys share one Finding."""

    def key(self, text: str) -> str:
        ...


class PrefixGroupingStrategy:
    """
    Cheap surrogate for semantic clustering: claims whose lower-cased,
    whitespace-collapsed text shares the same leading characters are grouped.
    """

    def __init__(self, prefix_length: int = 100):
        if prefix_length < 1:
            raise ValueError("prefix_length must be positive")
        self.prefix_length = prefix_length

    def key(self, text: str) -> str:
        return prefix_key(text, self.prefix_length)

    def __repr__(self):
        return f"PrefixGroupingStrategy(prefix_length={self.prefix_length})"
