"""Grouping of per-paper claims into canonical findings."""

from .grouping import GroupingStrategy, PrefixGroupingStrategy
from .aggregator import FindingAggregator, assess_consistency, quality_assessment

__all__ = [
    "GroupingStrategy",
    "PrefixGroupingStrategy",
    "FindingAggregator",
    "assess_consistency",
    "quality_assessment",
]
