"""
Finding aggregation: groups per-paper claims into canonical findings.

Each relevant extraction becomes one EvidenceSource; extractions whose text
maps to the same group key become one Finding. Output order follows the
first appearance of each group in the input, so identical input in identical
order yields identical findings.
"""

from collections import OrderedDict
from typing import Iterable, List, Optional, Sequence, Tuple
import logging

from research_qa.aggregation.grouping import GroupingStrategy, PrefixGroupingStrategy
from research_qa.collaborators import TextValidator
from research_qa.models import (
    Consistency, EvidenceSource, ExtractionResult, Finding, Paper, StudyType,
)
from research_qa.utils.datetime_safe import utc_now_iso
from research_qa.utils.ids import stable_uuid

logger = logging.getLogger(__name__)

Claim = Tuple[Paper, ExtractionResult]


def quality_assessment(confidences: Sequence[float]) -> str:
    """'<n> paper(s), avg confidence: <mean>' with the mean to two decimals."""
    n = len(confidences)
    mean = sum(confidences) / n if n else 0.0
    return f"{n} paper(s), avg confidence: {mean:.2f}"


def assess_consistency(confidences: Sequence[float], threshold: float = 0.7) -> Consistency:
    """
    Agreement proxy for one group of claims.

    A single paper is trivially consistent. Otherwise the share of claims
    extracted with confidence >= threshold decides the level.
    """
    if len(confidences) <= 1:
        return Consistency.HIGH
    ratio = sum(1 for c in confidences if c >= threshold) / len(confidences)
    if ratio > 0.8:
        return Consistency.HIGH
    if ratio > 0.5:
        return Consistency.MEDIUM
    return Consistency.LOW


class FindingAggregator:
    """Group extraction results into validated Findings"""

    def __init__(self, validator: TextValidator,
                 strategy: Optional[GroupingStrategy] = None,
                 high_confidence_threshold: float = 0.7):
        self.validator = validator
        self.strategy = strategy or PrefixGroupingStrategy()
        self.high_confidence_threshold = high_confidence_threshold

    def group(self, claims: Iterable[Claim]) -> "OrderedDict[str, List[Claim]]":
        """Usable claims bucketed by group key, in first-seen order."""
        groups: "OrderedDict[str, List[Claim]]" = OrderedDict()
        for paper, result in claims:
            if not result.usable:
                continue
            key = self.strategy.key(result.finding)
            if not key:
                continue
            groups.setdefault(key, []).append((paper, result))
        return groups

    def aggregate(self, question_id: str, claims: Iterable[Claim],
                  now: Optional[str] = None) -> List[Finding]:
        """
        Build Findings for a question from (paper, extraction) pairs.

        Args:
            question_id: Owning question
            claims: Pairs in original paper order
            now: Timestamp stamped on findings and evidence (defaults to current UTC)

        Returns:
            Findings whose descriptions pass the language validator
        """
        stamp = now or utc_now_iso()
        findings: List[Finding] = []
        dropped = 0

        for key, members in self.group(claims).items():
            description = members[0][1].finding.strip()
            if not self.validator.check(description):
                dropped += 1
                logger.warning(
                    f"Dropping finding that failed conservative language check: {description[:100]!r}"
                )
                continue
            findings.append(self._build_finding(question_id, key, description, members, stamp))

        logger.info(f"Aggregated {len(findings)} findings for question {question_id} "
                    f"({dropped} rejected by language check)")
        return findings

    def _build_finding(self, question_id: str, key: str, description: str,
                       members: List[Claim], stamp: str) -> Finding:
        evidence = [self._evidence_source(paper, result, stamp) for paper, result in members]
        confidences = [e.confidence for e in evidence]

        quantitative = next(
            (r.evidence.strip() for _, r in members if r.evidence and r.evidence.strip()), None
        )
        limitations: List[str] = []
        for _, r in members:
            for lim in r.limitations:
                if lim and lim not in limitations:
                    limitations.append(lim)

        return Finding(
            id=stable_uuid(question_id, key),
            question_id=question_id,
            description=description,
            evidence=evidence,
            consistency=assess_consistency(confidences, self.high_confidence_threshold),
            quality_assessment=quality_assessment(confidences),
            quantitative_result=quantitative,
            limitations=limitations,
            has_contradiction=False,
            date_created=stamp,
        )

    @staticmethod
    def _evidence_source(paper: Paper, result: ExtractionResult, stamp: str) -> EvidenceSource:
        return EvidenceSource(
            paper_id=paper.id,
            paper_title=paper.title,
            excerpt=(result.evidence or result.finding or "").strip(),
            study_type=StudyType.coerce(result.study_type or paper.study_type),
            sample_size=result.sample_size,
            confidence=result.confidence,
            date_added=stamp,
        )
