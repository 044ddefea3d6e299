"""
Contradiction detection between findings of one question
"""

from typing import Dict, List, Optional, Sequence, Tuple
import logging

from research_qa.collaborators import PaperLibrary
from research_qa.contradictions.discrepancy import analyze_discrepancy
from research_qa.models import (
    Contradiction, ContradictionSeverity, ContradictionView, DiscrepancyAnalysis,
    Finding, Paper, StudyType,
)
from research_qa.text.contradictions import has_result_conflict
from research_qa.text.normalize import lower_first
from research_qa.text.similarity import topic_similarity
from research_qa.utils.datetime_safe import utc_now_iso
from research_qa.utils.ids import stable_uuid

logger = logging.getLogger(__name__)


def _papers(n: int) -> str:
    return f"{n} paper{'s' if n != 1 else ''}"


def conservative_interpretation(majority: ContradictionView, minority: ContradictionView,
                                methodological_differences: Sequence[str]) -> str:
    """Templated summary that reports both sides without picking a winner."""
    text = (
        f"Most evidence ({_papers(majority.paper_count)}) supports {lower_first(majority.description)}, "
        f"however {_papers(minority.paper_count)} found {lower_first(minority.description)}. "
    )
    if methodological_differences:
        text += "The discrepancy may be explained by methodological differences. "
    text += "More research is needed to resolve this contradiction."
    return text


def determine_severity(majority: Finding, majority_papers: Sequence[Paper],
                       minority: Finding, minority_papers: Sequence[Paper]) -> ContradictionSeverity:
    """MAJOR when both sides are substantial, or a clinical trial is involved with >= 3 papers."""
    n1, n2 = len(majority_papers), len(minority_papers)
    if n1 >= 2 and n2 >= 2:
        return ContradictionSeverity.MAJOR

    trial = StudyType.CLINICAL_TRIAL.value

    def has_trial(finding: Finding, papers: Sequence[Paper]) -> bool:
        return (any(StudyType.coerce(p.study_type) == trial for p in papers if p.study_type)
                or any(e.study_type == trial for e in finding.evidence))

    if (has_trial(majority, majority_papers) or has_trial(minority, minority_papers)) and n1 + n2 >= 3:
        return ContradictionSeverity.MAJOR
    return ContradictionSeverity.MINOR


class ContradictionDetector:
    """Detects opposite-direction results between findings that share a topic"""

    def __init__(self, library: PaperLibrary, similarity_threshold: float = 0.6,
                 guardrails_path: Optional[str] = None):
        self.library = library
        self.similarity_threshold = similarity_threshold
        self.guardrails_path = guardrails_path

    def topics_overlap(self, a: Finding, b: Finding) -> bool:
        return topic_similarity(a.description, b.description) >= self.similarity_threshold

    def results_conflict(self, a: Finding, b: Finding) -> bool:
        return has_result_conflict(a.quantitative_result, b.quantitative_result, self.guardrails_path)

    @staticmethod
    def _rank(finding: Finding, paper_count: int) -> Tuple:
        # Total order: more papers, then higher mean confidence, then description, then id
        return (-paper_count, -round(finding.mean_confidence, 6), finding.description, finding.id)

    def assign_sides(self, a: Finding, a_papers: List[Paper],
                     b: Finding, b_papers: List[Paper]) -> Tuple[Tuple[Finding, List[Paper]], Tuple[Finding, List[Paper]]]:
        """(majority, minority) pairs of (finding, resolved papers)."""
        if self._rank(a, len(a_papers)) <= self._rank(b, len(b_papers)):
            return (a, a_papers), (b, b_papers)
        return (b, b_papers), (a, a_papers)

    def detect(self, findings: Sequence[Finding], question_id: Optional[str] = None,
               now: Optional[str] = None) -> List[Contradiction]:
        """
        Compare every pair of findings and build contradictions.

        Sets ``has_contradiction`` on every finding referenced by a result.
        """
        stamp = now or utc_now_iso()
        resolved: Dict[str, List[Paper]] = {}

        def papers_for(f: Finding) -> List[Paper]:
            if f.id not in resolved:
                resolved[f.id] = self.library.get_papers_by_ids(list(dict.fromkeys(f.supporting_papers)))
            return resolved[f.id]

        contradictions: List[Contradiction] = []
        for i, first in enumerate(findings):
            for second in findings[i + 1:]:
                if not self.topics_overlap(first, second):
                    continue
                if not self.results_conflict(first, second):
                    continue

                (maj, maj_papers), (mino, min_papers) = self.assign_sides(
                    first, papers_for(first), second, papers_for(second)
                )
                contradiction = self._build(question_id or maj.question_id, maj, maj_papers,
                                            mino, min_papers, stamp)
                maj.has_contradiction = True
                mino.has_contradiction = True
                contradictions.append(contradiction)

                logger.info(
                    f"Contradiction detected: topic={contradiction.topic[:80]!r} "
                    f"severity={contradiction.severity.value} "
                    f"majority={contradiction.majority_view.paper_count} "
                    f"minority={contradiction.minority_view.paper_count}"
                )
        return contradictions

    def _build(self, question_id: str, majority: Finding, majority_papers: List[Paper],
               minority: Finding, minority_papers: List[Paper], stamp: str) -> Contradiction:
        majority_view = self._view(majority, majority_papers)
        minority_view = self._view(minority, minority_papers)
        analysis: DiscrepancyAnalysis = analyze_discrepancy(
            majority, majority_papers, minority, minority_papers
        )
        return Contradiction(
            id=stable_uuid(majority.id, minority.id),
            question_id=question_id,
            finding_id=majority.id,
            topic=majority.description,
            majority_view=majority_view,
            minority_view=minority_view,
            severity=determine_severity(majority, majority_papers, minority, minority_papers),
            methodological_differences=analysis.methodological_differences,
            possible_explanations=analysis.possible_explanations,
            conservative_interpretation=conservative_interpretation(
                majority_view, minority_view, analysis.methodological_differences
            ),
            analysis=analysis,
            date_detected=stamp,
        )

    @staticmethod
    def _view(finding: Finding, papers: List[Paper]) -> ContradictionView:
        return ContradictionView(
            description=finding.description,
            paper_ids=[p.id for p in papers],
            evidence=finding.quantitative_result or "",
            paper_count=len(papers),
            finding_id=finding.id,
        )
