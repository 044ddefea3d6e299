"""
Question status and confidence derivation.

Status and confidence are never stored independently of the evidence: they
are always a pure function of the finding/contradiction set, so they can be
recomputed from persisted rows at any time.
"""

from typing import Iterable, Sequence

from research_qa.models import (
    Consistency, EvaluationMode, QuestionStatus, ResearchQuestion, StatusResult,
)

MIN_FINDINGS_FOR_ANSWER = 3
MIN_PAPERS_FOR_ANSWER = 3
PARTIAL_CONFIDENCE = 0.5
MAX_INITIAL_CONFIDENCE = 0.9
REFRESH_CONFIDENCE = 0.8
CONTRADICTION_PENALTY = 0.7


def _clamp(x: float) -> float:
    return round(min(1.0, max(0.0, x)), 4)


def _base_confidence(consistencies: Sequence[Consistency], mode: EvaluationMode) -> float:
    if mode is EvaluationMode.INITIAL:
        high = sum(1 for c in consistencies if c is Consistency.HIGH)
        return min(MAX_INITIAL_CONFIDENCE, high / len(consistencies)) if consistencies else 0.0
    if mode is EvaluationMode.REFRESH:
        return REFRESH_CONFIDENCE
    raise ValueError(f"Unknown evaluation mode: {mode!r}")


def calculate_status(finding_count: int, papers_used_count: int, contradiction_count: int,
                     consistencies: Iterable[Consistency],
                     mode: EvaluationMode = EvaluationMode.INITIAL) -> StatusResult:
    """
    Derive (status, confidence) for a question.

    Args:
        finding_count: Number of findings
        papers_used_count: Distinct papers contributing evidence
        contradiction_count: Number of detected contradictions
        consistencies: Per-finding consistency levels
        mode: INITIAL for a first answer, REFRESH after a re-evaluation

    Returns:
        StatusResult with confidence in [0, 1]
    """
    consistencies = [Consistency(c) for c in consistencies]

    if finding_count <= 0:
        return StatusResult(status=QuestionStatus.UNANSWERED, confidence=0.0)

    if finding_count < MIN_FINDINGS_FOR_ANSWER or papers_used_count < MIN_PAPERS_FOR_ANSWER:
        status, confidence = QuestionStatus.PARTIAL, PARTIAL_CONFIDENCE
    else:
        status, confidence = QuestionStatus.ANSWERED, _base_confidence(consistencies, mode)

    # Contradictions affect the score only here
    if contradiction_count > 0:
        confidence *= CONTRADICTION_PENALTY

    return StatusResult(status=status, confidence=_clamp(confidence))


def papers_used(findings) -> list:
    """Distinct contributing paper ids in first-seen order."""
    seen = {}
    for f in findings:
        for paper_id in f.supporting_papers:
            seen.setdefault(paper_id, None)
    return list(seen)


def status_for_question(question: ResearchQuestion) -> StatusResult:
    """Recompute status/confidence from a question's persisted findings and contradictions."""
    return calculate_status(
        finding_count=len(question.findings),
        papers_used_count=len(papers_used(question.findings)),
        contradiction_count=len(question.contradictions),
        consistencies=[f.consistency for f in question.findings],
        mode=question.evaluation_mode,
    )
