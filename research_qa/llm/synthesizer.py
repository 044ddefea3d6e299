"""
Synthesizer - advisory confidence, gaps and summary for a finding set

Uses the LLM when configured and falls back to rules otherwise.
"""

import logging
from typing import List, Optional

from pydantic import ValidationError

from research_qa.collaborators import TextValidator
from research_qa.config.settings import Settings, get_settings
from research_qa.exceptions import CollaboratorError
from research_qa.llm.llm_client import LLMClient
from research_qa.llm.prompts import SYNTHESIS_SYSTEM_PROMPT, build_synthesis_prompt
from research_qa.models import Consistency, Finding, StudyType, SynthesisResult
from research_qa.text.normalize import lower_first
from research_qa.validation.language import LanguageValidator

logger = logging.getLogger(__name__)

NO_EVIDENCE_SUMMARY = "No papers in collection address this question yet."
PENDING_SUMMARY = "Evidence extraction pending review."

GAP_FEW_STUDIES = "Limited number of studies on this topic"
GAP_NO_TRIALS = "No randomized controlled trials found"
GAP_NO_LARGE = "No large-scale studies (>100 participants) found"
GAP_NEED_RESEARCH = "Need more research on this topic"

LIMITATION_LOW_CONSISTENCY = "Low consistency across studies"
LIMITATION_SMALL_SAMPLES = "Small sample sizes"
LIMITATION_INSUFFICIENT = "Insufficient evidence"

LARGE_STUDY_SIZE = 100
SMALL_SAMPLE_MEAN = 30
MAX_FINDING_SCORE = 0.9


def _papers(n: int) -> str:
    return f"{n} paper{'s' if n != 1 else ''}"


def finding_score(finding: Finding) -> float:
    """Baseline 0.5, raised by paper count and consistency, capped at 0.9."""
    score = 0.5
    if finding.paper_count >= 5:
        score += 0.2
    elif finding.paper_count >= 3:
        score += 0.1
    if finding.consistency is Consistency.HIGH:
        score += 0.2
    elif finding.consistency is Consistency.MEDIUM:
        score += 0.1
    return min(MAX_FINDING_SCORE, score)


def rules_confidence(findings: List[Finding]) -> float:
    if not findings:
        return 0.0
    return round(sum(finding_score(f) for f in findings) / len(findings), 4)


def identify_gaps(findings: List[Finding]) -> List[str]:
    gaps = []
    if len(findings) < 3:
        gaps.append(GAP_FEW_STUDIES)
    if not any(StudyType.CLINICAL_TRIAL.value in f.study_types for f in findings):
        gaps.append(GAP_NO_TRIALS)
    if not any(s > LARGE_STUDY_SIZE for f in findings for s in f.sample_sizes):
        gaps.append(GAP_NO_LARGE)
    return gaps


def finding_limitations(finding: Finding) -> List[str]:
    limitations = []
    if finding.consistency is Consistency.LOW:
        limitations.append(LIMITATION_LOW_CONSISTENCY)
    sizes = finding.sample_sizes
    if sizes and sum(sizes) / len(sizes) < SMALL_SAMPLE_MEAN:
        limitations.append(LIMITATION_SMALL_SAMPLES)
    return limitations


def collect_limitations(findings: List[Finding]) -> List[str]:
    seen: List[str] = []
    for f in findings:
        for lim in finding_limitations(f):
            if lim not in seen:
                seen.append(lim)
    return seen


def conservative_summary(findings: List[Finding]) -> str:
    """'Based on N papers, research suggests ...' across the finding set."""
    if not findings:
        return NO_EVIDENCE_SUMMARY
    total = sum(f.paper_count for f in findings)
    summary = f"Based on {_papers(total)}, "
    if len(findings) == 1:
        summary += f"research suggests {lower_first(findings[0].description)}"
    else:
        summary += "evidence indicates multiple findings: " + "; ".join(
            f"({i}) {_papers(f.paper_count)} found {lower_first(f.description)}"
            for i, f in enumerate(findings, 1)
        )
    return summary + "."


class Synthesizer:
    """Synthesis collaborator: LLM when available, rules otherwise"""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[LLMClient] = None,
                 validator: Optional[TextValidator] = None):
        self.settings = settings or get_settings()
        self.validator = validator or LanguageValidator.from_settings(self.settings)
        self.client = client
        if self.client is None and self.llm_available:
            self.client = LLMClient(self.settings)

    @property
    def llm_available(self) -> bool:
        """Check if LLM is configured and enabled for synthesis"""
        return bool(self.settings.USE_LLM_SYNTH and self.settings.llm_enabled)

    async def synthesize(self, findings: List[Finding], question_text: str) -> SynthesisResult:
        if not findings:
            return SynthesisResult(
                confidence=0.0,
                summary=NO_EVIDENCE_SUMMARY,
                limitations=[LIMITATION_INSUFFICIENT],
                gaps=[GAP_NEED_RESEARCH],
            )

        if self.client is not None and self.llm_available:
            try:
                return await self._synthesize_llm(findings, question_text)
            except CollaboratorError as e:
                logger.warning(f"LLM synthesis failed, falling back to rules: {e}")
        return self._synthesize_rules(findings)

    def _synthesize_rules(self, findings: List[Finding]) -> SynthesisResult:
        return SynthesisResult(
            confidence=rules_confidence(findings),
            gaps=identify_gaps(findings),
            summary=self._checked_summary(conservative_summary(findings)),
            limitations=collect_limitations(findings),
        )

    async def _synthesize_llm(self, findings: List[Finding], question_text: str) -> SynthesisResult:
        data = await self.client.complete_json(
            build_synthesis_prompt(findings, question_text),
            system=SYNTHESIS_SYSTEM_PROMPT,
            temperature=self.settings.SYNTHESIS_TEMPERATURE,
        )
        try:
            result = SynthesisResult.model_validate(data)
        except ValidationError as e:
            raise CollaboratorError(f"Synthesis reply did not match schema: {e}",
                                    collaborator="synthesis") from e

        summary = result.summary
        if not summary or not self.validator.check(summary):
            logger.warning("LLM synthesis summary failed conservative language check; using rules summary")
            summary = self._checked_summary(conservative_summary(findings))
        return result.model_copy(update={"summary": summary})

    def _checked_summary(self, summary: str) -> str:
        if self.validator.check(summary):
            return summary
        logger.error("Generated summary failed conservative language check")
        return PENDING_SUMMARY
