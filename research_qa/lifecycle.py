"""
Answer lifecycle: answer a new question, refresh an existing one.

Pipeline per call: candidate papers -> evidence fan-out -> aggregation ->
contradiction detection -> advisory synthesis -> status -> one persistence
transaction. Nothing is written until the whole pipeline has completed, so a
cancelled call leaves storage untouched.
"""

import asyncio
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from research_qa.aggregation import FindingAggregator, PrefixGroupingStrategy
from research_qa.collaborators import (
    EvidenceCollaborator, PaperLibrary, PersistenceCollaborator,
    SynthesisCollaborator, TextValidator,
)
from research_qa.config.settings import Settings, get_settings
from research_qa.contradictions import ContradictionDetector
from research_qa.exceptions import InvalidQuestionError, QuestionNotFoundError, ResearchQAError
from research_qa.models import (
    Contradiction, EvaluationMode, ExtractionResult, Finding, Paper,
    QuestionVersion, ResearchQuestion, SynthesisResult,
)
from research_qa.selection import select_candidates
from research_qa.status import calculate_status, papers_used
from research_qa.utils.datetime_safe import utc_now_iso
from research_qa.validation.language import LanguageValidator

logger = structlog.get_logger()


class AnswerLifecycleManager:
    """Orchestrates answer and refresh over injected collaborators"""

    def __init__(self, library: PaperLibrary, persistence: PersistenceCollaborator,
                 evidence: EvidenceCollaborator, synthesis: SynthesisCollaborator,
                 validator: Optional[TextValidator] = None,
                 settings: Optional[Settings] = None,
                 aggregator: Optional[FindingAggregator] = None,
                 detector: Optional[ContradictionDetector] = None,
                 clock: Callable[[], str] = utc_now_iso):
        self.settings = settings or get_settings()
        self.library = library
        self.persistence = persistence
        self.evidence = evidence
        self.synthesis = synthesis
        self.validator = validator or LanguageValidator.from_settings(self.settings)
        self.aggregator = aggregator or FindingAggregator(
            self.validator,
            strategy=PrefixGroupingStrategy(self.settings.GROUPING_PREFIX_LENGTH),
            high_confidence_threshold=self.settings.HIGH_CONFIDENCE_THRESHOLD,
        )
        self.detector = detector or ContradictionDetector(
            library, similarity_threshold=self.settings.TOPIC_SIMILARITY_THRESHOLD,
            guardrails_path=self.settings.GUARDRAILS_PATH,
        )
        self.clock = clock

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def answer(self, question_text: str) -> ResearchQuestion:
        """Create a question and answer it from keyword-matched library papers."""
        text = (question_text or "").strip()
        if not text:
            raise InvalidQuestionError("Question text must not be empty")

        now = self.clock()
        question = ResearchQuestion(question_text=text, date_created=now, last_updated=now)
        log = logger.bind(question_id=question.id, operation="answer")

        candidates = select_candidates(text, self.library.list_papers(), self.settings.GUARDRAILS_PATH)
        if not candidates:
            log.info("no_candidate_papers")
            self.persistence.save_answer(question, [], [])
            return question

        findings, contradictions, synthesis = await self._evaluate(question.id, text, candidates, now)
        self._apply(question, candidates, findings, contradictions, synthesis,
                    EvaluationMode.INITIAL, now)

        self.persistence.save_answer(question, findings, contradictions)
        log.info("question_answered", status=question.status.value, confidence=question.confidence,
                 findings=len(findings), contradictions=len(contradictions),
                 candidates=len(candidates))
        return question

    async def refresh(self, question_id: str) -> ResearchQuestion:
        """
        Re-evaluate a question against the entire library.

        The prior answer is snapshotted as a QuestionVersion, findings and
        contradictions are regenerated from scratch, user notes are carried
        over by exact description match and unmatched notes are kept as
        orphaned notes.
        """
        question = self.persistence.get_question(question_id)
        if question is None:
            raise QuestionNotFoundError(question_id)

        now = self.clock()
        log = logger.bind(question_id=question_id, operation="refresh",
                          version=question.current_version)

        note_map = self.note_map(question.findings)
        version = QuestionVersion.snapshot(question, date_generated=now)

        papers = self.library.list_papers()
        findings, contradictions, synthesis = await self._evaluate(
            question.id, question.question_text, papers, now, reconcile=note_map
        )

        orphaned = list(question.orphaned_notes) + [(desc, note) for desc, note in note_map.items()]
        question.orphaned_notes = orphaned
        question.current_version += 1
        self._apply(question, papers, findings, contradictions, synthesis,
                    EvaluationMode.REFRESH, now)

        self.persistence.replace_answer(question, findings, contradictions, version)
        log.info("question_refreshed", status=question.status.value, confidence=question.confidence,
                 findings=len(findings), contradictions=len(contradictions),
                 new_version=question.current_version, orphaned_notes=len(question.orphaned_notes))
        return question

    async def answer_many(self, question_texts: Sequence[str]) -> List[ResearchQuestion]:
        """Answer questions one after another; a failing question is logged and skipped."""
        answered = []
        for text in question_texts:
            try:
                answered.append(await self.answer(text))
            except ResearchQAError as e:
                logger.error("batch_answer_failed", question_text=text[:100], error=str(e))
        return answered

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    @staticmethod
    def note_map(findings: Sequence[Finding]) -> Dict[str, str]:
        """{description: user_notes} for findings carrying notes."""
        notes: Dict[str, str] = {}
        for f in findings:
            if f.user_notes:
                notes.setdefault(f.description, f.user_notes)
        return notes

    @staticmethod
    def reconcile_notes(findings: Sequence[Finding], note_map: Dict[str, str], now: str) -> None:
        """Reattach notes whose description matches exactly; matched keys are removed from note_map."""
        for f in findings:
            note = note_map.pop(f.description, None)
            if note is not None:
                f.user_notes = note
                f.notes_last_updated = now

    async def _evaluate(self, question_id: str, question_text: str, papers: Sequence[Paper],
                        now: str, reconcile: Optional[Dict[str, str]] = None
                        ) -> Tuple[List[Finding], List[Contradiction], SynthesisResult]:
        results = await self._collect_evidence(papers, question_text)
        findings = self.aggregator.aggregate(question_id, zip(papers, results), now=now)
        if reconcile is not None:
            self.reconcile_notes(findings, reconcile, now)
        contradictions = self.detector.detect(findings, question_id=question_id, now=now)
        synthesis = await self._synthesize(findings, question_text)
        return findings, contradictions, synthesis

    async def _collect_evidence(self, papers: Sequence[Paper],
                                question_text: str) -> List[ExtractionResult]:
        """One concurrent extraction per paper; results in paper order."""
        semaphore = asyncio.Semaphore(self.settings.EVIDENCE_CONCURRENCY)
        tasks = [self._extract_one(semaphore, paper, question_text) for paper in papers]
        results = await asyncio.gather(*tasks)
        relevant = sum(1 for r in results if r.relevant)
        logger.info("evidence_collected", papers=len(papers), relevant=relevant)
        return list(results)

    async def _extract_one(self, semaphore: asyncio.Semaphore, paper: Paper,
                           question_text: str) -> ExtractionResult:
        async with semaphore:
            try:
                result = await asyncio.wait_for(
                    self.evidence.extract(paper, question_text),
                    timeout=self.settings.EVIDENCE_TIMEOUT_SEC,
                )
            except asyncio.TimeoutError:
                logger.warning("extraction_timeout", paper_id=paper.id,
                               timeout=self.settings.EVIDENCE_TIMEOUT_SEC)
                return ExtractionResult.not_relevant("Extraction timed out")
            except Exception as e:
                logger.warning("extraction_failed", paper_id=paper.id, error=str(e),
                               error_type=type(e).__name__)
                return ExtractionResult.not_relevant(f"Extraction failed: {e}")
        if result is None:
            return ExtractionResult.not_relevant("No extraction result")
        return result

    async def _synthesize(self, findings: List[Finding], question_text: str) -> SynthesisResult:
        try:
            return await asyncio.wait_for(
                self.synthesis.synthesize(findings, question_text),
                timeout=self.settings.SYNTHESIS_TIMEOUT_SEC,
            )
        except asyncio.TimeoutError:
            logger.warning("synthesis_timeout", timeout=self.settings.SYNTHESIS_TIMEOUT_SEC)
        except Exception as e:
            logger.warning("synthesis_failed", error=str(e), error_type=type(e).__name__)
        return SynthesisResult.neutral()

    def _apply(self, question: ResearchQuestion, papers: Sequence[Paper],
               findings: List[Finding], contradictions: List[Contradiction],
               synthesis: SynthesisResult, mode: EvaluationMode, now: str) -> None:
        used = papers_used(findings)
        result = calculate_status(
            finding_count=len(findings),
            papers_used_count=len(used),
            contradiction_count=len(contradictions),
            consistencies=[f.consistency for f in findings],
            mode=mode,
        )
        question.findings = findings
        question.contradictions = contradictions
        question.papers_used = used
        question.paper_count = len(papers)
        question.status = result.status
        question.confidence = result.confidence
        question.gaps = list(synthesis.gaps)
        question.advisory_confidence = synthesis.confidence
        question.summary = synthesis.summary
        question.last_updated = now
