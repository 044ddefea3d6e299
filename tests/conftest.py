"""
Shared fixtures and in-memory fakes for the answer pipeline tests
"""

from typing import Dict, List, Optional, Sequence, Union

import pytest

from research_qa.config.settings import Settings
from research_qa.data.database import DatabaseManager
from research_qa.models import (
    Contradiction, ExtractionResult, Finding, Paper, QuestionStatus,
    QuestionVersion, ResearchQuestion, SynthesisResult,
)
from research_qa.validation.language import LanguageValidator

FIXED_NOW = "2024-01-15T12:00:00Z"


def make_paper(pid: str, title: str, abstract: str = "", study_type: Optional[str] = "observational",
               publication_date: str = "2020-01-01", full_text_available: bool = False) -> Paper:
    return Paper(id=pid, title=title, abstract=abstract, study_type=study_type,
                 publication_date=publication_date, full_text_available=full_text_available)


def claim(finding: str, evidence: Optional[str] = None, confidence: float = 0.8,
          study_type: Optional[str] = "observational", sample_size: Optional[int] = None,
          limitations: Optional[List[str]] = None) -> ExtractionResult:
    return ExtractionResult(relevant=True, finding=finding, evidence=evidence,
                            study_type=study_type, sample_size=sample_size,
                            limitations=limitations or [], confidence=confidence)


class FakeLibrary:
    """PaperLibrary over a mutable list"""

    def __init__(self, papers: Sequence[Paper] = ()):
        self.papers: List[Paper] = list(papers)

    def list_papers(self) -> List[Paper]:
        return list(self.papers)

    def get_papers_by_ids(self, ids: Sequence[str]) -> List[Paper]:
        by_id = {p.id: p for p in self.papers}
        return [by_id[i] for i in ids if i in by_id]


class ScriptedEvidence:
    """EvidenceCollaborator returning scripted results (or raising) per paper id"""

    def __init__(self, script: Optional[Dict[str, Union[ExtractionResult, Exception]]] = None):
        self.script = dict(script or {})
        self.calls: List[str] = []

    async def extract(self, paper: Paper, question_text: str) -> ExtractionResult:
        self.calls.append(paper.id)
        outcome = self.script.get(paper.id)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return ExtractionResult.not_relevant("not scripted")
        return outcome


class StaticSynthesis:
    """SynthesisCollaborator returning a fixed result"""

    def __init__(self, result: Optional[SynthesisResult] = None, error: Optional[Exception] = None):
        self.result = result or SynthesisResult(confidence=0.6, gaps=["No randomized controlled trials found"],
                                                summary="Based on 3 papers, research suggests an effect.")
        self.error = error
        self.calls = 0

    async def synthesize(self, findings: List[Finding], question_text: str) -> SynthesisResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class InMemoryPersistence:
    """PersistenceCollaborator over dicts; every read and write copies"""

    def __init__(self):
        self.questions: Dict[str, ResearchQuestion] = {}
        self.findings: Dict[str, Finding] = {}
        self.contradictions: List[Contradiction] = []
        self.versions: List[QuestionVersion] = []
        self.transactions = 0

    @staticmethod
    def _copy(model):
        return model.model_copy(deep=True)

    def get_question(self, question_id: str) -> Optional[ResearchQuestion]:
        q = self.questions.get(question_id)
        if q is None:
            return None
        q = self._copy(q)
        q.findings = self.findings_for_question(question_id)
        q.contradictions = self.contradictions_for_findings([f.id for f in q.findings])
        return q

    def put_question(self, question: ResearchQuestion) -> None:
        stored = self._copy(question)
        stored.findings, stored.contradictions = [], []
        self.questions[question.id] = stored

    def delete_question(self, question_id: str) -> None:
        ids = {f.id for f in self.findings_for_question(question_id)}
        self.contradictions = [c for c in self.contradictions if c.finding_id not in ids]
        self.findings = {k: f for k, f in self.findings.items() if f.question_id != question_id}
        self.versions = [v for v in self.versions if v.question_id != question_id]
        self.questions.pop(question_id, None)

    def list_questions(self, status: Optional[QuestionStatus] = None) -> List[ResearchQuestion]:
        out = [self.get_question(qid) for qid in self.questions]
        return [q for q in out if status is None or q.status == status]

    def get_finding(self, finding_id: str) -> Optional[Finding]:
        f = self.findings.get(finding_id)
        return self._copy(f) if f is not None else None

    def put_finding(self, finding: Finding) -> None:
        self.findings[finding.id] = self._copy(finding)

    def findings_for_question(self, question_id: str) -> List[Finding]:
        return [self._copy(f) for f in self.findings.values() if f.question_id == question_id]

    def contradictions_for_findings(self, finding_ids: Sequence[str]) -> List[Contradiction]:
        ids = set(finding_ids)
        return [self._copy(c) for c in self.contradictions if c.finding_id in ids]

    def versions_for_question(self, question_id: str) -> List[QuestionVersion]:
        return sorted((v for v in self.versions if v.question_id == question_id),
                      key=lambda v: v.version_number)

    def get_version(self, question_id: str, version_number: int) -> Optional[QuestionVersion]:
        for v in self.versions:
            if v.question_id == question_id and v.version_number == version_number:
                return v
        return None

    def _write(self, question, findings, contradictions) -> None:
        self.put_question(question)
        for f in findings:
            self.put_finding(f)
        self.contradictions.extend(self._copy(c) for c in contradictions)

    def save_answer(self, question, findings, contradictions) -> None:
        self.transactions += 1
        self._write(question, findings, contradictions)

    def replace_answer(self, question, findings, contradictions, version) -> None:
        self.transactions += 1
        old = {f.id for f in self.findings_for_question(question.id)}
        self.contradictions = [c for c in self.contradictions
                               if c.finding_id not in old and c.question_id != question.id]
        self.findings = {k: f for k, f in self.findings.items() if f.question_id != question.id}
        self.versions.append(version)
        self._write(question, findings, contradictions)


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file"""
    return Settings(_env_file=None, LLM_PROVIDER="disabled", DATABASE_URL="sqlite://",
                    EVIDENCE_TIMEOUT_SEC=1.0, SYNTHESIS_TIMEOUT_SEC=1.0)


@pytest.fixture
def validator():
    return LanguageValidator()


@pytest.fixture
def db():
    manager = DatabaseManager("sqlite://")
    manager.create_tables()
    yield manager
    manager.close()


@pytest.fixture
def atp_papers():
    """Two papers reporting increased ATP, one reporting decreased ATP"""
    return [
        make_paper("p1", "Mitochondrial ATP production in ME/CFS", "Cohort study of energy metabolism"),
        make_paper("p2", "Energy metabolism and mitochondrial function", "Observational mitochondrial study"),
        make_paper("p3", "Reduced mitochondrial output in patients", "Small mitochondrial cohort"),
    ]


@pytest.fixture
def atp_script():
    up = "Studies found mitochondrial ATP production increased in patients"
    down = "Studies found mitochondrial ATP production decreased in patients"
    return {
        "p1": claim(up, evidence="ATP increased 20%", confidence=0.8, sample_size=40),
        "p2": claim(up, evidence="ATP increased 12%", confidence=0.75, sample_size=55),
        "p3": claim(down, evidence="ATP decreased 15%", confidence=0.7, sample_size=20),
    }


@pytest.fixture
def custom_guardrails(tmp_path):
    """Rules file replacing every default list"""
    path = tmp_path / "guardrails.yml"
    path.write_text(
        "language:\n"
        "  denylist: [banned]\n"
        "contradiction:\n"
        "  antonym_pairs:\n"
        "    - [up, down]\n"
        "selection:\n"
        "  stop_words: [levels]\n"
    )
    return str(path)


@pytest.fixture(autouse=True)
def _reset_logging():
    """Undo init_logging after each test so structlog never writes to a closed capture stream"""
    import logging

    import structlog

    yield
    structlog.reset_defaults()
    logging.root.handlers.clear()
