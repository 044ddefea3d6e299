"""
Collaborator interfaces for the answer pipeline.

The lifecycle manager only talks to these protocols. Default implementations
live in ``research_qa.llm`` (evidence/synthesis) and ``research_qa.data``
(persistence/library); tests substitute fakes.
"""

from typing import List, Optional, Protocol, Sequence, runtime_checkable

from research_qa.models import (
    Contradiction, ExtractionResult, Finding, Paper, QuestionStatus,
    QuestionVersion, ResearchQuestion, SynthesisResult,
)


@runtime_checkable
class EvidenceCollaborator(Protocol):
    async def extract(self, paper: Paper, question_text: str) -> ExtractionResult:
        """Extract one claim about the question from one paper."""
        ...


@runtime_checkable
class SynthesisCollaborator(Protocol):
    async def synthesize(self, findings: List[Finding], question_text: str) -> SynthesisResult:
        """Estimate advisory confidence and knowledge gaps for a finding set."""
        ...


@runtime_checkable
class TextValidator(Protocol):
    def check(self, text: str) -> bool:
        ...


@runtime_checkable
class PaperLibrary(Protocol):
    def list_papers(self) -> List[Paper]:
        ...

    def get_papers_by_ids(self, ids: Sequence[str]) -> List[Paper]:
        """Papers for the given ids, in input order; unknown ids are skipped."""
        ...


@runtime_checkable
class PersistenceCollaborator(Protocol):
    # questions
    def get_question(self, question_id: str) -> Optional[ResearchQuestion]: ...
    def put_question(self, question: ResearchQuestion) -> None: ...
    def delete_question(self, question_id: str) -> None: ...
    def list_questions(self, status: Optional[QuestionStatus] = None) -> List[ResearchQuestion]: ...

    # findings
    def get_finding(self, finding_id: str) -> Optional[Finding]: ...
    def put_finding(self, finding: Finding) -> None: ...
    def findings_for_question(self, question_id: str) -> List[Finding]: ...

    # contradictions
    def contradictions_for_findings(self, finding_ids: Sequence[str]) -> List[Contradiction]: ...

    # versions
    def versions_for_question(self, question_id: str) -> List[QuestionVersion]: ...
    def get_version(self, question_id: str, version_number: int) -> Optional[QuestionVersion]: ...

    # atomic bulk operations
    def save_answer(self, question: ResearchQuestion, findings: Sequence[Finding],
                    contradictions: Sequence[Contradiction]) -> None: ...

    def replace_answer(self, question: ResearchQuestion, findings: Sequence[Finding],
                       contradictions: Sequence[Contradiction],
                       version: QuestionVersion) -> None: ...
