"""
Question service: read access, user notes, history and audit over persistence.
"""

from typing import List, Optional

import structlog

from research_qa.collaborators import PersistenceCollaborator
from research_qa.exceptions import FindingNotFoundError, QuestionNotFoundError
from research_qa.models import (
    Finding, Paper, QuestionStatus, QuestionVersion, ResearchQuestion, StatusResult,
)
from research_qa.selection import extract_keywords, matches
from research_qa.status import status_for_question
from research_qa.utils.datetime_safe import utc_now_iso

logger = structlog.get_logger()


class QuestionService:
    def __init__(self, persistence: PersistenceCollaborator, guardrails_path: Optional[str] = None):
        self.persistence = persistence
        self.guardrails_path = guardrails_path

    def get_question(self, question_id: str) -> ResearchQuestion:
        question = self.persistence.get_question(question_id)
        if question is None:
            raise QuestionNotFoundError(question_id)
        return question

    def list_questions(self) -> List[ResearchQuestion]:
        return self.persistence.list_questions()

    def questions_by_status(self, status: QuestionStatus) -> List[ResearchQuestion]:
        return self.persistence.list_questions(status=QuestionStatus(status))

    def search_questions(self, text: str) -> List[ResearchQuestion]:
        """Case-insensitive substring search over question text."""
        needle = (text or "").strip().lower()
        if not needle:
            return []
        return [q for q in self.persistence.list_questions() if needle in q.question_text.lower()]

    def delete_question(self, question_id: str) -> None:
        """Delete a question with its findings, contradictions and versions."""
        self.get_question(question_id)
        self.persistence.delete_question(question_id)

    def update_finding_notes(self, finding_id: str, notes: Optional[str]) -> Finding:
        """
        Set or clear the user notes on a finding.

        Notes are the only field a user may edit; everything else on a finding
        is regenerated by refresh.
        """
        finding = self.persistence.get_finding(finding_id)
        if finding is None:
            raise FindingNotFoundError(finding_id)
        cleaned = notes.strip() if notes else None
        finding.user_notes = cleaned or None
        finding.notes_last_updated = utc_now_iso()
        self.persistence.put_finding(finding)
        logger.info("finding_notes_updated", finding_id=finding_id, cleared=finding.user_notes is None)
        return finding

    def get_versions(self, question_id: str) -> List[QuestionVersion]:
        self.get_question(question_id)
        return self.persistence.versions_for_question(question_id)

    def get_version(self, question_id: str, version_number: int) -> Optional[QuestionVersion]:
        return self.persistence.get_version(question_id, version_number)

    def find_relevant_questions(self, paper: Paper) -> List[ResearchQuestion]:
        """Questions a newly added paper may bear on (any keyword in its title/abstract)."""
        return [
            q for q in self.persistence.list_questions()
            if matches(paper, extract_keywords(q.question_text, self.guardrails_path))
        ]

    def audit_status(self, question_id: str) -> StatusResult:
        """
        Recompute status and confidence from persisted findings and
        contradictions and compare them with the stored values.
        """
        question = self.get_question(question_id)
        result = status_for_question(question)
        if result.status != question.status or abs(result.confidence - question.confidence) > 1e-9:
            logger.warning("status_audit_mismatch", question_id=question_id,
                           stored_status=question.status.value, stored_confidence=question.confidence,
                           derived_status=result.status.value, derived_confidence=result.confidence)
        return result
