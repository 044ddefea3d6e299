# research_qa/data/database.py
"""
Database models and the SQLAlchemy-backed persistence and paper library
"""

from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from sqlalchemy import (
    create_engine, Column, Integer, String, Float, Boolean, Text, JSON,
    ForeignKey, Index, UniqueConstraint, delete, func, select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
import structlog

from research_qa.exceptions import PersistenceError
from research_qa.models import (
    Contradiction, ContradictionView, DiscrepancyAnalysis, EvidenceSource, Finding,
    Paper, QuestionStatus, QuestionVersion, ResearchQuestion,
)
from research_qa.utils.datetime_safe import utc_now_iso

logger = structlog.get_logger()

Base = declarative_base()


class PaperRow(Base):
    """Library paper"""
    __tablename__ = "papers"

    id = Column(String(64), primary_key=True)
    title = Column(Text, nullable=False)
    abstract = Column(Text, default="")
    study_type = Column(String(40))
    publication_date = Column(String(40), default="")
    full_text_available = Column(Boolean, default=False)
    authors = Column(JSON)
    journal = Column(String(500))
    doi = Column(String(200))
    pubmed_id = Column(String(40))
    date_added = Column(String(40), default=utc_now_iso)

    __table_args__ = (
        Index("idx_papers_date_added", "date_added"),
    )


class QuestionRow(Base):
    """Research question"""
    __tablename__ = "questions"

    id = Column(String(64), primary_key=True)
    question_text = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=QuestionStatus.UNANSWERED.value)
    confidence = Column(Float, nullable=False, default=0.0)
    advisory_confidence = Column(Float)
    summary = Column(Text, default="")
    gaps = Column(JSON)
    paper_count = Column(Integer, default=0)
    papers_used = Column(JSON)
    current_version = Column(Integer, nullable=False, default=1)
    orphaned_notes = Column(JSON)
    date_created = Column(String(40))
    last_updated = Column(String(40))

    __table_args__ = (
        Index("idx_questions_status", "status"),
    )


class FindingRow(Base):
    """Finding with its evidence sources"""
    __tablename__ = "findings"

    id = Column(String(64), primary_key=True)
    question_id = Column(String(64), ForeignKey("questions.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=False)
    evidence = Column(JSON)
    consistency = Column(String(10), nullable=False)
    quality_assessment = Column(Text, default="")
    quantitative_result = Column(Text)
    limitations = Column(JSON)
    has_contradiction = Column(Boolean, default=False)
    user_notes = Column(Text)
    notes_last_updated = Column(String(40))
    date_created = Column(String(40))

    __table_args__ = (
        Index("idx_findings_question_id", "question_id"),
    )


class ContradictionRow(Base):
    """Contradiction between two findings"""
    __tablename__ = "contradictions"

    id = Column(String(64), primary_key=True)
    question_id = Column(String(64), ForeignKey("questions.id"))
    finding_id = Column(String(64), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    topic = Column(Text, nullable=False)
    majority_view = Column(JSON, nullable=False)
    minority_view = Column(JSON, nullable=False)
    severity = Column(String(10), nullable=False)
    methodological_differences = Column(JSON)
    possible_explanations = Column(JSON)
    conservative_interpretation = Column(Text, default="")
    analysis = Column(JSON)
    status = Column(String(20), nullable=False)
    date_detected = Column(String(40))

    __table_args__ = (
        Index("idx_contradictions_finding_id", "finding_id"),
        Index("idx_contradictions_question_id", "question_id"),
    )


class QuestionVersionRow(Base):
    """Append-only pre-refresh snapshot"""
    __tablename__ = "question_versions"

    id = Column(String(64), primary_key=True)
    question_id = Column(String(64), ForeignKey("questions.id"), nullable=False)
    version_number = Column(Integer, nullable=False)
    date_generated = Column(String(40))
    snapshot = Column(JSON, nullable=False)

    __table_args__ = (
        UniqueConstraint("question_id", "version_number", name="uq_question_version"),
        Index("idx_versions_question_id", "question_id"),
    )


# ---------------------------------------------------------------------------
# Row <-> model conversion
# ---------------------------------------------------------------------------

def _paper_row(p: Paper) -> PaperRow:
    return PaperRow(
        id=p.id, title=p.title, abstract=p.abstract, study_type=p.study_type,
        publication_date=p.publication_date, full_text_available=p.full_text_available,
        authors=list(p.authors), journal=p.journal, doi=p.doi, pubmed_id=p.pubmed_id,
    )


def _paper(row: PaperRow) -> Paper:
    return Paper(
        id=row.id, title=row.title, abstract=row.abstract or "", study_type=row.study_type,
        publication_date=row.publication_date or "",
        full_text_available=bool(row.full_text_available), authors=row.authors or [],
        journal=row.journal, doi=row.doi, pubmed_id=row.pubmed_id,
    )


def _question_row(q: ResearchQuestion) -> QuestionRow:
    return QuestionRow(
        id=q.id, question_text=q.question_text, status=q.status.value,
        confidence=q.confidence, advisory_confidence=q.advisory_confidence,
        summary=q.summary, gaps=list(q.gaps), paper_count=q.paper_count,
        papers_used=list(q.papers_used), current_version=q.current_version,
        orphaned_notes=[list(n) for n in q.orphaned_notes],
        date_created=q.date_created, last_updated=q.last_updated,
    )


def _question(row: QuestionRow, findings: List[Finding],
              contradictions: List[Contradiction]) -> ResearchQuestion:
    return ResearchQuestion(
        id=row.id, question_text=row.question_text, status=QuestionStatus(row.status),
        confidence=row.confidence, findings=findings, contradictions=contradictions,
        gaps=row.gaps or [], paper_count=row.paper_count or 0,
        papers_used=row.papers_used or [], current_version=row.current_version,
        orphaned_notes=[tuple(n) for n in (row.orphaned_notes or [])],
        advisory_confidence=row.advisory_confidence, summary=row.summary or "",
        date_created=row.date_created, last_updated=row.last_updated,
    )


def _finding_row(f: Finding, position: int) -> FindingRow:
    return FindingRow(
        id=f.id, question_id=f.question_id, position=position, description=f.description,
        evidence=[e.model_dump(mode="json") for e in f.evidence],
        consistency=f.consistency.value, quality_assessment=f.quality_assessment,
        quantitative_result=f.quantitative_result, limitations=list(f.limitations),
        has_contradiction=f.has_contradiction, user_notes=f.user_notes,
        notes_last_updated=f.notes_last_updated, date_created=f.date_created,
    )


def _finding(row: FindingRow) -> Finding:
    return Finding(
        id=row.id, question_id=row.question_id, description=row.description,
        evidence=[EvidenceSource(**e) for e in (row.evidence or [])],
        consistency=row.consistency, quality_assessment=row.quality_assessment or "",
        quantitative_result=row.quantitative_result, limitations=row.limitations or [],
        has_contradiction=bool(row.has_contradiction), user_notes=row.user_notes,
        notes_last_updated=row.notes_last_updated, date_created=row.date_created,
    )


def _contradiction_row(c: Contradiction, position: int) -> ContradictionRow:
    return ContradictionRow(
        id=c.id, question_id=c.question_id, finding_id=c.finding_id, position=position,
        topic=c.topic, majority_view=c.majority_view.model_dump(mode="json"),
        minority_view=c.minority_view.model_dump(mode="json"), severity=c.severity.value,
        methodological_differences=list(c.methodological_differences),
        possible_explanations=list(c.possible_explanations),
        conservative_interpretation=c.conservative_interpretation,
        analysis=c.analysis.model_dump(mode="json") if c.analysis else None,
        status=c.status.value, date_detected=c.date_detected,
    )


def _contradiction(row: ContradictionRow) -> Contradiction:
    return Contradiction(
        id=row.id, question_id=row.question_id, finding_id=row.finding_id, topic=row.topic,
        majority_view=ContradictionView(**row.majority_view),
        minority_view=ContradictionView(**row.minority_view),
        severity=row.severity, methodological_differences=row.methodological_differences or [],
        possible_explanations=row.possible_explanations or [],
        conservative_interpretation=row.conservative_interpretation or "",
        analysis=DiscrepancyAnalysis(**row.analysis) if row.analysis else None,
        status=row.status, date_detected=row.date_detected,
    )


def _version_row(v: QuestionVersion) -> QuestionVersionRow:
    return QuestionVersionRow(
        id=v.id, question_id=v.question_id, version_number=v.version_number,
        date_generated=v.date_generated, snapshot=v.model_dump(mode="json"),
    )


# ---------------------------------------------------------------------------
# Connection management
# ---------------------------------------------------------------------------

class DatabaseManager:
    """Database connection and session management"""

    def __init__(self, database_url: str, echo: bool = False):
        if not database_url:
            raise ValueError("Database URL not configured")
        self.database_url = database_url
        self.engine = self._create_engine(database_url, echo)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False,
                                         expire_on_commit=False)

    @classmethod
    def from_settings(cls, settings) -> "DatabaseManager":
        return cls(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

    @staticmethod
    def _create_engine(url: str, echo: bool):
        if url.startswith("sqlite"):
            kwargs = {"connect_args": {"check_same_thread": False}}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session sees an empty database
                kwargs["poolclass"] = StaticPool
            return create_engine(url, echo=echo, **kwargs)
        return create_engine(url, echo=echo, pool_pre_ping=True, pool_recycle=3600)

    def create_tables(self):
        """Create all tables"""
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create tables: {e}", operation="create_tables") from e
        logger.info("database_tables_ready", url=self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def session(self, operation: str = "session") -> Iterator[Session]:
        """Transactional scope: commit on success, roll back and wrap errors otherwise."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("database_operation_failed", operation=operation, error=str(e))
            raise PersistenceError(f"Database operation '{operation}' failed: {e}",
                                   operation=operation) from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Library
# ---------------------------------------------------------------------------

class SQLPaperLibrary:
    """Paper library backed by the ``papers`` table"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def list_papers(self) -> List[Paper]:
        with self.db.session("list_papers") as s:
            rows = s.execute(select(PaperRow).order_by(PaperRow.date_added, PaperRow.id)).scalars().all()
            return [_paper(r) for r in rows]

    def get_papers_by_ids(self, ids: Sequence[str]) -> List[Paper]:
        if not ids:
            return []
        with self.db.session("get_papers_by_ids") as s:
            rows = s.execute(select(PaperRow).where(PaperRow.id.in_(list(ids)))).scalars().all()
            by_id = {r.id: _paper(r) for r in rows}
        return [by_id[i] for i in ids if i in by_id]

    def add_paper(self, paper: Paper) -> str:
        with self.db.session("add_paper") as s:
            s.merge(_paper_row(paper))
        logger.info("paper_added", paper_id=paper.id, title=paper.title[:80])
        return paper.id

    def add_papers(self, papers: Sequence[Paper]) -> List[str]:
        with self.db.session("add_papers") as s:
            for p in papers:
                s.merge(_paper_row(p))
        logger.info("papers_added", count=len(papers))
        return [p.id for p in papers]

    def remove_paper(self, paper_id: str) -> None:
        with self.db.session("remove_paper") as s:
            s.execute(delete(PaperRow).where(PaperRow.id == paper_id))


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class SQLPersistence:
    """Questions, findings, contradictions and versions over SQLAlchemy"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _findings(s: Session, question_id: str) -> List[Finding]:
        rows = s.execute(
            select(FindingRow).where(FindingRow.question_id == question_id).order_by(FindingRow.position)
        ).scalars().all()
        return [_finding(r) for r in rows]

    @staticmethod
    def _contradictions(s: Session, finding_ids: Sequence[str]) -> List[Contradiction]:
        if not finding_ids:
            return []
        rows = s.execute(
            select(ContradictionRow)
            .where(ContradictionRow.finding_id.in_(list(finding_ids)))
            .order_by(ContradictionRow.position, ContradictionRow.id)
        ).scalars().all()
        return [_contradiction(r) for r in rows]

    def _assemble(self, s: Session, row: QuestionRow) -> ResearchQuestion:
        findings = self._findings(s, row.id)
        contradictions = self._contradictions(s, [f.id for f in findings])
        return _question(row, findings, contradictions)

    @staticmethod
    def _clear_answer(s: Session, question_id: str) -> None:
        old_ids = s.execute(
            select(FindingRow.id).where(FindingRow.question_id == question_id)
        ).scalars().all()
        if old_ids:
            s.execute(delete(ContradictionRow).where(ContradictionRow.finding_id.in_(old_ids)))
        s.execute(delete(ContradictionRow).where(ContradictionRow.question_id == question_id))
        s.execute(delete(FindingRow).where(FindingRow.question_id == question_id))

    @staticmethod
    def _insert_answer(s: Session, findings: Sequence[Finding],
                       contradictions: Sequence[Contradiction]) -> None:
        for i, f in enumerate(findings):
            s.add(_finding_row(f, i))
        for i, c in enumerate(contradictions):
            s.add(_contradiction_row(c, i))

    # -- questions ----------------------------------------------------------

    def get_question(self, question_id: str) -> Optional[ResearchQuestion]:
        with self.db.session("get_question") as s:
            row = s.get(QuestionRow, question_id)
            return self._assemble(s, row) if row is not None else None

    def put_question(self, question: ResearchQuestion) -> None:
        with self.db.session("put_question") as s:
            s.merge(_question_row(question))

    def delete_question(self, question_id: str) -> None:
        with self.db.session("delete_question") as s:
            self._clear_answer(s, question_id)
            s.execute(delete(QuestionVersionRow).where(QuestionVersionRow.question_id == question_id))
            s.execute(delete(QuestionRow).where(QuestionRow.id == question_id))
        logger.info("question_deleted", question_id=question_id)

    def list_questions(self, status: Optional[QuestionStatus] = None) -> List[ResearchQuestion]:
        with self.db.session("list_questions") as s:
            stmt = select(QuestionRow).order_by(QuestionRow.date_created, QuestionRow.id)
            if status is not None:
                stmt = stmt.where(QuestionRow.status == QuestionStatus(status).value)
            return [self._assemble(s, r) for r in s.execute(stmt).scalars().all()]

    # -- findings -----------------------------------------------------------

    def get_finding(self, finding_id: str) -> Optional[Finding]:
        with self.db.session("get_finding") as s:
            row = s.get(FindingRow, finding_id)
            return _finding(row) if row is not None else None

    def put_finding(self, finding: Finding) -> None:
        with self.db.session("put_finding") as s:
            existing = s.get(FindingRow, finding.id)
            if existing is not None:
                position = existing.position
            else:
                position = s.execute(
                    select(func.coalesce(func.max(FindingRow.position) + 1, 0))
                    .where(FindingRow.question_id == finding.question_id)
                ).scalar_one()
            s.merge(_finding_row(finding, position))

    def findings_for_question(self, question_id: str) -> List[Finding]:
        with self.db.session("findings_for_question") as s:
            return self._findings(s, question_id)

    # -- contradictions -----------------------------------------------------

    def contradictions_for_findings(self, finding_ids: Sequence[str]) -> List[Contradiction]:
        with self.db.session("contradictions_for_findings") as s:
            return self._contradictions(s, finding_ids)

    # -- versions -----------------------------------------------------------

    def versions_for_question(self, question_id: str) -> List[QuestionVersion]:
        with self.db.session("versions_for_question") as s:
            rows = s.execute(
                select(QuestionVersionRow)
                .where(QuestionVersionRow.question_id == question_id)
                .order_by(QuestionVersionRow.version_number)
            ).scalars().all()
            return [QuestionVersion(**r.snapshot) for r in rows]

    def get_version(self, question_id: str, version_number: int) -> Optional[QuestionVersion]:
        with self.db.session("get_version") as s:
            row = s.execute(
                select(QuestionVersionRow).where(
                    QuestionVersionRow.question_id == question_id,
                    QuestionVersionRow.version_number == version_number,
                )
            ).scalars().first()
            return QuestionVersion(**row.snapshot) if row is not None else None

    # -- atomic bulk operations ---------------------------------------------

    def save_answer(self, question: ResearchQuestion, findings: Sequence[Finding],
                    contradictions: Sequence[Contradiction]) -> None:
        """Persist a first answer: question, findings and contradictions in one transaction."""
        with self.db.session("save_answer") as s:
            s.merge(_question_row(question))
            s.flush()
            self._clear_answer(s, question.id)
            self._insert_answer(s, findings, contradictions)
        logger.info("answer_saved", question_id=question.id, findings=len(findings),
                    contradictions=len(contradictions))

    def replace_answer(self, question: ResearchQuestion, findings: Sequence[Finding],
                       contradictions: Sequence[Contradiction],
                       version: QuestionVersion) -> None:
        """
        Swap a question's answer in one transaction: append the pre-refresh
        version, delete old findings/contradictions, insert the new set and
        save the question with its bumped version number.
        """
        with self.db.session("replace_answer") as s:
            s.add(_version_row(version))
            self._clear_answer(s, question.id)
            s.flush()
            self._insert_answer(s, findings, contradictions)
            s.merge(_question_row(question))
        logger.info("answer_replaced", question_id=question.id, version=question.current_version,
                    findings=len(findings), contradictions=len(contradictions))
