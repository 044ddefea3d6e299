from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List, Tuple
from enum import Enum

from research_qa.utils.datetime_safe import utc_now_iso
from research_qa.utils.ids import new_id


class QuestionStatus(str, Enum):
    """How far a research question has been answered"""
    UNANSWERED = "unanswered"
    PARTIAL = "partial"
    ANSWERED = "answered"


class Consistency(str, Enum):
    """Agreement across the papers behind one finding"""
    HIGH = "high"      # All papers agree
    MEDIUM = "medium"  # Most papers agree, some variation
    LOW = "low"        # Significant disagreement


class ContradictionSeverity(str, Enum):
    MAJOR = "major"
    MINOR = "minor"


class ContradictionStatus(str, Enum):
    UNRESOLVED = "unresolved"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class StudyType(str, Enum):
    """Study type classification for research papers"""
    CLINICAL_TRIAL = "clinical_trial"
    OBSERVATIONAL = "observational"
    REVIEW = "review"
    META_ANALYSIS = "meta_analysis"
    CASE_STUDY = "case_study"
    LABORATORY = "laboratory"
    OTHER = "other"

    @classmethod
    def coerce(cls, value: Optional[str]) -> str:
        """Map free-form study type text onto a known value, defaulting to OTHER."""
        if not value:
            return cls.OTHER.value
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
        for member in cls:
            if member.value == normalized:
                return member.value
        return cls.OTHER.value


class EvaluationMode(str, Enum):
    """Whether status is derived for a first answer or a refresh"""
    INITIAL = "initial"
    REFRESH = "refresh"


# ---------------------------------------------------------------------------
# Library and collaborator payloads
# ---------------------------------------------------------------------------

class Paper(BaseModel):
    """A paper in the personal library (read-only to this package)"""
    id: str = Field(default_factory=new_id)
    title: str
    abstract: str = ""
    study_type: Optional[str] = None
    publication_date: str = ""
    full_text_available: bool = False
    authors: List[str] = Field(default_factory=list)
    journal: Optional[str] = None
    doi: Optional[str] = None
    pubmed_id: Optional[str] = None

    @property
    def search_text(self) -> str:
        return f"{self.title} {self.abstract}".lower()


class ExtractionResult(BaseModel):
    """One paper's claim about one question, as returned by the evidence collaborator"""
    relevant: bool = False
    finding: Optional[str] = None
    evidence: Optional[str] = None
    study_type: Optional[str] = None
    sample_size: Optional[int] = Field(default=None, ge=0)
    limitations: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0, le=1)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        if v is None:
            return 0.0
        return min(1.0, max(0.0, float(v)))

    @classmethod
    def not_relevant(cls, reason: str = None) -> "ExtractionResult":
        return cls(relevant=False, limitations=[reason] if reason else [], confidence=0.0)

    @property
    def usable(self) -> bool:
        return bool(self.relevant and self.finding and self.finding.strip())


class SynthesisResult(BaseModel):
    """Advisory output of the synthesis collaborator"""
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    gaps: List[str] = Field(default_factory=list)
    summary: str = ""
    limitations: List[str] = Field(default_factory=list)

    @classmethod
    def neutral(cls) -> "SynthesisResult":
        return cls(confidence=None, gaps=[], summary="", limitations=[])


# ---------------------------------------------------------------------------
# Findings and evidence
# ---------------------------------------------------------------------------

class EvidenceSource(BaseModel):
    """One paper's contribution to a finding. Never edited once created."""
    model_config = ConfigDict(frozen=True)

    paper_id: str
    paper_title: str
    excerpt: str = ""
    study_type: str = StudyType.OTHER.value
    sample_size: Optional[int] = None
    confidence: float = Field(ge=0, le=1)
    date_added: str = Field(default_factory=utc_now_iso)


class Finding(BaseModel):
    id: str = Field(default_factory=new_id)
    question_id: str
    description: str
    evidence: List[EvidenceSource] = Field(default_factory=list)

    consistency: Consistency = Consistency.HIGH
    quality_assessment: str = ""
    quantitative_result: Optional[str] = None
    limitations: List[str] = Field(default_factory=list)

    has_contradiction: bool = False

    # The only human-writable fields
    user_notes: Optional[str] = None
    notes_last_updated: Optional[str] = None

    date_created: str = Field(default_factory=utc_now_iso)

    @property
    def supporting_papers(self) -> List[str]:
        return [e.paper_id for e in self.evidence]

    @property
    def study_types(self) -> List[str]:
        return [e.study_type for e in self.evidence]

    @property
    def sample_sizes(self) -> List[int]:
        return [e.sample_size for e in self.evidence if e.sample_size is not None]

    @property
    def paper_count(self) -> int:
        return len(set(self.supporting_papers))

    @property
    def mean_confidence(self) -> float:
        if not self.evidence:
            return 0.0
        return sum(e.confidence for e in self.evidence) / len(self.evidence)


# ---------------------------------------------------------------------------
# Contradictions
# ---------------------------------------------------------------------------

class ContradictionView(BaseModel):
    """One side of a contradiction"""
    description: str
    paper_ids: List[str] = Field(default_factory=list)
    evidence: str = ""
    paper_count: int = Field(ge=0)
    finding_id: Optional[str] = None


class DiscrepancyAnalysis(BaseModel):
    methodological_differences: List[str] = Field(default_factory=list)
    quality_comparison: str = ""
    timing_differences: List[str] = Field(default_factory=list)
    population_differences: List[str] = Field(default_factory=list)
    possible_explanations: List[str] = Field(default_factory=list)


class Contradiction(BaseModel):
    id: str = Field(default_factory=new_id)
    question_id: Optional[str] = None
    finding_id: str
    topic: str
    majority_view: ContradictionView
    minority_view: ContradictionView
    severity: ContradictionSeverity = ContradictionSeverity.MINOR
    methodological_differences: List[str] = Field(default_factory=list)
    possible_explanations: List[str] = Field(default_factory=list)
    conservative_interpretation: str = ""
    analysis: Optional[DiscrepancyAnalysis] = None
    status: ContradictionStatus = ContradictionStatus.UNRESOLVED
    date_detected: str = Field(default_factory=utc_now_iso)

    @model_validator(mode="after")
    def majority_outweighs_minority(self):
        if self.majority_view.paper_count < self.minority_view.paper_count:
            raise ValueError(
                f"majority view has fewer papers ({self.majority_view.paper_count}) "
                f"than minority view ({self.minority_view.paper_count})"
            )
        return self


# ---------------------------------------------------------------------------
# Questions and history
# ---------------------------------------------------------------------------

class ResearchQuestion(BaseModel):
    id: str = Field(default_factory=new_id)
    question_text: str
    status: QuestionStatus = QuestionStatus.UNANSWERED
    confidence: float = Field(default=0.0, ge=0, le=1)
    findings: List[Finding] = Field(default_factory=list)
    contradictions: List[Contradiction] = Field(default_factory=list)
    gaps: List[str] = Field(default_factory=list)
    paper_count: int = 0
    papers_used: List[str] = Field(default_factory=list)
    current_version: int = Field(default=1, ge=1)
    orphaned_notes: List[Tuple[str, str]] = Field(default_factory=list)

    # Advisory synthesis output; never feeds status/confidence
    advisory_confidence: Optional[float] = Field(default=None, ge=0, le=1)
    summary: str = ""

    date_created: str = Field(default_factory=utc_now_iso)
    last_updated: str = Field(default_factory=utc_now_iso)

    @property
    def evaluation_mode(self) -> EvaluationMode:
        return EvaluationMode.REFRESH if self.current_version > 1 else EvaluationMode.INITIAL


class QuestionVersion(BaseModel):
    """Immutable snapshot of a question's answer taken before a refresh"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    question_id: str
    version_number: int = Field(ge=1)
    date_generated: str = Field(default_factory=utc_now_iso)
    findings: List[Finding] = Field(default_factory=list)
    contradictions: List[Contradiction] = Field(default_factory=list)
    paper_count: int = 0
    confidence: float = Field(default=0.0, ge=0, le=1)
    status: QuestionStatus = QuestionStatus.UNANSWERED
    papers_used: List[str] = Field(default_factory=list)
    gaps: List[str] = Field(default_factory=list)

    @classmethod
    def snapshot(cls, question: ResearchQuestion, date_generated: str = None) -> "QuestionVersion":
        """Deep-copy the question's current answer into a version row."""
        return cls(
            question_id=question.id,
            version_number=question.current_version,
            date_generated=date_generated or utc_now_iso(),
            findings=[f.model_copy(deep=True) for f in question.findings],
            contradictions=[c.model_copy(deep=True) for c in question.contradictions],
            paper_count=question.paper_count,
            confidence=question.confidence,
            status=question.status,
            papers_used=list(question.papers_used),
            gaps=list(question.gaps),
        )


class StatusResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: QuestionStatus
    confidence: float = Field(ge=0, le=1)
