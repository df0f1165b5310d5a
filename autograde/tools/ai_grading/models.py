"""Pydantic models for the submission-to-result grading pipeline."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from autograde.libs.gateway_client import Quality


class ActivityKind(str, Enum):
    """LMS activity types that can produce gradable submissions."""
    ASSIGN = "assign"
    QUIZ = "quiz"


class ResultStatus(str, Enum):
    """Review workflow state of a stored AI grading result."""
    PENDING = "pending"
    DRAFT = "draft"
    RELEASED = "released"
    REJECTED = "rejected"
    FAILED = "failed"


class Level(BaseModel):
    """One achievement tier within a rubric criterion."""
    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Level id in the source rubric definition")
    label: str = Field(description="Short display label")
    description: str = Field(default="", description="Free-text description of the level")
    score: float = Field(description="Points awarded at this level")


class Criterion(BaseModel):
    """One rubric row."""
    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Criterion id in the source rubric definition")
    name: str = Field(description="Human-readable criterion name")
    normalized: str = Field(description="Lower-cased, punctuation-stripped name used for matching")
    levels: List[Level] = Field(default_factory=list)
    max_score: float = Field(ge=0, description="Highest level score")


class RubricSnapshot(BaseModel):
    """Canonical rubric as it stood when a submission was queued for grading."""
    model_config = ConfigDict(frozen=True)

    module_name: str
    instance_id: int
    cm_id: Optional[int] = None
    definition_id: int
    method: str = Field(description="Active grading method: rubric or rubric_ranges")
    name: str = ""
    version: int = 0
    criteria: Dict[int, Criterion] = Field(description="Criteria keyed by id, in rubric order")
    max_score: float = Field(description="Sum of per-criterion max scores")
    hash: str = Field(description="SHA-1 digest of the criteria, used to detect rubric drift")


class AICriterionScore(BaseModel):
    """A per-criterion entry exactly as the model returned it."""
    model_config = ConfigDict(frozen=True)

    name: str = ""
    score: float = 0.0
    feedback: str = ""


class AIResponse(BaseModel):
    """Decoded grading payload for one submission."""
    model_config = ConfigDict(frozen=True)

    score: float = Field(default=0.0, description="Self-reported total; 0 when absent")
    max_score: Optional[float] = None
    reasoning: str = ""
    confidence: Optional[float] = None
    criteria: List[AICriterionScore] = Field(default_factory=list)


class MappedCriterion(BaseModel):
    """An AI score reconciled onto a rubric criterion."""
    model_config = ConfigDict(frozen=True)

    criterionid: int
    name: str
    score: float
    max_score: float
    feedback: str = ""


class MappedResult(BaseModel):
    """Result of mapping an AIResponse onto a RubricSnapshot."""
    model_config = ConfigDict(frozen=True)

    criteria: List[MappedCriterion] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    score: float = 0.0
    max_score: float = 0.0
    calculated_score: float = 0.0


class SimilarityAnalysis(BaseModel):
    """Alignment between a reference answer and a student answer."""
    model_config = ConfigDict(frozen=True)

    method: str = Field(description="semantic or overlap")
    key_terms_count: int = 0
    student_terms_count: Optional[int] = None
    matched_terms_count: int = 0
    partial_terms_count: int = 0
    union_terms_count: Optional[int] = None
    matched_terms: List[str] = Field(default_factory=list)
    partial_terms: List[str] = Field(default_factory=list)
    missing_terms: List[str] = Field(default_factory=list)
    coverage_percent: Optional[float] = None
    jaccard_percent: Optional[float] = None
    final_percent: float = Field(ge=0, le=100)
    similarity_breakdown: Optional[Dict[str, int]] = None
    weights: Optional[Dict[str, float]] = None
    reasoning: str = ""


class ActivitySettings(BaseModel):
    """Per-activity AI grading settings."""
    enabled: bool = False
    quality: Quality = Quality.BALANCED
    custominstructions: str = ""
    autorelease: bool = False
    rubricid: Optional[int] = None


class SubmittedFile(BaseModel):
    """A file the extractor looked at, with the reason it was not used if any."""
    name: str
    error: Optional[str] = None


class ExtractedContent(BaseModel):
    """Plain-text view of a submission."""
    text: str = ""
    files: List[SubmittedFile] = Field(default_factory=list)


class QueueItem(BaseModel):
    """A unit of grading work handed to the durable queue."""
    id: Optional[int] = None
    userid: int
    courseid: Optional[int] = None
    cmid: Optional[int] = None
    event_name: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: ResultStatus = ResultStatus.PENDING
    attempts: int = 0
    timecreated: datetime = Field(default_factory=datetime.now)


class ResultRecord(BaseModel):
    """A persisted AI grading result awaiting (or past) teacher review."""
    id: Optional[int] = None
    queueid: Optional[int] = None
    userid: int
    modulename: ActivityKind
    instanceid: int
    status: ResultStatus = ResultStatus.DRAFT
    reviewed: bool = False
    grade: Optional[float] = None
    maxgrade: Optional[float] = None
    reasoning: str = ""
    confidence: Optional[float] = None
    model: Optional[str] = None
    rubric_hash: Optional[str] = None
    rubric_analysis: Optional[MappedResult] = None
    similarity: Optional[SimilarityAnalysis] = None
    error: Optional[str] = None
    retryable: bool = False
    timecreated: datetime = Field(default_factory=datetime.now)
    timemodified: datetime = Field(default_factory=datetime.now)

    def to_api_dict(self) -> Dict[str, Any]:
        """Render the record the way the result endpoint exposes it."""
        return {
            'id': self.id,
            'queueid': self.queueid,
            'grade': self.grade,
            'maxgrade': self.maxgrade,
            'reasoning': self.reasoning,
            'confidence': self.confidence,
            'model': self.model,
            'status': self.status.value,
            'reviewed': self.reviewed,
            'timecreated': int(self.timecreated.timestamp()),
            'modulename': self.modulename.value,
            'instanceid': self.instanceid,
            'rubric_analysis': self.rubric_analysis.model_dump() if self.rubric_analysis else None,
        }
