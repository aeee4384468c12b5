"""Pydantic models for the exam strategy analysis pipeline.

Wire format (model output, HTTP responses) uses camelCase keys such as
``keyConcepts``; Python code uses snake_case attribute names. Result models
are dumped with ``exclude_unset=True`` so a response carries only the fields
the model actually sent.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Level = Literal["Low", "Medium", "High"]

# Kept as sent: 92 stays an int, 87.5 a float
Percentage = Union[
    Annotated[int, Field(ge=0, le=100)],
    Annotated[float, Field(ge=0, le=100)],
]


class CamelModel(BaseModel):
    """Base model serialising to camelCase while accepting either spelling."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# =============================================================================
# INPUT MODELS
# =============================================================================

class UploadedDocument(BaseModel):
    """A user-supplied file. Never mutated by the pipeline."""

    model_config = ConfigDict(frozen=True)

    content: bytes = Field(repr=False, description="Raw file bytes")
    media_type: str = Field(description="Sniffed MIME type, sent to the model as-is")
    filename: str = Field(description="Original file name")


class AnalysisRequest(BaseModel):
    """Both documents needed for one analysis run."""

    model_config = ConfigDict(frozen=True)

    syllabus: UploadedDocument
    past_papers: UploadedDocument


# =============================================================================
# HEURISTIC MODELS
# =============================================================================

class KeywordMatch(BaseModel):
    """Distinct vocabulary terms found in a piece of text."""

    count: int = Field(ge=0)
    matched: List[str] = Field(default_factory=list)


class KeywordAssessment(BaseModel):
    """Result of the keyword-density gate."""

    distinct_keyword_count: int = Field(ge=0)
    total_occurrences: int = Field(ge=0)
    density_score: float = Field(ge=0.0, le=100.0)
    passed: bool


class GateDecision(BaseModel):
    """Outcome of the upload quick check for a single file."""

    status: Literal["ignored", "accepted", "warning"]
    filename: str
    message: Optional[str] = None
    matched_keywords: List[str] = Field(default_factory=list)


# =============================================================================
# ANALYSIS RESULT MODELS
# =============================================================================

class Topic(CamelModel):
    """A syllabus topic ranked by the model."""

    name: str
    confidence: Percentage
    effort: Level
    reward: Level
    frequency: int = Field(ge=0)
    key_concepts: List[str] = Field(default_factory=list)
    priority: Optional[Level] = None

    @property
    def resolved_priority(self) -> Level:
        """Priority as reported, or derived from confidence when absent."""
        if self.priority is not None:
            return self.priority
        if self.confidence >= 80:
            return "High"
        if self.confidence >= 60:
            return "Medium"
        return "Low"

    @property
    def is_quick_win(self) -> bool:
        """Low effort, high reward."""
        return self.effort == "Low" and self.reward == "High"


class AnalysisSummary(CamelModel):
    """Aggregate counts reported by the model."""

    total_topics: int = Field(ge=0)
    high_priority_count: int = Field(ge=0)
    low_effort_high_reward: int = Field(ge=0)


class AnalysisResult(CamelModel):
    """Structured model output for one successful run."""

    topics: List[Topic]
    summary: Optional[AnalysisSummary] = None

    def sorted_topics(self) -> List[Topic]:
        """Topics by confidence, highest first."""
        return sorted(self.topics, key=lambda topic: topic.confidence, reverse=True)
