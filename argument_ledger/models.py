from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import datetime
from uuid import UUID


class ClaimKind(str, Enum):
    ARGUMENT = "argument"
    FACT = "fact"


class HistoryEntry(BaseModel):
    confidence: float
    previous_confidence: float | None = None  # absent on the initial entry
    timestamp: datetime
    reason: str


class Argument(BaseModel):
    id: UUID
    content: str
    summary: str | None = None
    source_post_id: str | None = None
    source_user_id: str | None = None
    embedding: list[float] = Field(default_factory=list, repr=False)
    confidence: float
    effective_confidence: float
    confidence_history: list[HistoryEntry] = Field(default_factory=list)
    support_count: int = 0
    refute_count: int = 0
    logical_validity: float | None = None
    evidence_quality: float | None = None
    coherence: float | None = None
    entropy_score: float | None = None
    cluster_id: UUID | None = None
    is_cluster_head: bool = False
    created_at: datetime
    updated_at: datetime


class Fact(BaseModel):
    id: UUID
    claim: str
    source_post_id: str | None = None
    source_user_id: str | None = None
    embedding: list[float] = Field(default_factory=list, repr=False)
    confidence: float
    confidence_history: list[HistoryEntry] = Field(default_factory=list)
    citation_count: int = 0
    challenge_count: int = 0
    created_at: datetime
    updated_at: datetime


class ArgumentFactLink(BaseModel):
    argument_id: UUID
    fact_id: UUID
    dependency_strength: float
    created_at: datetime
    updated_at: datetime


class FactDependency(BaseModel):
    """A link joined with the current state of its fact."""

    fact_id: UUID
    claim: str
    fact_confidence: float
    dependency_strength: float


class ConfidenceUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    argument_id: UUID | None = None
    fact_id: UUID | None = None
    interaction_id: UUID | None = None
    old_confidence: float
    new_confidence: float
    reason: str
    propagated_from: UUID | None = None  # source claim, propagated updates only
    cosine_similarity: float | None = None
    created_at: datetime

    @model_validator(mode="after")
    def check_shape(self) -> "ConfidenceUpdate":
        if (self.argument_id is None) == (self.fact_id is None):
            raise ValueError("a confidence update targets exactly one argument or fact")
        if (self.propagated_from is None) != (self.cosine_similarity is None):
            raise ValueError("propagated_from and cosine_similarity go together")
        return self


class SimilarClaim(BaseModel):
    id: UUID
    content: str  # argument content or fact claim
    confidence: float
    similarity: float


class SimilarityCandidate(BaseModel):
    id: UUID
    content: str
    confidence: float
    embedding: list[float]


class ClusterAssignment(BaseModel):
    cluster_id: UUID
    members: list[UUID]
    head_id: UUID | None = None  # set only when a new cluster is founded


class ArgumentUpdateResult(BaseModel):
    argument_id: UUID
    old_confidence: float
    new_confidence: float
    propagated_to: list[UUID] = Field(default_factory=list)


class FactUpdateResult(BaseModel):
    fact_id: UUID
    old_confidence: float
    new_confidence: float
    affected_arguments: list[UUID] = Field(default_factory=list)


class ArgumentDetail(BaseModel):
    argument: Argument
    fact_dependencies: list[FactDependency]
    recent_updates: list[ConfidenceUpdate]


class DependentArgument(BaseModel):
    id: UUID
    content: str
    summary: str | None = None
    confidence: float
    effective_confidence: float
    dependency_strength: float


class FactDetail(BaseModel):
    fact: Fact
    dependent_arguments: list[DependentArgument]
    recent_updates: list[ConfidenceUpdate]


class LowConfidenceFact(BaseModel):
    fact: Fact
    dependent_argument_ids: list[UUID]
