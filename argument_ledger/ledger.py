"""Confidence Ledger Core — pure update rules shared by arguments and facts.

Nothing here touches the store or the network. Services feed in the current
state of a claim and get back the value to write, or a list of instructions
for neighbors that should receive a propagated change.
"""

import math
from datetime import datetime, timezone
from uuid import UUID
from pydantic import BaseModel
from argument_ledger.config import LedgerSettings
from argument_ledger.errors import ValidationFailure
from argument_ledger.models import ClusterAssignment, FactDependency, HistoryEntry, SimilarClaim


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def requested_confidence(value: float) -> float:
    """Clamp a caller-supplied confidence. NaN and infinities are rejected, not clamped."""
    if not math.isfinite(value):
        raise ValidationFailure(f"Confidence must be a finite number, got {value}")
    return clamp(value)


class ConfidenceChange(BaseModel):
    old_confidence: float
    new_confidence: float
    entry: HistoryEntry

    @property
    def delta(self) -> float:
        return self.new_confidence - self.old_confidence


class PropagationStep(BaseModel):
    target_id: UUID
    similarity: float
    shift: float


def initial_history(confidence: float) -> list[HistoryEntry]:
    return [HistoryEntry(confidence=confidence, timestamp=utcnow(), reason="initial")]


def update_confidence(current: float, new_confidence: float, reason: str) -> ConfidenceChange:
    """Clamp the requested value and build the history entry recording it."""
    new_confidence = clamp(new_confidence)
    entry = HistoryEntry(
        confidence=new_confidence,
        previous_confidence=current,
        timestamp=utcnow(),
        reason=reason,
    )
    return ConfidenceChange(old_confidence=current, new_confidence=new_confidence, entry=entry)


def should_propagate(delta: float, settings: LedgerSettings) -> bool:
    return abs(delta) > settings.propagation_trigger


def propagated_delta(delta: float, similarity: float, settings: LedgerSettings) -> float:
    return delta * settings.propagation_decay * similarity


def plan_propagation(
    source_id: UUID,
    delta: float,
    neighbors: list[SimilarClaim],
    settings: LedgerSettings,
) -> list[PropagationStep]:
    """One step per neighbor, or nothing if the change is too small to ripple.

    Steps carry the shift, not a target value: the neighbor's new confidence
    is decided against its locked row at write time.
    """
    if not should_propagate(delta, settings):
        return []
    return [
        PropagationStep(
            target_id=n.id,
            similarity=n.similarity,
            shift=propagated_delta(delta, n.similarity, settings),
        )
        for n in neighbors
        if n.id != source_id
    ]


def propagation_target(current: float, shift: float, settings: LedgerSettings) -> float | None:
    """New confidence for a neighbor, or None when the change is below the floor."""
    target = clamp(current + shift)
    if abs(target - current) > settings.propagation_min_change:
        return target
    return None


def dependency_multiplier(dependencies: list[FactDependency]) -> float:
    multiplier = 1.0
    for dep in dependencies:
        weight = dep.dependency_strength
        multiplier *= (1.0 - weight) + weight * dep.fact_confidence
    return multiplier


def effective_confidence(confidence: float, dependencies: list[FactDependency]) -> float:
    if not dependencies:
        return confidence
    return clamp(confidence * dependency_multiplier(dependencies))


def challenge_penalty(challenge_count: int, settings: LedgerSettings) -> float:
    # Diminishing: the first challenge matters more than the hundredth
    return settings.challenge_impact / math.sqrt(max(1, challenge_count))


def citation_boost(citation_count: int, settings: LedgerSettings) -> float:
    return settings.citation_boost / math.sqrt(max(1, citation_count))


def cluster_match(similar: list[SimilarClaim], settings: LedgerSettings) -> SimilarClaim | None:
    if not similar:
        return None
    best = max(similar, key=lambda s: s.similarity)
    return best if best.similarity > settings.duplicate_similarity else None


def cluster_assignment(
    argument_id: UUID, match_id: UUID, match_cluster_id: UUID | None
) -> ClusterAssignment:
    """Join the match's cluster, or found one keyed by the new argument.

    The newest argument heads a new cluster regardless of confidence.
    """
    if match_cluster_id is not None:
        return ClusterAssignment(cluster_id=match_cluster_id, members=[argument_id])
    return ClusterAssignment(
        cluster_id=argument_id,
        members=[argument_id, match_id],
        head_id=argument_id,
    )
