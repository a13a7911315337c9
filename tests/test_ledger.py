"""Tests for the pure confidence rules."""

import math
import uuid
import pytest
from pydantic import ValidationError

from argument_ledger import ledger
from argument_ledger.config import LedgerSettings
from argument_ledger.errors import ValidationFailure
from argument_ledger.models import FactDependency, SimilarClaim


@pytest.fixture
def settings():
    return LedgerSettings()


def dep(fact_confidence: float, weight: float) -> FactDependency:
    return FactDependency(
        fact_id=uuid.uuid4(), claim="c", fact_confidence=fact_confidence, dependency_strength=weight
    )


def similar(similarity: float, confidence: float = 0.5) -> SimilarClaim:
    return SimilarClaim(id=uuid.uuid4(), content="x", confidence=confidence, similarity=similarity)


@pytest.mark.parametrize("raw,expected", [(-0.2, 0.0), (0.0, 0.0), (0.42, 0.42), (1.0, 1.0), (1.7, 1.0)])
def test_clamp(raw, expected):
    assert ledger.clamp(raw) == expected


def test_requested_confidence_clamps_finite_values():
    assert ledger.requested_confidence(1.4) == 1.0
    assert ledger.requested_confidence(-3) == 0.0
    for bad in (math.nan, math.inf, -math.inf):
        with pytest.raises(ValidationFailure):
            ledger.requested_confidence(bad)


def test_update_confidence_clamps_and_records_history():
    change = ledger.update_confidence(0.4, 1.3, "admin override")

    assert change.old_confidence == 0.4
    assert change.new_confidence == 1.0
    assert change.delta == pytest.approx(0.6)
    assert change.entry.previous_confidence == 0.4
    assert change.entry.confidence == 1.0
    assert change.entry.reason == "admin override"


def test_initial_history_has_single_entry():
    history = ledger.initial_history(0.5)
    assert len(history) == 1
    assert history[0].reason == "initial"
    assert history[0].previous_confidence is None


def test_small_changes_do_not_propagate(settings):
    source = uuid.uuid4()
    assert ledger.plan_propagation(source, 0.03, [similar(0.99)], settings) == []
    assert ledger.plan_propagation(source, -0.05, [similar(0.99)], settings) == []


def test_propagation_shift_decays_with_similarity(settings):
    source = uuid.uuid4()
    neighbors = [similar(0.9), similar(0.86)]

    steps = ledger.plan_propagation(source, 0.3, neighbors, settings)

    assert [s.target_id for s in steps] == [n.id for n in neighbors]
    assert steps[0].shift == pytest.approx(0.3 * 0.9 * 0.9)
    assert steps[1].shift == pytest.approx(0.3 * 0.9 * 0.86)


def test_propagation_never_targets_source(settings):
    source = uuid.uuid4()
    itself = SimilarClaim(id=source, content="x", confidence=0.5, similarity=1.0)
    assert ledger.plan_propagation(source, 0.5, [itself], settings) == []


def test_propagation_target_suppresses_tiny_changes(settings):
    assert ledger.propagation_target(0.5, 0.009, settings) is None
    assert ledger.propagation_target(0.995, 0.2, settings) is None  # clamped to a 0.005 move
    assert ledger.propagation_target(0.5, -0.2, settings) == pytest.approx(0.3)
    assert ledger.propagation_target(0.1, -0.5, settings) == 0.0


def test_effective_confidence_without_dependencies():
    assert ledger.effective_confidence(0.63, []) == 0.63


def test_effective_confidence_full_weight_link():
    assert ledger.effective_confidence(0.5, [dep(0.4, 1.0)]) == pytest.approx(0.5 * 0.4)


def test_effective_confidence_multiplies_links():
    deps = [dep(0.5, 0.8), dep(0.9, 0.5)]
    expected = 0.7 * (0.2 + 0.8 * 0.5) * (0.5 + 0.5 * 0.9)
    assert ledger.effective_confidence(0.7, deps) == pytest.approx(expected)


def test_zero_weight_link_has_no_effect():
    assert ledger.effective_confidence(0.7, [dep(0.0, 0.0)]) == pytest.approx(0.7)


def test_effective_confidence_never_exceeds_confidence():
    for fact_conf in (0.0, 0.25, 0.5, 0.99):
        for weight in (0.1, 0.5, 1.0):
            assert ledger.effective_confidence(0.8, [dep(fact_conf, weight)]) < 0.8


def test_challenge_and_citation_diminish(settings):
    assert ledger.challenge_penalty(1, settings) == pytest.approx(0.05)
    assert ledger.challenge_penalty(4, settings) == pytest.approx(0.025)
    assert ledger.citation_boost(1, settings) == pytest.approx(0.02)
    assert ledger.citation_boost(2, settings) == pytest.approx(0.02 / math.sqrt(2))


def test_cluster_match_requires_near_duplicate(settings):
    assert ledger.cluster_match([], settings) is None
    assert ledger.cluster_match([similar(0.95)], settings) is None

    best = similar(0.97)
    assert ledger.cluster_match([similar(0.9), best], settings) is best


def test_new_cluster_is_headed_by_newest_argument():
    new, match = uuid.uuid4(), uuid.uuid4()

    assignment = ledger.cluster_assignment(new, match, None)

    assert assignment.cluster_id == new
    assert set(assignment.members) == {new, match}
    assert assignment.head_id == new


def test_joining_existing_cluster_keeps_head():
    new, match, cluster = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

    assignment = ledger.cluster_assignment(new, match, cluster)

    assert assignment.cluster_id == cluster
    assert assignment.members == [new]
    assert assignment.head_id is None


def test_settings_enforce_threshold_ordering():
    with pytest.raises(ValidationError):
        LedgerSettings(duplicate_similarity=0.8, related_similarity=0.85)
    with pytest.raises(ValidationError):
        LedgerSettings(fact_duplicate_similarity=0.9)
    with pytest.raises(ValidationError):
        LedgerSettings(propagation_trigger=0.01, propagation_min_change=0.05)
