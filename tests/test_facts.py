"""Tests for the Fact Service — citations, challenges and the cascade to arguments."""

import math
import uuid
import pytest

from argument_ledger.app import Ledger
from argument_ledger.errors import DependencyUnavailable, NotFound, ValidationFailure
from argument_ledger.memory_store import MemoryStore
from tests.conftest import DownEmbedder, basis, near


@pytest.mark.asyncio
async def test_create_fact_records_initial_history(ledger):
    fact = await ledger.facts.create_fact(
        "The Eiffel Tower is 330m tall", source_post_id="p9", initial_confidence=0.7
    )

    assert fact.confidence == 0.7
    assert fact.citation_count == 0
    assert fact.challenge_count == 0
    assert [h.reason for h in fact.confidence_history] == ["initial"]
    assert fact.source_post_id == "p9"


@pytest.mark.asyncio
async def test_create_fact_validation(ledger, embedder):
    with pytest.raises(ValidationFailure):
        await ledger.facts.create_fact("")
    with pytest.raises(ValidationFailure):
        await ledger.facts.create_fact("Something", initial_confidence=1.2)
    assert embedder.calls == []


@pytest.mark.asyncio
async def test_create_fact_fails_when_embeddings_down():
    ledger = Ledger(MemoryStore(), DownEmbedder())
    with pytest.raises(DependencyUnavailable):
        await ledger.facts.create_fact("GDP grew 2% last quarter")


@pytest.mark.asyncio
async def test_two_challenges_have_diminishing_impact(ledger):
    fact = await ledger.facts.create_fact("Crime rose 20% in 2023")

    first = await ledger.facts.challenge_fact(fact.id, "source misread")
    second = await ledger.facts.challenge_fact(fact.id, "different dataset")

    expected = 0.5 - 0.05 / math.sqrt(1) - 0.05 / math.sqrt(2)
    stored = await ledger.store.get_fact(fact.id)
    assert stored.confidence == pytest.approx(expected)
    assert stored.challenge_count == 2
    assert first.new_confidence == pytest.approx(0.45)
    assert second.old_confidence == pytest.approx(0.45)

    updates = await ledger.audit.recent(fact_id=fact.id)
    assert [u.old_confidence for u in reversed(updates)] == pytest.approx([0.5, 0.45])
    assert [u.reason for u in reversed(updates)] == [
        "Challenge: source misread", "Challenge: different dataset",
    ]


@pytest.mark.asyncio
async def test_challenges_never_go_below_zero(ledger):
    fact = await ledger.facts.create_fact("The moon is made of cheese", initial_confidence=0.03)

    result = await ledger.facts.challenge_fact(fact.id, "obviously false")

    assert result.new_confidence == 0.0


@pytest.mark.asyncio
async def test_citations_raise_confidence_and_cap_at_one(ledger):
    fact = await ledger.facts.create_fact("Water is wet", initial_confidence=0.99)

    first = await ledger.facts.cite_fact(fact.id, context_post_id="p1")
    second = await ledger.facts.cite_fact(fact.id)

    assert first.new_confidence == 1.0
    assert second.new_confidence == 1.0
    stored = await ledger.store.get_fact(fact.id)
    assert stored.citation_count == 2
    assert [h.reason for h in stored.confidence_history] == ["initial", "Cited in post p1", "Cited"]


@pytest.mark.asyncio
async def test_challenge_moves_faster_than_citation(ledger):
    cited = await ledger.facts.create_fact("Fact A")
    challenged = await ledger.facts.create_fact("Fact B")

    up = await ledger.facts.cite_fact(cited.id)
    down = await ledger.facts.challenge_fact(challenged.id, "doubt")

    assert (down.old_confidence - down.new_confidence) == pytest.approx(
        2.5 * (up.new_confidence - up.old_confidence)
    )


@pytest.mark.asyncio
async def test_unknown_fact_raises_not_found(ledger):
    with pytest.raises(NotFound):
        await ledger.facts.challenge_fact(uuid.uuid4(), "who?")
    with pytest.raises(NotFound):
        await ledger.facts.cite_fact(uuid.uuid4())
    with pytest.raises(NotFound):
        await ledger.facts.get_fact(uuid.uuid4())


@pytest.mark.asyncio
async def test_fact_change_cascades_to_dependent_arguments(ledger):
    fact = await ledger.facts.create_fact("Unemployment is 4%")
    argument = await ledger.arguments.create_argument("The labour market is tight")
    await ledger.arguments.link_to_fact(argument.id, fact.id, 0.8)

    assert (await ledger.store.get_argument(argument.id)).effective_confidence == pytest.approx(0.30)

    result = await ledger.facts.cite_fact(fact.id)

    assert result.affected_arguments == [argument.id]
    stored = await ledger.store.get_argument(argument.id)
    assert stored.confidence == 0.5
    assert stored.effective_confidence == pytest.approx(0.5 * (0.2 + 0.8 * 0.52))
    assert len(stored.confidence_history) == 1
    assert await ledger.audit.recent(argument_id=argument.id) == []


@pytest.mark.asyncio
async def test_cascade_runs_even_for_tiny_changes(ledger):
    fact = await ledger.facts.create_fact("Average rainfall is 800mm")
    first = await ledger.arguments.create_argument("Farming here is viable")
    second = await ledger.arguments.create_argument("Irrigation is optional")
    await ledger.arguments.link_to_fact(first.id, fact.id, 1.0)
    await ledger.arguments.link_to_fact(second.id, fact.id, 0.5)

    result = await ledger.facts.update_fact_confidence(fact.id, 0.501, "rounding correction")

    assert set(result.affected_arguments) == {first.id, second.id}
    assert (await ledger.store.get_argument(first.id)).effective_confidence == pytest.approx(0.5 * 0.501)
    assert (await ledger.store.get_argument(second.id)).effective_confidence == pytest.approx(
        0.5 * (0.5 + 0.5 * 0.501)
    )


@pytest.mark.asyncio
async def test_update_fact_confidence_clamps(ledger):
    fact = await ledger.facts.create_fact("Paris is in France")

    result = await ledger.facts.update_fact_confidence(fact.id, 7, "obvious")

    assert result.new_confidence == 1.0
    assert (await ledger.store.get_fact(fact.id)).confidence == 1.0


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
async def test_update_fact_confidence_rejects_non_finite(ledger, value):
    fact = await ledger.facts.create_fact("The census counted 8 million residents")
    argument = await ledger.arguments.create_argument("The city is overcrowded")
    await ledger.arguments.link_to_fact(argument.id, fact.id, 0.5)

    with pytest.raises(ValidationFailure):
        await ledger.facts.update_fact_confidence(fact.id, value, "malformed")

    assert (await ledger.store.get_fact(fact.id)).confidence == 0.5
    assert (await ledger.store.get_argument(argument.id)).effective_confidence == pytest.approx(0.375)
    assert await ledger.audit.recent(fact_id=fact.id) == []


@pytest.mark.asyncio
async def test_get_fact_lists_dependents_and_updates(ledger):
    fact = await ledger.facts.create_fact("Sea levels rose 20cm since 1900")
    argument = await ledger.arguments.create_argument("Coastal cities need sea walls")
    await ledger.arguments.link_to_fact(argument.id, fact.id, 0.6)
    await ledger.facts.challenge_fact(fact.id, "measurement bias")

    detail = await ledger.facts.get_fact(fact.id)

    assert [d.id for d in detail.dependent_arguments] == [argument.id]
    assert detail.dependent_arguments[0].dependency_strength == 0.6
    assert detail.dependent_arguments[0].effective_confidence == pytest.approx(0.5 * (0.4 + 0.6 * 0.45))
    assert [u.reason for u in detail.recent_updates] == ["Challenge: measurement bias"]


@pytest.mark.asyncio
async def test_low_and_established_facts(ledger):
    weak = await ledger.facts.create_fact("Weak claim", initial_confidence=0.1)
    weaker = await ledger.facts.create_fact("Weaker claim", initial_confidence=0.05)
    strong = await ledger.facts.create_fact("Strong claim", initial_confidence=0.95)
    await ledger.facts.create_fact("Middling claim", initial_confidence=0.5)
    argument = await ledger.arguments.create_argument("Leans on the weak claim")
    await ledger.arguments.link_to_fact(argument.id, weak.id, 0.5)

    low = await ledger.facts.get_low_confidence_facts()
    assert [l.fact.id for l in low] == [weaker.id, weak.id]
    assert low[1].dependent_argument_ids == [argument.id]
    assert low[0].dependent_argument_ids == []

    established = await ledger.facts.get_established_facts()
    assert [f.id for f in established] == [strong.id]


@pytest.mark.asyncio
async def test_search_facts_is_case_insensitive(ledger):
    await ledger.facts.create_fact("Coffee contains caffeine", initial_confidence=0.9)
    decaf = await ledger.facts.create_fact("Decaf COFFEE has little caffeine", initial_confidence=0.6)
    await ledger.facts.create_fact("Tea is popular")

    results = await ledger.facts.search_facts("coffee")

    assert len(results) == 2
    assert results[1].id == decaf.id

    with pytest.raises(ValidationFailure):
        await ledger.facts.search_facts("  ")


@pytest.mark.asyncio
async def test_find_similar_facts_uses_fact_threshold(ledger, embedder):
    embedder.register("stored fact", basis(0))
    embedder.register("reworded fact", near(0, 1, 0.82))
    stored = await ledger.facts.create_fact("stored fact")

    results = await ledger.facts.find_similar_facts("reworded fact")

    assert [r.id for r in results] == [stored.id]
    assert results[0].similarity == pytest.approx(0.82)


@pytest.mark.asyncio
async def test_find_similar_facts_degrades_when_embeddings_down():
    ledger = Ledger(MemoryStore(), DownEmbedder())
    assert await ledger.facts.find_similar_facts("anything") == []
