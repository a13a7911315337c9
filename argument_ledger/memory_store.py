"""In-process claim store with the same interface as PostgresStore.

Each read-modify-write runs without an await between the read and the
write, so on a single event loop it is atomic per claim.
"""

import uuid
from typing import Callable
from uuid import UUID
from argument_ledger import ledger
from argument_ledger.audit import confidence_record
from argument_ledger.errors import NotFound
from argument_ledger.models import (
    Argument, ArgumentFactLink, ClusterAssignment, ConfidenceUpdate, DependentArgument,
    Fact, FactDependency, HistoryEntry, LowConfidenceFact, SimilarityCandidate,
)
from argument_ledger.store import ARGUMENT_COUNTERS, FACT_COUNTERS


class MemoryStore:
    def __init__(self):
        self.arguments: dict[UUID, Argument] = {}
        self.facts: dict[UUID, Fact] = {}
        self.links: dict[tuple[UUID, UUID], ArgumentFactLink] = {}
        self.updates: list[ConfidenceUpdate] = []

    # --- Arguments ---

    async def insert_argument(
        self,
        content: str,
        embedding: list[float],
        confidence: float,
        history: list[HistoryEntry],
        summary: str | None = None,
        source_post_id: str | None = None,
        source_user_id: str | None = None,
        logical_validity: float | None = None,
        evidence_quality: float | None = None,
        coherence: float | None = None,
        entropy_score: float | None = None,
    ) -> Argument:
        now = ledger.utcnow()
        argument = Argument(
            id=uuid.uuid4(),
            content=content,
            summary=summary,
            source_post_id=source_post_id,
            source_user_id=source_user_id,
            embedding=list(embedding),
            confidence=confidence,
            effective_confidence=confidence,
            confidence_history=list(history),
            logical_validity=logical_validity,
            evidence_quality=evidence_quality,
            coherence=coherence,
            entropy_score=entropy_score,
            created_at=now,
            updated_at=now,
        )
        self.arguments[argument.id] = argument
        return argument.model_copy(deep=True)

    async def get_argument(self, argument_id: UUID) -> Argument | None:
        argument = self.arguments.get(argument_id)
        return argument.model_copy(deep=True) if argument else None

    async def embedded_arguments(self, exclude_id: UUID | None = None) -> list[SimilarityCandidate]:
        return [
            SimilarityCandidate(id=a.id, content=a.content, confidence=a.confidence, embedding=a.embedding)
            for a in self.arguments.values()
            if a.embedding and a.id != exclude_id
        ]

    async def apply_argument_confidence(
        self,
        argument_id: UUID,
        decide: Callable[[Argument], float | None],
        reason: str,
        interaction_id: UUID | None = None,
        propagated_from: UUID | None = None,
        cosine_similarity: float | None = None,
        counter: str | None = None,
        effective: Callable[[float, list[FactDependency]], float] | None = None,
    ) -> ConfidenceUpdate | None:
        if counter is not None and counter not in ARGUMENT_COUNTERS:
            raise ValueError(f"Unknown argument counter: {counter}")
        argument = self.arguments.get(argument_id)
        if argument is None:
            raise NotFound("Argument", argument_id)

        if counter:
            argument = argument.model_copy(update={counter: getattr(argument, counter) + 1})
            self.arguments[argument_id] = argument

        target = decide(argument.model_copy(deep=True))
        if target is None:
            return None

        change = ledger.update_confidence(argument.confidence, target, reason)
        update = {
            "confidence": change.new_confidence,
            "confidence_history": argument.confidence_history + [change.entry],
            "updated_at": change.entry.timestamp,
        }
        if effective is not None:
            update["effective_confidence"] = effective(
                change.new_confidence, self._fact_dependencies(argument_id)
            )
        self.arguments[argument_id] = argument.model_copy(update=update)
        record = confidence_record(
            change,
            argument_id=argument_id,
            interaction_id=interaction_id,
            propagated_from=propagated_from,
            cosine_similarity=cosine_similarity,
        )
        self.updates.append(record)
        return record

    async def recalculate_effective_confidence(
        self,
        argument_id: UUID,
        compute: Callable[[float, list[FactDependency]], float],
    ) -> float:
        argument = self.arguments.get(argument_id)
        if argument is None:
            raise NotFound("Argument", argument_id)
        effective = compute(argument.confidence, self._fact_dependencies(argument_id))
        self.arguments[argument_id] = argument.model_copy(update={
            "effective_confidence": effective,
            "updated_at": ledger.utcnow(),
        })
        return effective

    async def set_cluster(self, assignment: ClusterAssignment):
        for member in assignment.members:
            argument = self.arguments[member]
            update = {"cluster_id": assignment.cluster_id}
            if member == assignment.head_id:
                update["is_cluster_head"] = True
            self.arguments[member] = argument.model_copy(update=update)

    async def cluster_arguments(self, cluster_id: UUID) -> list[Argument]:
        members = [a for a in self.arguments.values() if a.cluster_id == cluster_id]
        return sorted(members, key=lambda a: a.confidence, reverse=True)

    async def top_arguments(self, limit: int = 20) -> list[Argument]:
        return sorted(self.arguments.values(), key=lambda a: a.confidence, reverse=True)[:limit]

    async def post_arguments(self, post_id: str) -> list[Argument]:
        matches = [a for a in self.arguments.values() if a.source_post_id == post_id]
        return sorted(matches, key=lambda a: a.created_at, reverse=True)

    # --- Links ---

    async def upsert_link(self, argument_id: UUID, fact_id: UUID, weight: float) -> ArgumentFactLink:
        now = ledger.utcnow()
        existing = self.links.get((argument_id, fact_id))
        if existing:
            link = existing.model_copy(update={"dependency_strength": weight, "updated_at": now})
        else:
            link = ArgumentFactLink(
                argument_id=argument_id,
                fact_id=fact_id,
                dependency_strength=weight,
                created_at=now,
                updated_at=now,
            )
        self.links[(argument_id, fact_id)] = link
        return link

    async def fact_dependencies(self, argument_id: UUID) -> list[FactDependency]:
        return self._fact_dependencies(argument_id)

    def _fact_dependencies(self, argument_id: UUID) -> list[FactDependency]:
        deps = []
        for (a, f), link in self.links.items():
            if a != argument_id:
                continue
            fact = self.facts[f]
            deps.append(FactDependency(
                fact_id=f,
                claim=fact.claim,
                fact_confidence=fact.confidence,
                dependency_strength=link.dependency_strength,
            ))
        return deps

    async def dependent_argument_ids(self, fact_id: UUID) -> list[UUID]:
        return [a for (a, f) in self.links if f == fact_id]

    async def dependent_arguments(self, fact_id: UUID) -> list[DependentArgument]:
        dependents = []
        for (a, f), link in self.links.items():
            if f != fact_id:
                continue
            argument = self.arguments[a]
            dependents.append(DependentArgument(
                id=argument.id,
                content=argument.content,
                summary=argument.summary,
                confidence=argument.confidence,
                effective_confidence=argument.effective_confidence,
                dependency_strength=link.dependency_strength,
            ))
        return sorted(dependents, key=lambda d: d.dependency_strength, reverse=True)

    # --- Facts ---

    async def insert_fact(
        self,
        claim: str,
        embedding: list[float],
        confidence: float,
        history: list[HistoryEntry],
        source_post_id: str | None = None,
        source_user_id: str | None = None,
    ) -> Fact:
        now = ledger.utcnow()
        fact = Fact(
            id=uuid.uuid4(),
            claim=claim,
            source_post_id=source_post_id,
            source_user_id=source_user_id,
            embedding=list(embedding),
            confidence=confidence,
            confidence_history=list(history),
            created_at=now,
            updated_at=now,
        )
        self.facts[fact.id] = fact
        return fact.model_copy(deep=True)

    async def get_fact(self, fact_id: UUID) -> Fact | None:
        fact = self.facts.get(fact_id)
        return fact.model_copy(deep=True) if fact else None

    async def embedded_facts(self, exclude_id: UUID | None = None) -> list[SimilarityCandidate]:
        return [
            SimilarityCandidate(id=f.id, content=f.claim, confidence=f.confidence, embedding=f.embedding)
            for f in self.facts.values()
            if f.embedding and f.id != exclude_id
        ]

    async def apply_fact_confidence(
        self,
        fact_id: UUID,
        decide: Callable[[Fact], float | None],
        reason: str,
        interaction_id: UUID | None = None,
        counter: str | None = None,
    ) -> ConfidenceUpdate | None:
        if counter is not None and counter not in FACT_COUNTERS:
            raise ValueError(f"Unknown fact counter: {counter}")
        fact = self.facts.get(fact_id)
        if fact is None:
            raise NotFound("Fact", fact_id)

        if counter:
            fact = fact.model_copy(update={counter: getattr(fact, counter) + 1})
            self.facts[fact_id] = fact

        target = decide(fact.model_copy(deep=True))
        if target is None:
            return None

        change = ledger.update_confidence(fact.confidence, target, reason)
        self.facts[fact_id] = fact.model_copy(update={
            "confidence": change.new_confidence,
            "confidence_history": fact.confidence_history + [change.entry],
            "updated_at": change.entry.timestamp,
        })
        record = confidence_record(change, fact_id=fact_id, interaction_id=interaction_id)
        self.updates.append(record)
        return record

    async def low_confidence_facts(self, threshold: float = 0.3, limit: int = 20) -> list[LowConfidenceFact]:
        low = sorted(
            (f for f in self.facts.values() if f.confidence < threshold),
            key=lambda f: f.confidence,
        )[:limit]
        return [
            LowConfidenceFact(fact=f, dependent_argument_ids=await self.dependent_argument_ids(f.id))
            for f in low
        ]

    async def established_facts(self, threshold: float = 0.8, limit: int = 20) -> list[Fact]:
        return sorted(
            (f for f in self.facts.values() if f.confidence >= threshold),
            key=lambda f: f.confidence,
            reverse=True,
        )[:limit]

    async def search_facts(self, query: str, limit: int = 10) -> list[Fact]:
        needle = query.lower()
        return sorted(
            (f for f in self.facts.values() if needle in f.claim.lower()),
            key=lambda f: f.confidence,
            reverse=True,
        )[:limit]

    # --- Audit ---

    async def confidence_updates(
        self,
        argument_id: UUID | None = None,
        fact_id: UUID | None = None,
        limit: int = 10,
    ) -> list[ConfidenceUpdate]:
        matches = [
            u for u in reversed(self.updates)
            if (argument_id is None or u.argument_id == argument_id)
            and (fact_id is None or u.fact_id == fact_id)
        ]
        return matches[:limit]

    async def propagated_updates(self, source_id: UUID, limit: int = 50) -> list[ConfidenceUpdate]:
        return [u for u in reversed(self.updates) if u.propagated_from == source_id][:limit]
