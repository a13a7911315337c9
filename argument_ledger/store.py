"""PostgreSQL claim store.

Every confidence write is a read-modify-write under a row lock: the caller
passes a `decide` function that sees the locked row and returns the value to
write (or None to leave the row alone). The audit record is inserted in the
same transaction, and so is the argument's effective confidence when an
`effective` function is given.
"""

from typing import Callable
from uuid import UUID
import asyncpg
from argument_ledger import ledger
from argument_ledger.audit import confidence_record
from argument_ledger.errors import NotFound
from argument_ledger.models import (
    Argument, ArgumentFactLink, ClusterAssignment, ConfidenceUpdate, DependentArgument,
    Fact, FactDependency, HistoryEntry, LowConfidenceFact, SimilarityCandidate,
)

ARGUMENT_COUNTERS = ("support_count", "refute_count")
FACT_COUNTERS = ("citation_count", "challenge_count")


def _history_json(history: list[HistoryEntry]) -> list[dict]:
    return [h.model_dump(mode="json") for h in history]


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class PostgresStore:
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

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
        row = await self._pool.fetchrow(
            """
            INSERT INTO arguments (
                content, summary, source_post_id, source_user_id, embedding,
                confidence, effective_confidence, confidence_history,
                logical_validity, evidence_quality, coherence, entropy_score
            )
            VALUES ($1, $2, $3, $4, $5, $6, $6, $7, $8, $9, $10, $11)
            RETURNING *
            """,
            content, summary, source_post_id, source_user_id, embedding,
            confidence, _history_json(history),
            logical_validity, evidence_quality, coherence, entropy_score,
        )
        return Argument(**dict(row))

    async def get_argument(self, argument_id: UUID) -> Argument | None:
        row = await self._pool.fetchrow("SELECT * FROM arguments WHERE id = $1", argument_id)
        return Argument(**dict(row)) if row else None

    async def embedded_arguments(self, exclude_id: UUID | None = None) -> list[SimilarityCandidate]:
        rows = await self._pool.fetch(
            """
            SELECT id, content, confidence, embedding FROM arguments
            WHERE cardinality(embedding) > 0
              AND ($1::uuid IS NULL OR id <> $1)
            """,
            exclude_id,
        )
        return [SimilarityCandidate(**dict(r)) for r in rows]

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

        async with self._pool.acquire() as conn:
            async with conn.transaction():
                if counter:
                    row = await conn.fetchrow(
                        f"UPDATE arguments SET {counter} = {counter} + 1, updated_at = now() "
                        "WHERE id = $1 RETURNING *",
                        argument_id,
                    )
                else:
                    row = await conn.fetchrow(
                        "SELECT * FROM arguments WHERE id = $1 FOR UPDATE", argument_id
                    )
                if row is None:
                    raise NotFound("Argument", argument_id)

                argument = Argument(**dict(row))
                target = decide(argument)
                if target is None:
                    return None

                change = ledger.update_confidence(argument.confidence, target, reason)
                effective_value = None
                if effective is not None:
                    dependencies = await self._fact_dependencies(conn, argument_id)
                    effective_value = effective(change.new_confidence, dependencies)
                await conn.execute(
                    """
                    UPDATE arguments SET
                        confidence = $2,
                        confidence_history = confidence_history || $3::jsonb,
                        effective_confidence = COALESCE($4::double precision, effective_confidence),
                        updated_at = now()
                    WHERE id = $1
                    """,
                    argument_id, change.new_confidence, _history_json([change.entry]), effective_value,
                )
                record = confidence_record(
                    change,
                    argument_id=argument_id,
                    interaction_id=interaction_id,
                    propagated_from=propagated_from,
                    cosine_similarity=cosine_similarity,
                )
                await self._insert_update(conn, record)
                return record

    async def recalculate_effective_confidence(
        self,
        argument_id: UUID,
        compute: Callable[[float, list[FactDependency]], float],
    ) -> float:
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                confidence = await conn.fetchval(
                    "SELECT confidence FROM arguments WHERE id = $1 FOR UPDATE", argument_id
                )
                if confidence is None:
                    raise NotFound("Argument", argument_id)
                dependencies = await self._fact_dependencies(conn, argument_id)
                effective = compute(confidence, dependencies)
                await conn.execute(
                    "UPDATE arguments SET effective_confidence = $2, updated_at = now() WHERE id = $1",
                    argument_id, effective,
                )
                return effective

    async def set_cluster(self, assignment: ClusterAssignment):
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    "UPDATE arguments SET cluster_id = $1, updated_at = now() WHERE id = ANY($2::uuid[])",
                    assignment.cluster_id, assignment.members,
                )
                if assignment.head_id:
                    await conn.execute(
                        "UPDATE arguments SET is_cluster_head = true WHERE id = $1",
                        assignment.head_id,
                    )

    async def cluster_arguments(self, cluster_id: UUID) -> list[Argument]:
        rows = await self._pool.fetch(
            "SELECT * FROM arguments WHERE cluster_id = $1 ORDER BY confidence DESC", cluster_id
        )
        return [Argument(**dict(r)) for r in rows]

    async def top_arguments(self, limit: int = 20) -> list[Argument]:
        rows = await self._pool.fetch(
            "SELECT * FROM arguments ORDER BY confidence DESC LIMIT $1", limit
        )
        return [Argument(**dict(r)) for r in rows]

    async def post_arguments(self, post_id: str) -> list[Argument]:
        rows = await self._pool.fetch(
            "SELECT * FROM arguments WHERE source_post_id = $1 ORDER BY created_at DESC", post_id
        )
        return [Argument(**dict(r)) for r in rows]

    # --- Links ---

    async def upsert_link(self, argument_id: UUID, fact_id: UUID, weight: float) -> ArgumentFactLink:
        row = await self._pool.fetchrow(
            """
            INSERT INTO argument_fact_links (argument_id, fact_id, dependency_strength)
            VALUES ($1, $2, $3)
            ON CONFLICT (argument_id, fact_id) DO UPDATE SET
                dependency_strength = $3,
                updated_at = now()
            RETURNING *
            """,
            argument_id, fact_id, weight,
        )
        return ArgumentFactLink(**dict(row))

    async def fact_dependencies(self, argument_id: UUID) -> list[FactDependency]:
        async with self._pool.acquire() as conn:
            return await self._fact_dependencies(conn, argument_id)

    async def _fact_dependencies(self, conn: asyncpg.Connection, argument_id: UUID) -> list[FactDependency]:
        rows = await conn.fetch(
            """
            SELECT f.id AS fact_id, f.claim, f.confidence AS fact_confidence, l.dependency_strength
            FROM argument_fact_links l
            JOIN facts f ON f.id = l.fact_id
            WHERE l.argument_id = $1
            """,
            argument_id,
        )
        return [FactDependency(**dict(r)) for r in rows]

    async def dependent_argument_ids(self, fact_id: UUID) -> list[UUID]:
        rows = await self._pool.fetch(
            "SELECT argument_id FROM argument_fact_links WHERE fact_id = $1", fact_id
        )
        return [r["argument_id"] for r in rows]

    async def dependent_arguments(self, fact_id: UUID) -> list[DependentArgument]:
        rows = await self._pool.fetch(
            """
            SELECT a.id, a.content, a.summary, a.confidence, a.effective_confidence, l.dependency_strength
            FROM argument_fact_links l
            JOIN arguments a ON a.id = l.argument_id
            WHERE l.fact_id = $1
            ORDER BY l.dependency_strength DESC
            """,
            fact_id,
        )
        return [DependentArgument(**dict(r)) for r in rows]

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
        row = await self._pool.fetchrow(
            """
            INSERT INTO facts (claim, source_post_id, source_user_id, embedding, confidence, confidence_history)
            VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING *
            """,
            claim, source_post_id, source_user_id, embedding, confidence, _history_json(history),
        )
        return Fact(**dict(row))

    async def get_fact(self, fact_id: UUID) -> Fact | None:
        row = await self._pool.fetchrow("SELECT * FROM facts WHERE id = $1", fact_id)
        return Fact(**dict(row)) if row else None

    async def embedded_facts(self, exclude_id: UUID | None = None) -> list[SimilarityCandidate]:
        rows = await self._pool.fetch(
            """
            SELECT id, claim AS content, confidence, embedding FROM facts
            WHERE cardinality(embedding) > 0
              AND ($1::uuid IS NULL OR id <> $1)
            """,
            exclude_id,
        )
        return [SimilarityCandidate(**dict(r)) for r in rows]

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

        async with self._pool.acquire() as conn:
            async with conn.transaction():
                if counter:
                    row = await conn.fetchrow(
                        f"UPDATE facts SET {counter} = {counter} + 1, updated_at = now() "
                        "WHERE id = $1 RETURNING *",
                        fact_id,
                    )
                else:
                    row = await conn.fetchrow("SELECT * FROM facts WHERE id = $1 FOR UPDATE", fact_id)
                if row is None:
                    raise NotFound("Fact", fact_id)

                fact = Fact(**dict(row))
                target = decide(fact)
                if target is None:
                    return None

                change = ledger.update_confidence(fact.confidence, target, reason)
                await conn.execute(
                    """
                    UPDATE facts SET
                        confidence = $2,
                        confidence_history = confidence_history || $3::jsonb,
                        updated_at = now()
                    WHERE id = $1
                    """,
                    fact_id, change.new_confidence, _history_json([change.entry]),
                )
                record = confidence_record(change, fact_id=fact_id, interaction_id=interaction_id)
                await self._insert_update(conn, record)
                return record

    async def low_confidence_facts(self, threshold: float = 0.3, limit: int = 20) -> list[LowConfidenceFact]:
        rows = await self._pool.fetch(
            """
            SELECT f.*,
                   COALESCE(array_agg(l.argument_id) FILTER (WHERE l.argument_id IS NOT NULL), '{}') AS dependent_argument_ids
            FROM facts f
            LEFT JOIN argument_fact_links l ON l.fact_id = f.id
            WHERE f.confidence < $1
            GROUP BY f.id
            ORDER BY f.confidence ASC
            LIMIT $2
            """,
            threshold, limit,
        )
        results = []
        for r in rows:
            data = dict(r)
            dependents = data.pop("dependent_argument_ids")
            results.append(LowConfidenceFact(fact=Fact(**data), dependent_argument_ids=list(dependents)))
        return results

    async def established_facts(self, threshold: float = 0.8, limit: int = 20) -> list[Fact]:
        rows = await self._pool.fetch(
            "SELECT * FROM facts WHERE confidence >= $1 ORDER BY confidence DESC LIMIT $2",
            threshold, limit,
        )
        return [Fact(**dict(r)) for r in rows]

    async def search_facts(self, query: str, limit: int = 10) -> list[Fact]:
        rows = await self._pool.fetch(
            "SELECT * FROM facts WHERE claim ILIKE $1 ORDER BY confidence DESC LIMIT $2",
            _like_pattern(query), limit,
        )
        return [Fact(**dict(r)) for r in rows]

    # --- Audit ---

    async def _insert_update(self, conn: asyncpg.Connection, record: ConfidenceUpdate):
        await conn.execute(
            """
            INSERT INTO confidence_updates (
                id, argument_id, fact_id, interaction_id, old_confidence, new_confidence,
                reason, propagated_from, cosine_similarity, created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            """,
            record.id, record.argument_id, record.fact_id, record.interaction_id,
            record.old_confidence, record.new_confidence, record.reason,
            record.propagated_from, record.cosine_similarity, record.created_at,
        )

    async def confidence_updates(
        self,
        argument_id: UUID | None = None,
        fact_id: UUID | None = None,
        limit: int = 10,
    ) -> list[ConfidenceUpdate]:
        rows = await self._pool.fetch(
            """
            SELECT * FROM confidence_updates
            WHERE ($1::uuid IS NULL OR argument_id = $1)
              AND ($2::uuid IS NULL OR fact_id = $2)
            ORDER BY created_at DESC
            LIMIT $3
            """,
            argument_id, fact_id, limit,
        )
        return [ConfidenceUpdate(**dict(r)) for r in rows]

    async def propagated_updates(self, source_id: UUID, limit: int = 50) -> list[ConfidenceUpdate]:
        rows = await self._pool.fetch(
            """
            SELECT * FROM confidence_updates
            WHERE propagated_from = $1
            ORDER BY created_at DESC
            LIMIT $2
            """,
            source_id, limit,
        )
        return [ConfidenceUpdate(**dict(r)) for r in rows]
