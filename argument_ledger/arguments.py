"""Argument Service — creation, support/refute, propagation, clustering and fact links."""

import logging
from uuid import UUID
from argument_ledger import ledger
from argument_ledger.audit import AuditTrail
from argument_ledger.config import LedgerSettings
from argument_ledger.errors import ClusteringFailure, DependencyUnavailable, NotFound, ValidationFailure
from argument_ledger.models import (
    Argument, ArgumentDetail, ArgumentFactLink, ArgumentUpdateResult, ClaimKind,
    ClusterAssignment, SimilarClaim,
)
from argument_ledger.similarity import SimilarityIndex

logger = logging.getLogger(__name__)


def _check_unit(name: str, value: float | None):
    if value is not None and not 0 <= value <= 1:
        raise ValidationFailure(f"{name} must be within [0, 1], got {value}")


class ArgumentService:
    def __init__(self, store, embedder, index: SimilarityIndex, settings: LedgerSettings | None = None):
        self.store = store
        self.embedder = embedder
        self.index = index
        self.settings = settings or LedgerSettings()
        self.audit = AuditTrail(store)

    async def create_argument(
        self,
        content: str,
        summary: str | None = None,
        source_post_id: str | None = None,
        source_user_id: str | None = None,
        logical_validity: float | None = None,
        evidence_quality: float | None = None,
        coherence: float | None = None,
        entropy_score: float | None = None,
    ) -> Argument:
        """Embed and persist a new argument at neutral confidence, then try to cluster it."""
        if not content or not content.strip():
            raise ValidationFailure("Argument content is required")
        for name, value in (
            ("logical_validity", logical_validity),
            ("evidence_quality", evidence_quality),
            ("coherence", coherence),
            ("entropy_score", entropy_score),
        ):
            _check_unit(name, value)

        embedding = await self.embedder.embed(content)
        confidence = self.settings.initial_confidence
        argument = await self.store.insert_argument(
            content=content,
            embedding=embedding,
            confidence=confidence,
            history=ledger.initial_history(confidence),
            summary=summary,
            source_post_id=source_post_id,
            source_user_id=source_user_id,
            logical_validity=logical_validity,
            evidence_quality=evidence_quality,
            coherence=coherence,
            entropy_score=entropy_score,
        )
        logger.info("Created argument %s", argument.id)

        try:
            assignment = await self.check_for_clustering(argument.id, embedding)
        except ClusteringFailure:
            logger.warning("Clustering check failed for argument %s", argument.id, exc_info=True)
            assignment = None

        if assignment:
            argument = argument.model_copy(update={
                "cluster_id": assignment.cluster_id,
                "is_cluster_head": assignment.head_id == argument.id,
            })
        return argument

    async def check_for_clustering(self, argument_id: UUID, embedding: list[float]) -> ClusterAssignment | None:
        """Join or found a cluster when a near-duplicate argument already exists."""
        try:
            similar = await self.index.find_similar(
                embedding,
                ClaimKind.ARGUMENT,
                limit=self.settings.cluster_candidates,
                exclude_id=argument_id,
                min_similarity=self.settings.related_similarity,
            )
            match = ledger.cluster_match(similar, self.settings)
            if match is None:
                return None

            existing = await self.store.get_argument(match.id)
            if existing is None:
                raise NotFound("Argument", match.id)

            assignment = ledger.cluster_assignment(argument_id, match.id, existing.cluster_id)
            await self.store.set_cluster(assignment)
        except Exception as e:
            raise ClusteringFailure(f"Could not cluster argument {argument_id}") from e

        logger.info(
            "Clustered argument %s with %s (cluster %s, similarity %.3f)",
            argument_id, match.id, assignment.cluster_id, match.similarity,
        )
        return assignment

    async def find_similar_arguments(
        self,
        embedding: list[float],
        limit: int = 10,
        exclude_id: UUID | None = None,
    ) -> list[SimilarClaim]:
        return await self.index.find_similar(
            embedding,
            ClaimKind.ARGUMENT,
            limit=limit,
            exclude_id=exclude_id,
            min_similarity=self.settings.related_similarity,
        )

    async def search_arguments(self, text: str, limit: int = 10) -> list[SimilarClaim]:
        if not text or not text.strip():
            raise ValidationFailure("Search text is required")
        try:
            embedding = await self.embedder.embed(text)
        except DependencyUnavailable:
            logger.warning("Embedding unavailable, argument search returns nothing", exc_info=True)
            return []
        return await self.find_similar_arguments(embedding, limit=limit)

    async def update_confidence(
        self,
        argument_id: UUID,
        new_confidence: float,
        reason: str,
        interaction_id: UUID | None = None,
    ) -> ArgumentUpdateResult:
        """Set an argument's confidence and propagate the change to related arguments."""
        target = ledger.requested_confidence(new_confidence)
        return await self._apply(argument_id, lambda argument: target, reason, interaction_id)

    async def support_argument(
        self, argument_id: UUID, user_id: str, interaction_id: UUID | None = None
    ) -> ArgumentUpdateResult:
        step = self.settings.support_step
        return await self._apply(
            argument_id,
            lambda argument: argument.confidence + step,
            f"Supported by user {user_id}",
            interaction_id,
            counter="support_count",
        )

    async def refute_argument(
        self, argument_id: UUID, user_id: str, interaction_id: UUID | None = None
    ) -> ArgumentUpdateResult:
        step = self.settings.support_step
        return await self._apply(
            argument_id,
            lambda argument: argument.confidence - step,
            f"Refuted by user {user_id}",
            interaction_id,
            counter="refute_count",
        )

    async def _apply(
        self,
        argument_id: UUID,
        decide,
        reason: str,
        interaction_id: UUID | None,
        counter: str | None = None,
    ) -> ArgumentUpdateResult:
        argument = await self.store.get_argument(argument_id)
        if argument is None:
            raise NotFound("Argument", argument_id)

        record = await self.store.apply_argument_confidence(
            argument_id, decide, reason,
            interaction_id=interaction_id,
            counter=counter,
            effective=ledger.effective_confidence,
        )

        delta = record.new_confidence - record.old_confidence
        propagated_to = await self._propagate(argument, delta, interaction_id)

        logger.info(
            "Updated argument %s confidence %.3f -> %.3f (propagated to %d)",
            argument_id, record.old_confidence, record.new_confidence, len(propagated_to),
        )
        return ArgumentUpdateResult(
            argument_id=argument_id,
            old_confidence=record.old_confidence,
            new_confidence=record.new_confidence,
            propagated_to=propagated_to,
        )

    async def _propagate(self, source: Argument, delta: float, interaction_id: UUID | None) -> list[UUID]:
        """Push a decayed share of `delta` to related arguments. One level deep."""
        if not ledger.should_propagate(delta, self.settings) or not source.embedding:
            return []

        neighbors = await self.index.find_similar(
            source.embedding,
            ClaimKind.ARGUMENT,
            limit=self.settings.propagation_limit,
            exclude_id=source.id,
            min_similarity=self.settings.related_similarity,
        )
        steps = ledger.plan_propagation(source.id, delta, neighbors, self.settings)

        propagated_to = []
        for step in steps:
            record = await self.store.apply_argument_confidence(
                step.target_id,
                lambda neighbor, shift=step.shift: ledger.propagation_target(
                    neighbor.confidence, shift, self.settings
                ),
                f"Propagated from {source.id}",
                interaction_id=interaction_id,
                propagated_from=source.id,
                cosine_similarity=step.similarity,
                effective=ledger.effective_confidence,
            )
            if record is not None:
                propagated_to.append(step.target_id)
        return propagated_to

    async def recalculate_effective_confidence(self, argument_id: UUID) -> float:
        """Confidence dampened by linked facts. Reads, never writes, `confidence`."""
        return await self.store.recalculate_effective_confidence(
            argument_id, ledger.effective_confidence
        )

    async def link_to_fact(self, argument_id: UUID, fact_id: UUID, weight: float = 1.0) -> ArgumentFactLink:
        _check_unit("weight", weight)
        if await self.store.get_argument(argument_id) is None:
            raise NotFound("Argument", argument_id)
        if await self.store.get_fact(fact_id) is None:
            raise NotFound("Fact", fact_id)

        link = await self.store.upsert_link(argument_id, fact_id, weight)
        effective = await self.recalculate_effective_confidence(argument_id)
        logger.info(
            "Linked argument %s to fact %s (weight %.2f, effective %.3f)",
            argument_id, fact_id, weight, effective,
        )
        return link

    # --- Reads ---

    async def get_argument(self, argument_id: UUID) -> ArgumentDetail:
        argument = await self.store.get_argument(argument_id)
        if argument is None:
            raise NotFound("Argument", argument_id)
        return ArgumentDetail(
            argument=argument,
            fact_dependencies=await self.store.fact_dependencies(argument_id),
            recent_updates=await self.audit.recent(argument_id=argument_id, limit=10),
        )

    async def get_cluster_arguments(self, cluster_id: UUID) -> list[Argument]:
        return await self.store.cluster_arguments(cluster_id)

    async def get_top_arguments(self, limit: int = 20) -> list[Argument]:
        return await self.store.top_arguments(limit)

    async def get_post_arguments(self, post_id: str) -> list[Argument]:
        return await self.store.post_arguments(post_id)
