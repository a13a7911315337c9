"""Fact Service — factual claims that arguments depend on.

A change to a fact's confidence cascades to every dependent argument's
effective confidence, however small the change.
"""

import logging
from uuid import UUID
from argument_ledger import ledger
from argument_ledger.arguments import ArgumentService
from argument_ledger.audit import AuditTrail
from argument_ledger.config import LedgerSettings
from argument_ledger.errors import DependencyUnavailable, NotFound, ValidationFailure
from argument_ledger.models import (
    ClaimKind, Fact, FactDetail, FactUpdateResult, LowConfidenceFact, SimilarClaim,
)
from argument_ledger.similarity import SimilarityIndex

logger = logging.getLogger(__name__)


class FactService:
    def __init__(
        self,
        store,
        embedder,
        index: SimilarityIndex,
        arguments: ArgumentService,
        settings: LedgerSettings | None = None,
    ):
        self.store = store
        self.embedder = embedder
        self.index = index
        self.arguments = arguments
        self.settings = settings or LedgerSettings()
        self.audit = AuditTrail(store)

    async def create_fact(
        self,
        claim: str,
        source_post_id: str | None = None,
        source_user_id: str | None = None,
        initial_confidence: float | None = None,
    ) -> Fact:
        if not claim or not claim.strip():
            raise ValidationFailure("Fact claim is required")
        if initial_confidence is None:
            initial_confidence = self.settings.initial_confidence
        if not 0 <= initial_confidence <= 1:
            raise ValidationFailure(f"initial_confidence must be within [0, 1], got {initial_confidence}")

        embedding = await self.embedder.embed(claim)
        fact = await self.store.insert_fact(
            claim=claim,
            embedding=embedding,
            confidence=initial_confidence,
            history=ledger.initial_history(initial_confidence),
            source_post_id=source_post_id,
            source_user_id=source_user_id,
        )
        logger.info("Created fact %s", fact.id)
        return fact

    async def find_similar_facts(
        self,
        claim: str,
        limit: int = 5,
        min_similarity: float | None = None,
    ) -> list[SimilarClaim]:
        """Facts worded closely enough to be the same assertion."""
        if not claim or not claim.strip():
            raise ValidationFailure("Fact claim is required")
        try:
            embedding = await self.embedder.embed(claim)
        except DependencyUnavailable:
            logger.warning("Embedding unavailable, similar fact lookup returns nothing", exc_info=True)
            return []
        return await self.index.find_similar(
            embedding,
            ClaimKind.FACT,
            limit=limit,
            min_similarity=self.settings.fact_duplicate_similarity if min_similarity is None else min_similarity,
        )

    async def update_fact_confidence(
        self,
        fact_id: UUID,
        new_confidence: float,
        reason: str,
        interaction_id: UUID | None = None,
    ) -> FactUpdateResult:
        target = ledger.requested_confidence(new_confidence)
        return await self._apply(fact_id, lambda fact: target, reason, interaction_id)

    async def challenge_fact(self, fact_id: UUID, reason: str) -> FactUpdateResult:
        settings = self.settings
        return await self._apply(
            fact_id,
            lambda fact: fact.confidence - ledger.challenge_penalty(fact.challenge_count, settings),
            f"Challenge: {reason}",
            counter="challenge_count",
        )

    async def cite_fact(self, fact_id: UUID, context_post_id: str | None = None) -> FactUpdateResult:
        settings = self.settings
        reason = f"Cited in post {context_post_id}" if context_post_id else "Cited"
        return await self._apply(
            fact_id,
            lambda fact: min(1.0, fact.confidence + ledger.citation_boost(fact.citation_count, settings)),
            reason,
            counter="citation_count",
        )

    async def _apply(
        self,
        fact_id: UUID,
        decide,
        reason: str,
        interaction_id: UUID | None = None,
        counter: str | None = None,
    ) -> FactUpdateResult:
        record = await self.store.apply_fact_confidence(
            fact_id, decide, reason, interaction_id=interaction_id, counter=counter,
        )

        # Full cascade: effective confidence must always reflect the latest fact state
        affected = []
        for argument_id in await self.store.dependent_argument_ids(fact_id):
            await self.arguments.recalculate_effective_confidence(argument_id)
            affected.append(argument_id)

        logger.info(
            "Updated fact %s confidence %.3f -> %.3f (cascaded to %d arguments)",
            fact_id, record.old_confidence, record.new_confidence, len(affected),
        )
        return FactUpdateResult(
            fact_id=fact_id,
            old_confidence=record.old_confidence,
            new_confidence=record.new_confidence,
            affected_arguments=affected,
        )

    # --- Reads ---

    async def get_fact(self, fact_id: UUID) -> FactDetail:
        fact = await self.store.get_fact(fact_id)
        if fact is None:
            raise NotFound("Fact", fact_id)
        return FactDetail(
            fact=fact,
            dependent_arguments=await self.store.dependent_arguments(fact_id),
            recent_updates=await self.audit.recent(fact_id=fact_id, limit=10),
        )

    async def get_low_confidence_facts(self, threshold: float = 0.3, limit: int = 20) -> list[LowConfidenceFact]:
        """Facts that look debunked, with the arguments leaning on them."""
        return await self.store.low_confidence_facts(threshold, limit)

    async def get_established_facts(self, threshold: float = 0.8, limit: int = 20) -> list[Fact]:
        return await self.store.established_facts(threshold, limit)

    async def search_facts(self, query: str, limit: int = 10) -> list[Fact]:
        if not query or not query.strip():
            raise ValidationFailure("Search query is required")
        return await self.store.search_facts(query.strip(), limit)
