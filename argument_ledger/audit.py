"""Audit Trail — append-only record of every confidence mutation."""

import uuid
from uuid import UUID
from argument_ledger.ledger import ConfidenceChange, utcnow
from argument_ledger.models import ConfidenceUpdate


def confidence_record(
    change: ConfidenceChange,
    argument_id: UUID | None = None,
    fact_id: UUID | None = None,
    interaction_id: UUID | None = None,
    propagated_from: UUID | None = None,
    cosine_similarity: float | None = None,
) -> ConfidenceUpdate:
    return ConfidenceUpdate(
        id=uuid.uuid4(),
        argument_id=argument_id,
        fact_id=fact_id,
        interaction_id=interaction_id,
        old_confidence=change.old_confidence,
        new_confidence=change.new_confidence,
        reason=change.entry.reason,
        propagated_from=propagated_from,
        cosine_similarity=cosine_similarity,
        created_at=change.entry.timestamp,
    )


def describe(update: ConfidenceUpdate) -> str:
    target = f"argument {update.argument_id}" if update.argument_id else f"fact {update.fact_id}"
    line = (
        f"{update.created_at:%Y-%m-%d %H:%M:%S} {target}: "
        f"{update.old_confidence:.3f} → {update.new_confidence:.3f} ({update.reason})"
    )
    if update.propagated_from:
        line += f" via {update.propagated_from} @ similarity {update.cosine_similarity:.3f}"
    return line


class AuditTrail:
    """Read side of the audit log. Writes happen inside the store's confidence transactions."""

    def __init__(self, store):
        self._store = store

    async def recent(
        self,
        argument_id: UUID | None = None,
        fact_id: UUID | None = None,
        limit: int = 10,
    ) -> list[ConfidenceUpdate]:
        return await self._store.confidence_updates(
            argument_id=argument_id, fact_id=fact_id, limit=limit
        )

    async def propagated_from(self, source_id: UUID, limit: int = 50) -> list[ConfidenceUpdate]:
        return await self._store.propagated_updates(source_id, limit=limit)

    async def explain(
        self,
        argument_id: UUID | None = None,
        fact_id: UUID | None = None,
        limit: int = 10,
    ) -> list[str]:
        updates = await self.recent(argument_id=argument_id, fact_id=fact_id, limit=limit)
        return [describe(u) for u in updates]
