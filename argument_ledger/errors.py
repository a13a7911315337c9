"""Error taxonomy for the ledger services."""

from uuid import UUID


class LedgerError(Exception):
    """Base class for every error the ledger raises on purpose."""


class NotFound(LedgerError):
    def __init__(self, kind: str, entity_id: UUID | str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} {entity_id} not found")


class ValidationFailure(LedgerError):
    """Malformed input, rejected before any embedding or store call."""


class DependencyUnavailable(LedgerError):
    """The embedding service or another backend could not be reached."""


class ClusteringFailure(LedgerError):
    """Best-effort clustering failed. Callers log this and move on."""
