"""Wires the store, embedding client and services together."""

from argument_ledger import db
from argument_ledger.arguments import ArgumentService
from argument_ledger.audit import AuditTrail
from argument_ledger.config import LEDGER_STORE, LedgerSettings
from argument_ledger.embeddings import EmbeddingClient
from argument_ledger.facts import FactService
from argument_ledger.memory_store import MemoryStore
from argument_ledger.similarity import SimilarityIndex
from argument_ledger.store import PostgresStore


class Ledger:
    def __init__(self, store, embedder, settings: LedgerSettings | None = None):
        self.settings = settings or LedgerSettings()
        self.store = store
        self.embedder = embedder
        self.index = SimilarityIndex(store)
        self.audit = AuditTrail(store)
        self.arguments = ArgumentService(store, embedder, self.index, self.settings)
        self.facts = FactService(store, embedder, self.index, self.arguments, self.settings)


async def open_ledger(
    store_kind: str = LEDGER_STORE,
    embedder=None,
    settings: LedgerSettings | None = None,
) -> Ledger:
    if store_kind == "memory":
        store = MemoryStore()
    elif store_kind == "postgres":
        store = PostgresStore(await db.get_pool())
    else:
        raise ValueError(f"Unknown store: {store_kind!r} (expected 'postgres' or 'memory')")
    return Ledger(store, embedder or EmbeddingClient(), settings)


async def close_ledger(ledger: Ledger):
    if isinstance(ledger.store, PostgresStore):
        await db.close_pool()
