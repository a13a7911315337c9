"""
Shared fixtures for Argument Ledger tests.

Provides:
- FakeEmbedder: deterministic text -> vector mapping with controllable similarity
- Ledger fixtures wired to the in-process MemoryStore
"""

import math
import pytest

from argument_ledger.app import Ledger
from argument_ledger.config import LedgerSettings
from argument_ledger.errors import DependencyUnavailable
from argument_ledger.memory_store import MemoryStore

DIM = 32


def basis(i: int) -> list[float]:
    v = [0.0] * DIM
    v[i] = 1.0
    return v


def near(base: int, other: int, similarity: float) -> list[float]:
    """Unit vector whose cosine similarity to basis(base) is exactly `similarity`."""
    v = [0.0] * DIM
    v[base] = similarity
    v[other] = math.sqrt(1 - similarity ** 2)
    return v


class FakeEmbedder:
    """Registered texts get their registered vector; anything else gets a fresh orthogonal one."""

    def __init__(self):
        self.vectors: dict[str, list[float]] = {}
        self.calls: list[str] = []
        self._next = 16

    def register(self, text: str, vector: list[float]):
        self.vectors[text] = vector

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if text not in self.vectors:
            self.vectors[text] = basis(self._next)
            self._next += 1
        return list(self.vectors[text])


class DownEmbedder:
    def __init__(self):
        self.calls = 0

    async def embed(self, text: str) -> list[float]:
        self.calls += 1
        raise DependencyUnavailable("embedding service unreachable")


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def ledger(store, embedder):
    return Ledger(store, embedder)


@pytest.fixture
def make_ledger(embedder):
    """Factory for ledgers with custom settings."""
    def _make(**overrides) -> Ledger:
        return Ledger(MemoryStore(), embedder, LedgerSettings(**overrides))
    return _make
