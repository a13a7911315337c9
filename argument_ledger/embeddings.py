"""Embedding service client."""

import httpx
from argument_ledger.config import EMBEDDING_URL, EMBEDDING_API_KEY, EMBEDDING_MODEL, EMBEDDING_TIMEOUT
from argument_ledger.errors import DependencyUnavailable, ValidationFailure


def clean_text(text: str) -> str:
    return " ".join(text.split())


class EmbeddingClient:
    """Turns text into a fixed-length vector via the embedding service's /embed endpoint."""

    def __init__(
        self,
        base_url: str = EMBEDDING_URL,
        model: str = EMBEDDING_MODEL,
        api_key: str = EMBEDDING_API_KEY,
        timeout: float = EMBEDDING_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    async def embed(self, text: str) -> list[float]:
        cleaned = clean_text(text or "")
        if not cleaned:
            raise ValidationFailure("Cannot embed empty text")

        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["authorization"] = f"Bearer {self.api_key}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    f"{self.base_url}/embed",
                    headers=headers,
                    json={"text": cleaned, "model": self.model},
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise DependencyUnavailable(f"Embedding service failed: {e}") from e

        embedding = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(embedding, list) or not embedding:
            raise DependencyUnavailable("Embedding service returned no vector")
        try:
            return [float(x) for x in embedding]
        except (TypeError, ValueError) as e:
            raise DependencyUnavailable("Embedding service returned a malformed vector") from e
