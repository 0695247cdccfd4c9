"""Embedding providers."""

import hashlib
import threading
from typing import List, Optional

from ..errors import MalformedProviderResponse
from ..logger import get_logger
from ..normalize import tokens
from ..retry import RetryPolicy
from ..vectors import l2_normalize
from .common import auth_headers, post_json

logger = get_logger()


class OpenAIEmbeddingProvider:
    """Embeddings over the OpenAI-compatible /embeddings endpoint."""

    name = "embedding"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "text-embedding-3-small",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 15.0,
        policy: Optional[RetryPolicy] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.url = f"{base_url.rstrip('/')}/embeddings"
        self.timeout = timeout
        self.policy = policy
        self._dimensions: Optional[int] = None
        self._lock = threading.Lock()

    def embed(self, text: str) -> List[float]:
        body = post_json(
            self.url,
            {"model": self.model, "input": text},
            auth_headers(self.api_key, self.name),
            self.timeout,
            policy=self.policy,
            provider=self.name,
        )
        try:
            vector = [float(v) for v in body["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise MalformedProviderResponse("embedding response missing data[0].embedding", raw=str(body)[:500]) from e
        if not vector:
            raise MalformedProviderResponse("embedding response was an empty vector")

        with self._lock:
            if self._dimensions is None:
                self._dimensions = len(vector)
            elif len(vector) != self._dimensions:
                raise MalformedProviderResponse(
                    f"embedding dimension changed from {self._dimensions} to {len(vector)}"
                )
        logger.debug("Embedding computed", model=self.model, dimensions=len(vector))
        return vector


class HashingEmbeddingProvider:
    """Hashing-based embedding for offline use and tests.

    Tokens are hashed into a fixed number of buckets and the result is
    L2-normalised, so identical text always yields the identical vector.
    """

    name = "embedding"

    def __init__(self, dimensions: int = 64):
        if dimensions < 1:
            raise ValueError("dimensions must be at least 1")
        self.dimensions = dimensions

    def embed(self, text: str) -> List[float]:
        vector = [0.0] * self.dimensions
        for token in tokens(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "big") % self.dimensions] += 1.0
        return l2_normalize(vector)
