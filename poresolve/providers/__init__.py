from .common import TRANSIENT_EXCEPTIONS, post_json
from .embedding import HashingEmbeddingProvider, OpenAIEmbeddingProvider
from .llm import OpenAIChatProvider

__all__ = [
    "TRANSIENT_EXCEPTIONS",
    "post_json",
    "HashingEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "OpenAIChatProvider",
]
