"""
Runtime configuration.

Every setting has a default and can be overridden through environment
variables (optionally loaded from .env by env.load_env).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Optional, Tuple

from .errors import ConfigError


DEFAULT_EXCLUDED_DOMAINS = ("highcaliberline.com",)


def _read(env: Mapping[str, str], name: str, cast: Callable, default):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError as e:
        raise ConfigError(f"Invalid value for {name}: {raw!r}") from e


def _bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(value)


def _domains(value: str) -> Tuple[str, ...]:
    return tuple(d.strip().lower() for d in value.split(",") if d.strip())


@dataclass(frozen=True)
class ResolverConfig:
    """All tunables for the cascade and its collaborators."""

    # Storage
    database_path: Path = Path("data/reference.db")
    audit_path: Optional[Path] = None

    # Providers
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    embedding_backend: str = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 64
    llm_model: str = "gpt-4o"
    provider_timeout: float = 15.0

    # Retry policy
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 8.0

    # Reference cache
    cache_capacity: int = 1000
    cache_ttl_seconds: float = 300.0

    # Health tracking
    health_failure_threshold: int = 3

    # Concurrency
    item_workers: int = 4

    # Retrieval
    top_k: int = 25
    alternatives_limit: int = 3
    tiebreak_candidates: int = 3
    min_phone_digits: int = 10

    # Confidence gate
    accept_threshold: float = 0.85
    review_threshold: float = 0.75
    margin_threshold: float = 0.03
    tiebreak_confidence: float = 0.8

    # Items
    charge_quantity_ceiling: int = 10

    # Contacts
    excluded_domains: Tuple[str, ...] = field(default=DEFAULT_EXCLUDED_DOMAINS)
    allow_default_contact: bool = True

    def __post_init__(self):
        if not 0.0 <= self.review_threshold <= self.accept_threshold <= 1.0:
            raise ConfigError(
                "Thresholds must satisfy 0 <= review_threshold <= accept_threshold <= 1"
            )
        if self.cache_capacity < 1:
            raise ConfigError("cache_capacity must be at least 1")
        if self.item_workers < 1:
            raise ConfigError("item_workers must be at least 1")
        if self.retry_max_attempts < 1:
            raise ConfigError("retry_max_attempts must be at least 1")
        if self.embedding_backend not in {"openai", "hashing"}:
            raise ConfigError(f"embedding_backend must be openai or hashing, got {self.embedding_backend!r}")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ResolverConfig":
        """Build a config from environment variables (os.environ by default)."""
        env = os.environ if env is None else env
        audit = env.get("PORESOLVE_AUDIT_LOG")
        return cls(
            database_path=Path(env.get("PORESOLVE_DB") or "data/reference.db"),
            audit_path=Path(audit) if audit else None,
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            openai_base_url=(env.get("OPENAI_BASE_URL") or cls.openai_base_url).rstrip("/"),
            embedding_backend=(env.get("PORESOLVE_EMBEDDING_BACKEND") or cls.embedding_backend).lower(),
            embedding_model=env.get("PORESOLVE_EMBEDDING_MODEL") or cls.embedding_model,
            embedding_dimensions=_read(env, "PORESOLVE_EMBEDDING_DIMENSIONS", int, cls.embedding_dimensions),
            llm_model=env.get("PORESOLVE_LLM_MODEL") or cls.llm_model,
            provider_timeout=_read(env, "PORESOLVE_PROVIDER_TIMEOUT", float, cls.provider_timeout),
            retry_max_attempts=_read(env, "PORESOLVE_RETRY_MAX_ATTEMPTS", int, cls.retry_max_attempts),
            retry_base_delay=_read(env, "PORESOLVE_RETRY_BASE_DELAY", float, cls.retry_base_delay),
            retry_max_delay=_read(env, "PORESOLVE_RETRY_MAX_DELAY", float, cls.retry_max_delay),
            cache_capacity=_read(env, "PORESOLVE_CACHE_CAPACITY", int, cls.cache_capacity),
            cache_ttl_seconds=_read(env, "PORESOLVE_CACHE_TTL", float, cls.cache_ttl_seconds),
            health_failure_threshold=_read(
                env, "PORESOLVE_HEALTH_FAILURE_THRESHOLD", int, cls.health_failure_threshold
            ),
            item_workers=_read(env, "PORESOLVE_ITEM_WORKERS", int, cls.item_workers),
            top_k=_read(env, "PORESOLVE_TOP_K", int, cls.top_k),
            alternatives_limit=_read(env, "PORESOLVE_ALTERNATIVES_LIMIT", int, cls.alternatives_limit),
            tiebreak_candidates=_read(env, "PORESOLVE_TIEBREAK_CANDIDATES", int, cls.tiebreak_candidates),
            min_phone_digits=_read(env, "PORESOLVE_MIN_PHONE_DIGITS", int, cls.min_phone_digits),
            accept_threshold=_read(env, "PORESOLVE_ACCEPT_THRESHOLD", float, cls.accept_threshold),
            review_threshold=_read(env, "PORESOLVE_REVIEW_THRESHOLD", float, cls.review_threshold),
            margin_threshold=_read(env, "PORESOLVE_MARGIN_THRESHOLD", float, cls.margin_threshold),
            tiebreak_confidence=_read(env, "PORESOLVE_TIEBREAK_CONFIDENCE", float, cls.tiebreak_confidence),
            charge_quantity_ceiling=_read(
                env, "PORESOLVE_CHARGE_QUANTITY_CEILING", int, cls.charge_quantity_ceiling
            ),
            excluded_domains=_read(
                env, "PORESOLVE_EXCLUDED_DOMAINS", _domains, DEFAULT_EXCLUDED_DOMAINS
            ),
            allow_default_contact=_read(
                env, "PORESOLVE_ALLOW_DEFAULT_CONTACT", _bool, cls.allow_default_contact
            ),
        )
