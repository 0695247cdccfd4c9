"""
Order Resolution Orchestrator.

Responsibilities:
- Resolve customer, then contact (with the resolved customer as context),
  then every line item concurrently.
- Apply the quantity guardrail to the resolved items.
- Fold the three outcomes into one status for downstream handling.

Non-Responsibilities:
- No scoring, retrieval or tiebreak logic; the cascade owns those.
- No persistence of the outcome.

Invariant:
An infrastructure failure is reported as status "error" (or
"pending_review" when a provider outage shaped an unmatched customer),
never as a business outcome such as "new_customer".
"""

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from poresolve.cache import CachedReferenceStore, TTLCache
from poresolve.config import ResolverConfig
from poresolve.database import session_factory
from poresolve.errors import StoreUnavailable
from poresolve.health import HealthTracker
from poresolve.logger import get_logger
from poresolve.models import (
    MISC_CHARGE_CODE,
    MISC_ITEM_CODE,
    EntityKind,
    ItemResolution,
    LineItem,
    MatchQuery,
    MatchResult,
    OrderStatus,
    ValidationOutcome,
)
from poresolve.normalize import normalize_contact
from poresolve.providers import (
    TRANSIENT_EXCEPTIONS,
    HashingEmbeddingProvider,
    OpenAIChatProvider,
    OpenAIEmbeddingProvider,
)
from poresolve.retry import RetryPolicy, is_transient_error
from storage.repositories.audit import JsonlAuditSink, SqlAuditSink
from storage.repositories.reference import SqlReferenceStore

from .charge_codes import charge_reason
from .gate import GateThresholds
from .guardrail import apply_quantity_guardrail
from .kinds import infer_role
from .resolver import EntityResolver

logger = get_logger()


class Orchestrator:
    """
    Sequences the cascade over one order.

    Args:
        resolver: The shared EntityResolver
        health: HealthTracker the resolver reports provider stages to
        item_workers: Worker threads for line item resolution
        charge_quantity_ceiling: Largest quantity plausible for a charge line
        allow_default_contact: Accept a matched customer with an unmatched
            contact as a customer-level default identity
    """

    def __init__(
        self,
        resolver: EntityResolver,
        health: Optional[HealthTracker] = None,
        item_workers: int = 4,
        charge_quantity_ceiling: int = 10,
        allow_default_contact: bool = True,
    ):
        self.resolver = resolver
        self.health = health or resolver.health
        self.item_workers = item_workers
        self.charge_quantity_ceiling = charge_quantity_ceiling
        self.allow_default_contact = allow_default_contact

    def resolve(self, kind: Union[EntityKind, str], query: Union[MatchQuery, Mapping[str, Any]]) -> MatchResult:
        return self.resolver.resolve(kind, query)

    def orchestrate(
        self,
        customer: Optional[Mapping[str, Any]],
        contact: Optional[Mapping[str, Any]],
        items: Sequence[Union[LineItem, Mapping[str, Any]]],
    ) -> ValidationOutcome:
        start = time.perf_counter()
        outcome = ValidationOutcome(status=OrderStatus.READY)

        # 1. Customer
        try:
            outcome.customer = self.resolver.resolve(EntityKind.CUSTOMER, customer or {})
        except StoreUnavailable as e:
            outcome.errors.append(f"customer: {e}")
        customer_key = outcome.customer.key if outcome.customer and outcome.customer.matched else None

        # 2. Contact, scoped by the resolved customer
        contact_query = normalize_contact(
            contact or {},
            customer_key=customer_key,
            excluded_domains=self.resolver.excluded_domains,
        )
        try:
            outcome.contact = self.resolver.resolve(EntityKind.CONTACT, contact_query)
            outcome.contact_role = self._contact_role(outcome.contact, contact_query)
        except StoreUnavailable as e:
            outcome.errors.append(f"contact: {e}")

        if (
            customer_key
            and outcome.contact is not None
            and not outcome.contact.matched
            and self.allow_default_contact
            and (contact_query.email or contact_query.name)
        ):
            outcome.contact_default_identity = True
            outcome.contact_role = infer_role(contact_query.job_title)
            logger.info("Contact accepted as customer default identity", customer=customer_key)

        # 3. Items
        lines = [i if isinstance(i, LineItem) else LineItem.from_dict(i) for i in items]
        resolved = self._resolve_items(lines)
        outcome.items = [item for item, _ in resolved]
        outcome.errors.extend(f"item {n}: {err}" for n, (_, err) in enumerate(resolved, 1) if err)
        apply_quantity_guardrail(outcome.items, self.charge_quantity_ceiling)

        outcome.degraded_stages = self._degraded_stages(outcome)
        outcome.status = self._status(outcome)
        outcome.processing_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "Order resolved",
            status=outcome.status.value,
            customer=customer_key,
            contact=outcome.contact.key if outcome.contact else None,
            valid_items=outcome.valid_items,
            total_items=outcome.total_items,
            degraded_stages=outcome.degraded_stages,
            processing_ms=round(outcome.processing_ms, 1),
        )
        return outcome

    def _resolve_items(self, lines: List[LineItem]) -> List[Tuple[ItemResolution, Optional[str]]]:
        if not lines:
            return []
        workers = max(1, min(self.item_workers, len(lines)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            # map() preserves line order
            return list(executor.map(self._resolve_item, lines))

    def _resolve_item(self, line: LineItem) -> Tuple[ItemResolution, Optional[str]]:
        try:
            result = self.resolver.resolve(
                EntityKind.ITEM,
                {"sku": line.sku, "description": line.description, "color": line.color},
            )
            error = None
        except StoreUnavailable as e:
            result = MatchResult.no_match(reasons=("store_unavailable",))
            error = str(e)

        # The resolver classifies charge lines before any store access
        charge = charge_reason(result.reasons)
        notes = [charge] if charge else []
        if result.matched:
            final_code = result.key
        else:
            final_code = MISC_CHARGE_CODE if charge else MISC_ITEM_CODE
            notes.append(f"unresolved: fallback {final_code}")
        item = ItemResolution(
            line=line,
            result=result,
            final_code=final_code,
            is_charge=charge is not None,
            notes=notes,
        )
        return item, error

    def _contact_role(self, result: MatchResult, query: MatchQuery) -> Optional[str]:
        if not result.matched:
            return None
        job_title = query.job_title
        entities = self.resolver.store.find_by_keys(EntityKind.CONTACT, [result.key])
        if entities and entities[0].job_title:
            job_title = entities[0].job_title
        return infer_role(job_title)

    def _degraded_stages(self, outcome: ValidationOutcome) -> List[str]:
        stages = set(self.health.unhealthy_stages())
        if outcome.customer is not None and outcome.customer.degraded:
            stages.add("customer_resolution")
        if outcome.contact is not None and outcome.contact.degraded:
            stages.add("contact_resolution")
        if any(item.result.degraded for item in outcome.items):
            stages.add("item_resolution")
        return sorted(stages)

    def _status(self, outcome: ValidationOutcome) -> OrderStatus:
        if outcome.errors:
            return OrderStatus.ERROR
        if outcome.customer is None or not outcome.customer.matched:
            if outcome.customer is not None and outcome.customer.degraded:
                return OrderStatus.PENDING_REVIEW
            return OrderStatus.NEW_CUSTOMER
        contact_missing = not outcome.contact.matched and not outcome.contact_default_identity
        unresolved = [item for item in outcome.items if not item.resolved]
        # An outage behind a miss is not a business exception
        if contact_missing and outcome.contact.degraded:
            return OrderStatus.PENDING_REVIEW
        if any(item.result.degraded for item in unresolved):
            return OrderStatus.PENDING_REVIEW
        if contact_missing:
            return OrderStatus.MISSING_CONTACT
        if unresolved:
            return OrderStatus.INVALID_ITEMS
        return OrderStatus.READY


def build_retry_policy(config: ResolverConfig) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.retry_max_attempts,
        base_delay=config.retry_base_delay,
        max_delay=config.retry_max_delay,
        retry_on=TRANSIENT_EXCEPTIONS,
        retry_if=is_transient_error,
    )


def build_embedder(config: ResolverConfig, policy: Optional[RetryPolicy] = None):
    """Embedding provider for the configured backend."""
    policy = policy or build_retry_policy(config)
    if config.embedding_backend == "hashing":
        return HashingEmbeddingProvider(config.embedding_dimensions)
    if not config.openai_api_key:
        logger.warning("OPENAI_API_KEY not set, semantic retrieval will degrade")
    return OpenAIEmbeddingProvider(
        api_key=config.openai_api_key,
        model=config.embedding_model,
        base_url=config.openai_base_url,
        timeout=config.provider_timeout,
        policy=policy,
    )


def build_orchestrator(
    config: ResolverConfig,
    store=None,
    embedder=None,
    llm=None,
    audit_sink=None,
    health: Optional[HealthTracker] = None,
) -> Orchestrator:
    """
    Wire every collaborator from config.

    Any collaborator passed in explicitly is used as-is.
    """
    health = health or HealthTracker(failure_threshold=config.health_failure_threshold)
    policy = build_retry_policy(config)

    sessions = None
    if store is None or audit_sink is None:
        sessions = session_factory(config.database_path)
    if store is None:
        cache = TTLCache(capacity=config.cache_capacity, ttl_seconds=config.cache_ttl_seconds)
        store = CachedReferenceStore(SqlReferenceStore(sessions), cache)
    if audit_sink is None:
        audit_sink = JsonlAuditSink(config.audit_path) if config.audit_path else SqlAuditSink(sessions)
    if embedder is None:
        embedder = build_embedder(config, policy)
    if llm is None and config.openai_api_key:
        llm = OpenAIChatProvider(
            api_key=config.openai_api_key,
            model=config.llm_model,
            base_url=config.openai_base_url,
            timeout=config.provider_timeout,
            policy=policy,
        )

    resolver = EntityResolver(
        store=store,
        embedder=embedder,
        llm=llm,
        audit_sink=audit_sink,
        health=health,
        thresholds=GateThresholds.from_config(config),
        top_k=config.top_k,
        min_phone_digits=config.min_phone_digits,
        excluded_domains=config.excluded_domains,
    )
    return Orchestrator(
        resolver,
        health=health,
        item_workers=config.item_workers,
        charge_quantity_ceiling=config.charge_quantity_ceiling,
        allow_default_contact=config.allow_default_contact,
    )
