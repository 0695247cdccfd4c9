import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

from .env import load_env

from . import __version__
from .config import ResolverConfig
from .database import init_database, session_factory
from .errors import InputValidationError, ResolutionError
from .logger import get_logger
from .models import EntityKind
from .schema import validate_order, validate_query


def _read_json(path: str) -> Any:
    input_path = Path(path)
    if not input_path.exists():
        raise InputValidationError([f"Input file not found: {input_path}"])
    with input_path.open("r", encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise InputValidationError([f"Invalid JSON in {input_path}: {e}"]) from e


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _fail(errors) -> None:
    _emit({"valid": False, "errors": list(errors)})
    raise SystemExit(2)


def _config(args: argparse.Namespace) -> ResolverConfig:
    config = ResolverConfig.from_env()
    if getattr(args, "db", None):
        config = replace(config, database_path=Path(args.db))
    return config


def _orchestrator(config: ResolverConfig):
    # Imported lazily so validate/init-db stay cheap
    from pipelines.entity_resolution.orchestrator import build_orchestrator

    return build_orchestrator(config)


def cmd_init_db(args: argparse.Namespace) -> None:
    config = _config(args)
    init_database(config.database_path)
    _emit({"database": str(config.database_path), "status": "initialized"})


def cmd_load_reference(args: argparse.Namespace) -> None:
    from pipelines.entity_resolution.orchestrator import build_embedder
    from pipelines.reference_import.loader import load_reference

    config = _config(args)
    records = _read_json(args.input)
    if not isinstance(records, list):
        raise InputValidationError(["Reference input must be a JSON list of records"])

    embedder = build_embedder(config) if args.embed else None

    init_database(config.database_path)
    counts = load_reference(
        session_factory(config.database_path),
        EntityKind(args.kind),
        records,
        embedder=embedder,
        dry_run=args.dry_run,
    )
    _emit({"kind": args.kind, "dry_run": args.dry_run, **counts})


def cmd_resolve(args: argparse.Namespace) -> None:
    query = _read_json(args.input)
    errors = validate_query(EntityKind(args.kind), query)
    if errors:
        raise InputValidationError(errors)

    orchestrator = _orchestrator(_config(args))
    result = orchestrator.resolve(args.kind, query)
    _emit(result.to_dict())
    get_logger().log_metrics_summary()


def cmd_resolve_order(args: argparse.Namespace) -> None:
    order = _read_json(args.input)
    errors = validate_order(order)
    if errors:
        raise InputValidationError(errors)

    orchestrator = _orchestrator(_config(args))
    outcome = orchestrator.orchestrate(order["customer"], order.get("contact"), order["items"])
    payload = outcome.to_dict()
    payload["health"] = orchestrator.health.report()
    _emit(payload)
    get_logger().log_metrics_summary()


def cmd_warm_cache(args: argparse.Namespace) -> None:
    orchestrator = _orchestrator(_config(args))
    store = orchestrator.resolver.store
    if not hasattr(store, "warm"):
        raise SystemExit("Configured reference store has no cache to warm")
    loaded = store.warm(EntityKind(args.kind), limit=args.limit)
    _emit({"kind": args.kind, "loaded": loaded})


def cmd_validate(args: argparse.Namespace) -> None:
    order = _read_json(args.input)
    errors = validate_order(order)
    if errors:
        raise InputValidationError(errors)
    _emit({"valid": True, "errors": []})


def main(argv=None):
    # Load .env if present (OPENAI_API_KEY, PORESOLVE_DB, etc.)
    load_env()
    kinds = [k.value for k in EntityKind]
    parser = argparse.ArgumentParser(prog="poresolve", description="Purchase order entity resolution")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    ini = subparsers.add_parser("init-db", help="Create the reference and audit tables")
    ini.add_argument("--db", help="SQLite database path (default: PORESOLVE_DB or data/reference.db)")
    ini.set_defaults(func=cmd_init_db)

    lod = subparsers.add_parser("load-reference", help="Upsert reference records from a JSON list")
    lod.add_argument("--kind", required=True, choices=kinds, help="Entity kind of the records")
    lod.add_argument("--input", required=True, help="Path to JSON list of records")
    lod.add_argument("--embed", action="store_true", help="Embed rows that carry no embedding")
    lod.add_argument("--dry-run", action="store_true", help="Count without writing")
    lod.add_argument("--db", help="SQLite database path")
    lod.set_defaults(func=cmd_load_reference)

    res = subparsers.add_parser("resolve", help="Resolve one customer, contact or item query")
    res.add_argument("--kind", required=True, choices=kinds, help="Entity kind to resolve")
    res.add_argument("--input", required=True, help="Path to query JSON")
    res.add_argument("--db", help="SQLite database path")
    res.set_defaults(func=cmd_resolve)

    ord_ = subparsers.add_parser("resolve-order", help="Resolve customer, contact and items of one order")
    ord_.add_argument("--input", required=True, help="Path to order JSON")
    ord_.add_argument("--db", help="SQLite database path")
    ord_.set_defaults(func=cmd_resolve_order)

    wrm = subparsers.add_parser("warm-cache", help="Preload active reference entities into the cache")
    wrm.add_argument("--kind", required=True, choices=kinds, help="Entity kind to warm")
    wrm.add_argument("--limit", type=int, help="Maximum entities to load (default: cache capacity)")
    wrm.add_argument("--db", help="SQLite database path")
    wrm.set_defaults(func=cmd_warm_cache)

    val = subparsers.add_parser("validate", help="Validate an order JSON without resolving it")
    val.add_argument("--input", required=True, help="Path to order JSON")
    val.set_defaults(func=cmd_validate)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        try:
            args.func(args)
        except InputValidationError as e:
            _fail(e.errors)
        except ResolutionError as e:
            print(f"[error] {e}", file=sys.stderr)
            raise SystemExit(1)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
