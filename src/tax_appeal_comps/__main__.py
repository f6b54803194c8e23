import argparse
import asyncio
import json
from dataclasses import asdict, replace
from datetime import datetime, timezone

from . import identifiers
from .comps.engine import ComparableEngine, build_engine
from .comps.io import ComparableReport, report_json, write_report
from .errors import EngineError, InvalidIdentifier, StoreUnavailable
from .log import configure_logging
from .registry.assessments import assessment_changes
from .settings import get_settings


def build_parser():
    parser = argparse.ArgumentParser(
        prog="tax-appeal-comps",
        description="Cook County comparable property discovery",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (DEBUG, INFO, etc.)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit log records as JSON lines on stderr",
    )
    parser.add_argument(
        "--cache-path",
        default=None,
        help="SQLite path of the enrichment cache (overrides TAC_CACHE_PATH)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_parcel = sub.add_parser("parcel", help="Fetch one parcel from the registry")
    p_parcel.add_argument("pin", help="14-digit PIN, dashes optional")

    p_comps = sub.add_parser("comps", help="Find comparables for a parcel")
    p_comps.add_argument("pin", help="14-digit PIN, dashes optional")
    p_comps.add_argument("--limit", type=int, default=20, help="Maximum registry sales (1-50)")
    p_comps.add_argument(
        "--secondary",
        action="store_true",
        help="Also search the secondary provider (uses monthly quota)",
    )
    p_comps.add_argument(
        "--output",
        default=None,
        help="Write <base>.json and <base>.csv instead of printing",
    )

    p_lookup = sub.add_parser("lookup", help="Search the registry by street address")
    p_lookup.add_argument("address")
    p_lookup.add_argument("--city", default=None)
    p_lookup.add_argument("--limit", type=int, default=10)

    sub.add_parser("quota", help="Show provider quota and enrichment cache state")
    return parser


def _emit(payload):
    print(json.dumps(payload, sort_keys=True, default=str))


async def _parcel(engine: ComparableEngine, args) -> int:
    subject = await engine.fetch_subject(args.pin)
    if subject is None:
        _emit({"error": f"parcel {identifiers.display(args.pin)} not found"})
        return 1
    payload = subject.to_dict()
    payload["assessment_changes"] = [
        c.to_dict() for c in assessment_changes(subject.assessment_history)
    ]
    _emit(payload)
    return 0


async def _comps(engine: ComparableEngine, args) -> int:
    subject = await engine.fetch_subject(args.pin)
    if subject is None:
        _emit({"error": f"parcel {identifiers.display(args.pin)} not found"})
        return 1
    comparables = await engine.find_comparables(
        subject, limit=args.limit, include_secondary_source=args.secondary
    )
    report = ComparableReport(
        subject=subject,
        comparables=comparables,
        include_secondary_source=args.secondary,
        generated_at=datetime.now(timezone.utc),
    )
    if args.output:
        json_path, csv_path = write_report(report, args.output)
        _emit({"json": str(json_path), "csv": str(csv_path), "count": len(comparables)})
    else:
        print(report_json(report), end="")
    return 0


async def _lookup(engine: ComparableEngine, args) -> int:
    results = await engine.search(args.address, args.city, args.limit)
    _emit([asdict(r) for r in results])
    return 0


async def _quota(engine: ComparableEngine, args) -> int:
    payload = {
        "provider_configured": engine.provider is not None and engine.provider.configured,
        "cache": engine.cache.stats() if engine.cache is not None else None,
        "store": None,
    }
    if engine.store is not None:
        try:
            payload["store"] = engine.store.summary()
        except StoreUnavailable as exc:
            payload["store"] = {"error": str(exc)}
    _emit(payload)
    return 0


COMMANDS = {
    "parcel": _parcel,
    "comps": _comps,
    "lookup": _lookup,
    "quota": _quota,
}


async def _dispatch(args, settings, transport=None) -> int:
    async with build_engine(settings, transport=transport) as engine:
        return await COMMANDS[args.command](engine, args)


def main(argv=None, transport=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, json_lines=args.log_json)

    settings = get_settings()
    if args.cache_path:
        settings = replace(settings, cache_path=args.cache_path)

    try:
        if getattr(args, "pin", None) is not None:
            args.pin = identifiers.require_valid(args.pin)
        return asyncio.run(_dispatch(args, settings, transport))
    except InvalidIdentifier as exc:
        _emit({"error": str(exc)})
        return 2
    except EngineError as exc:
        _emit({"error": str(exc)})
        return 1


def _safe_main():
    try:
        code = main()
    except SystemExit:
        raise
    except Exception as exc:
        print(json.dumps({"error": str(exc)}))
        raise SystemExit(1)
    raise SystemExit(code)


if __name__ == "__main__":
    _safe_main()
