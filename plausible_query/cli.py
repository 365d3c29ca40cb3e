"""
Command line interface for querying Plausible Analytics.

Examples:
    plausible-query -s example.com query -m visitors,pageviews -r 7d
    plausible-query query -m visitors -d visit:source -r 30d --limit 20
    plausible-query query --file query.json -o report.xlsx
    plausible-query -s example.com sources -r 30d
    plausible-query -s example.com compare --days 28
    plausible-query -s example.com decay --days 30 --threshold 25
    plausible-query cache prune
"""
import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from . import seo
from .audit import AuditLog
from .cache import ResponseCache
from .client import QueryExecutor
from .config import Settings, load_settings
from .errors import PlausibleQueryError, ValidationFailure, ValidationIssue
from .export import response_to_dataframe, save_dataframe
from .query_models import QueryResponse
from .validator import validate_query

logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr,
    )


def split_list(value: Optional[str]) -> List[str]:
    """'a, b,c' -> ['a', 'b', 'c']"""
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


def positive_int(value: str) -> int:
    """argparse type for counts that must be at least 1"""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def positive_float(value: str) -> float:
    """argparse type for durations that must be above zero"""
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}")
    if not number > 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {value}")
    return number


def _invalid_argument(message: str, suggestion: Optional[str] = None) -> ValidationFailure:
    return ValidationFailure([ValidationIssue(code="INVALID_QUERY_SHAPE", message=message, suggestion=suggestion)])


def resolve_date_range(args) -> Union[str, List[str]]:
    date_from = getattr(args, "date_from", None)
    date_to = getattr(args, "date_to", None)
    if date_from or date_to:
        if not (date_from and date_to):
            raise _invalid_argument("--from and --to must be given together",
                                    suggestion="--from 2024-01-01 --to 2024-01-31")
        return [date_from, date_to]
    return args.date_range


def parse_order_by(items: Optional[List[str]]) -> List[List[str]]:
    order_by = []
    for item in items or []:
        field, _, direction = item.rpartition(':')
        if not field:
            field, direction = direction, "desc"
        order_by.append([field, direction or "desc"])
    return order_by


def build_query_params(args) -> Union[str, Dict[str, Any]]:
    """Query payload from --json, --file or the individual flags"""
    if args.json:
        return args.json
    if args.file:
        if args.file == '-':
            return sys.stdin.read()
        with open(args.file, encoding="utf-8") as handle:
            return handle.read()

    params: Dict[str, Any] = {
        "metrics": split_list(args.metrics),
        "date_range": resolve_date_range(args),
    }
    dimensions = split_list(args.dimensions)
    if dimensions:
        params["dimensions"] = dimensions
    if args.filter:
        filters = []
        for raw in args.filter:
            try:
                filters.append(json.loads(raw))
            except ValueError as e:
                raise ValidationFailure([ValidationIssue(
                    code="INVALID_JSON",
                    message=f"Filter is not valid JSON: {raw} ({e})",
                    suggestion='-f \'["contains", "event:page", ["/blog/"]]\'',
                )])
        params["filters"] = filters
    if args.limit is not None or args.offset is not None:
        params["pagination"] = {
            "limit": args.limit if args.limit is not None else 100,
            "offset": args.offset or 0,
        }
    order_by = parse_order_by(args.order_by)
    if order_by:
        params["order_by"] = order_by
    return params


def build_executor(settings: Settings, no_cache: bool = False) -> QueryExecutor:
    cache = None if no_cache else ResponseCache(settings.cache_dir, ttl_seconds=settings.cache_ttl)
    audit = AuditLog(settings.audit_log_path)
    return QueryExecutor(settings, cache=cache, audit=audit)


def emit_dataframe(df: pd.DataFrame, args, query=None) -> None:
    """Print or save a DataFrame according to --format / --output"""
    if args.output:
        save_dataframe(df, args.output, query)
        print(f"Saved {len(df)} rows to {args.output}")
        return
    if args.format == "json":
        print(df.to_json(orient="records", indent=2))
    elif args.format == "csv":
        df.to_csv(sys.stdout, index=False)
    elif df.empty:
        print("No rows returned.")
    else:
        print(df.to_string(index=False))


def run_query(args, executor: QueryExecutor) -> int:
    query = executor.prepare(build_query_params(args))
    data = executor.execute_raw(query)
    if args.format == "json" and not args.output:
        print(json.dumps(data, indent=2))
        return 0
    response = QueryResponse.model_validate(data)
    emit_dataframe(response_to_dataframe(response, query), args, query)
    meta = response.meta
    if meta is not None and meta.imports_warning:
        logger.warning(meta.imports_warning)
    return 0


def run_validate(args) -> int:
    query = validate_query(build_query_params(args))
    print(json.dumps(query.to_payload(), indent=2, sort_keys=True))
    return 0


def run_top_pages(args, executor: QueryExecutor) -> int:
    emit_dataframe(seo.top_pages(executor, resolve_date_range(args), args.limit), args)
    return 0


def run_sources(args, executor: QueryExecutor) -> int:
    emit_dataframe(seo.traffic_sources(executor, resolve_date_range(args), args.limit), args)
    return 0


def run_entry_pages(args, executor: QueryExecutor) -> int:
    emit_dataframe(seo.entry_pages(executor, resolve_date_range(args), args.limit), args)
    return 0


def run_devices(args, executor: QueryExecutor) -> int:
    emit_dataframe(seo.device_breakdown(executor, resolve_date_range(args), args.limit), args)
    return 0


def run_goals(args, executor: QueryExecutor) -> int:
    emit_dataframe(seo.goal_conversions(executor, resolve_date_range(args), args.limit), args)
    return 0


def run_compare(args, executor: QueryExecutor) -> int:
    if args.current and args.previous:
        current, previous = list(args.current), list(args.previous)
    elif args.current or args.previous:
        raise _invalid_argument("--current and --previous must be given together",
                                suggestion="--current 2024-02-01 2024-02-29 --previous 2024-01-01 2024-01-31")
    else:
        current, previous = seo.period_ranges(args.days)
    metrics = split_list(args.metrics) or list(seo.COMPARE_METRICS)
    changes = seo.compare_periods(executor, current, previous, metrics)
    logger.info(f"Comparing {current[0]}..{current[1]} with {previous[0]}..{previous[1]}")
    emit_dataframe(seo.comparison_frame(changes), args)
    return 0


def run_decay(args, executor: QueryExecutor) -> int:
    recent, baseline = seo.period_ranges(args.days)
    df = seo.content_decay(executor, baseline, recent, threshold=args.threshold,
                           min_visitors=args.min_visitors, limit=args.limit)
    emit_dataframe(df, args)
    return 0


def run_cache(args, settings: Settings) -> int:
    with ResponseCache(settings.cache_dir, ttl_seconds=settings.cache_ttl) as cache:
        if args.action == "info":
            print(json.dumps(cache.info(), indent=2))
        elif args.action == "clear":
            cache.clear()
            print(f"Cleared cache at {cache.directory}")
        elif args.action == "prune":
            removed = cache.prune()
            print(f"Removed {removed} expired entries from {cache.directory}")
    return 0


COMMANDS = {
    "query": run_query,
    "top-pages": run_top_pages,
    "sources": run_sources,
    "entry-pages": run_entry_pages,
    "devices": run_devices,
    "goals": run_goals,
    "compare": run_compare,
    "decay": run_decay,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plausible-query",
        description="Query the Plausible Analytics Stats API with local validation and response caching.",
    )
    parser.add_argument("-s", "--site-id", help="Site identifier (defaults to PLAUSIBLE_SITE_ID)", default=None)
    parser.add_argument("--api-key", help="Stats API key (defaults to PLAUSIBLE_API_KEY)", default=None)
    parser.add_argument("--api-url", help="Query endpoint (defaults to PLAUSIBLE_API_URL)", default=None)
    parser.add_argument("--cache-dir", help="Cache directory (defaults to PLAUSIBLE_CACHE_DIR)", default=None)
    parser.add_argument("--no-cache", action="store_true", help="Neither read nor write the response cache")
    parser.add_argument("--timeout", type=positive_float, help="Request timeout in seconds", default=None)
    parser.add_argument("--debug", action="store_true", help="Enable debug output to show verbose messages.")

    output = argparse.ArgumentParser(add_help=False)
    output.add_argument("--format", choices=["table", "json", "csv"], default="table", help="Output format for stdout")
    output.add_argument("-o", "--output", help="Save to a .csv, .json or .xlsx file instead of printing", default=None)

    dates = argparse.ArgumentParser(add_help=False)
    dates.add_argument("-r", "--date-range", default="30d",
                       help="Relative range: day, 7d, 28d, 30d, 91d, month, 6mo, 12mo, year, all")
    dates.add_argument("--from", dest="date_from", help="Start date (YYYY-MM-DD), use with --to", default=None)
    dates.add_argument("--to", dest="date_to", help="End date (YYYY-MM-DD), use with --from", default=None)

    query_args = argparse.ArgumentParser(add_help=False, parents=[dates])
    source = query_args.add_mutually_exclusive_group()
    source.add_argument("--json", help="Full query as a JSON string", default=None)
    source.add_argument("--file", help="Read the query JSON from a file ('-' for stdin)", default=None)
    query_args.add_argument("-m", "--metrics", default="visitors",
                            help="Comma-separated metrics (e.g. 'visitors,pageviews,bounce_rate')")
    query_args.add_argument("-d", "--dimensions", default=None,
                            help="Comma-separated dimensions (e.g. 'visit:source' or 'event:page')")
    query_args.add_argument("-f", "--filter", action="append", default=None,
                            help='Filter as JSON, repeatable (e.g. \'["contains", "event:page", ["/blog/"]]\')')
    query_args.add_argument("--limit", type=int, default=None, help="Rows per page (1-1000)")
    query_args.add_argument("--offset", type=int, default=None, help="Rows to skip")
    query_args.add_argument("--order-by", action="append", default=None,
                            help="Sort as field:asc or field:desc, repeatable")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("query", parents=[query_args, output], help="Run a query")
    subparsers.add_parser("validate", parents=[query_args], help="Validate a query without sending it")

    helpers = {
        "top-pages": "Most visited pages",
        "sources": "Traffic sources with quality grades",
        "entry-pages": "Entry pages with engagement quality",
        "devices": "Visitors by device",
        "goals": "Goal conversions",
    }
    for name, help_text in helpers.items():
        sub = subparsers.add_parser(name, parents=[dates, output], help=help_text)
        sub.add_argument("--limit", type=int, default=10, help="Number of rows (1-1000)")

    compare = subparsers.add_parser("compare", parents=[output], help="Compare totals between two periods")
    compare.add_argument("--days", type=positive_int, default=30, help="Length of each period when no explicit ranges are given")
    compare.add_argument("--current", nargs=2, metavar=("START", "END"), default=None, help="Current period")
    compare.add_argument("--previous", nargs=2, metavar=("START", "END"), default=None, help="Previous period")
    compare.add_argument("-m", "--metrics", default=None, help="Comma-separated metrics to compare")

    decay = subparsers.add_parser("decay", parents=[output], help="Pages losing traffic versus the previous period")
    decay.add_argument("--days", type=positive_int, default=30, help="Length of the recent and baseline periods")
    decay.add_argument("--threshold", type=float, default=20.0, help="Minimum drop percentage to report")
    decay.add_argument("--min-visitors", type=int, default=10, help="Ignore pages with fewer baseline visitors")
    decay.add_argument("--limit", type=int, default=500, help="Pages fetched per period (1-1000)")

    cache = subparsers.add_parser("cache", help="Inspect or clean the response cache")
    cache.add_argument("action", choices=["info", "clear", "prune"])
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    debug = args.debug or os.environ.get("DEBUG_MODE", "false").lower() == "true"
    configure_logging(debug)

    try:
        settings = load_settings(
            api_key=args.api_key,
            site_id=args.site_id,
            api_url=args.api_url,
            cache_dir=args.cache_dir,
            timeout=args.timeout,
            debug=debug or None,
        )
        if args.command == "cache":
            return run_cache(args, settings)
        if args.command == "validate":
            return run_validate(args)

        executor = build_executor(settings, no_cache=args.no_cache)
        try:
            return COMMANDS[args.command](args, executor)
        finally:
            if executor.cache is not None:
                executor.cache.close()
            executor.audit.close()
    except PlausibleQueryError as e:
        print(json.dumps(e.to_dict(), indent=2, default=str), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
