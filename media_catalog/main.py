import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .config import ENV_LOG_LEVEL, AppConfig
from .core import CatalogApp
from .exceptions import MediaCatalogError, ValidationFailed
from .reporting import CatalogReport


def setup_logging(log_file: Optional[Path], level: str = "info", verbose: bool = False):
    """Sets up logging to the console and, optionally, a file."""
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
        force=True,
    )

    # Silence chatty libraries
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="media-catalog", description="Filename-tagged media catalog")

    p.add_argument("--media-root", type=Path, default=None, help="Root directory containing tagged media files (env: MEDIA_CATALOG_ROOT)")
    p.add_argument("--cache-dir", type=Path, default=None, help="Directory for the snapshot cache (env: MEDIA_CATALOG_CACHE_DIR)")
    p.add_argument("--poll-interval", type=float, default=None, help="Seconds between background scans (env: MEDIA_CATALOG_POLL_INTERVAL)")
    p.add_argument("--log-level", default=None, help="Log level when not verbose (env: LOG_LEVEL)")
    p.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--metadata", action="store_true", help="Read dimensions/duration while scanning")
    p.add_argument("--hash", action="store_true", help="Record a content hash for every file")
    p.add_argument("--workers", type=int, default=None, help="Parallel scan workers (default: 1)")

    sub = p.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Build or refresh the snapshot cache")
    scan.add_argument("--force", action="store_true", help="Rescan even when a valid cache exists")
    scan.add_argument("--progress", action="store_true", help="Show a progress bar")

    search = sub.add_parser("search", help="Query the catalog and print a JSON page")
    search.add_argument("--tags", default=None, help="Comma-separated required tags")
    search.add_argument("--attr", action="append", default=[], metavar="NAME=V1,V2", help="Attribute filter (repeatable)")
    search.add_argument("--page", default=None, help="Page number (default: 1)")
    search.add_argument("--page-size", default=None, help="Page size (default: 60, max: 200)")

    watch = sub.add_parser("watch", help="Keep the catalog fresh by polling the media root")
    watch.add_argument("--duration", type=float, default=None, help="Stop after this many seconds")

    report = sub.add_parser("report", help="Summarize the catalog")
    report.add_argument("--csv", type=Path, default=None, help="Also export every record to this CSV file")

    return p


def search_params_from_args(args) -> Dict[str, str]:
    """Maps CLI flags onto the query-string keys the search boundary accepts."""
    params: Dict[str, str] = {}
    if args.tags is not None:
        params["tags"] = args.tags
    if args.page is not None:
        params["page"] = args.page
    if args.page_size is not None:
        params["pageSize"] = args.page_size
    for item in args.attr:
        name, sep, values = item.partition("=")
        if not sep or not name.strip():
            raise ValidationFailed(f"attribute filter must look like NAME=V1,V2, got {item!r}")
        key = f"attributes[{name.strip()}]"
        params[key] = f"{params[key]},{values}" if key in params else values
    return params


def run(args) -> int:
    app_config = AppConfig.from_args(args)
    app_config.validate(require_root=False)
    app = CatalogApp(app_config)

    if args.command == "scan":
        def rescan():
            return app.scanner.scan(app_config.media_root, progress=args.progress)

        if args.force:
            # Existing cache stays in place until the new one is written
            snapshot = app.store.persist(rescan())
        else:
            snapshot = app.store.load_or_rebuild(rescan)
        logging.info(f"Catalog at {app.store.path}: {len(snapshot)} records")
        return 0

    if args.command == "search":
        app.boot()
        result = app.search(search_params_from_args(args))
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    if args.command == "watch":
        app.boot()
        try:
            asyncio.run(app.watch(args.duration))
        except KeyboardInterrupt:
            logging.warning("Watch cancelled by user.")
        return 0

    if args.command == "report":
        snapshot = app.boot()
        reporter = CatalogReport(snapshot)
        print(json.dumps(reporter.summary(), indent=2))
        if args.csv:
            reporter.write_csv(args.csv)
        return 0

    return 2


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_file, args.log_level or os.environ.get(ENV_LOG_LEVEL, "info"), args.verbose)

    try:
        return run(args)
    except MediaCatalogError as e:
        logging.error(f"{type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
