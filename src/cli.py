"""CLI entry point for bankmerge.

Commands:
    bankmerge analyze STORE FILE [--auto-skip]        Show conflicts, write nothing
    bankmerge merge STORE FILE [--auto-skip]
                   [--decisions JSON] [--skip-all]    Apply decisions and insert
    bankmerge stores                                  List stores and row counts
    bankmerge watch                                   Start upload folder watcher

STORE may be a store (table) name or a bank id from banks.yaml.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from pathlib import Path

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    """Configure logging based on FINANCE_LOG_LEVEL env var."""
    level = os.environ.get("FINANCE_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_config():
    """Load application config from config directory, or None if absent."""
    from src.config import Config

    config_dir = os.environ.get("FINANCE_CONFIG_DIR", "config")
    try:
        return Config(config_dir=config_dir)
    except FileNotFoundError as e:
        logger.warning("Config not available: %s", e)
        return None


def _get_repo():
    """Create a Repository connected to the configured database."""
    from src.database.repository import Repository

    db_path = os.environ.get("FINANCE_DB_PATH", "finance.db")
    return Repository(db_path=db_path)


def _get_engine(repo):
    """Create a ConflictEngine."""
    from src.matching.conflicts import ConflictEngine

    return ConflictEngine(repo)


def _get_watch_dir() -> Path:
    """Get the watch directory from env or default."""
    return Path(os.environ.get("FINANCE_WATCH_DIR", "import"))


def _resolve_store(name: str, config) -> str:
    if config is not None:
        store = config.store_for_bank(name)
        if store:
            return store
    return name


def _auto_skip(args: argparse.Namespace, config) -> bool:
    if args.auto_skip:
        return True
    return config.auto_skip_exact if config is not None else False


def _format_txn(txn) -> str:
    date = txn.date or "(no date)"
    return f"{date:<12} {txn.amount:>12.2f}  {txn.description}"


def _run_analysis(args: argparse.Namespace, repo, config):
    """Load the file and analyze it. Returns (analysis, invalid) or None."""
    from src.parsers.records import load_transactions

    filepath = args.file.resolve()
    if not filepath.exists():
        print(f"Error: File not found: {filepath}")
        return None

    store_name = _resolve_store(args.store, config)
    try:
        candidates = load_transactions(filepath)
        analysis = _get_engine(repo).analyze(
            store_name, candidates, auto_skip_exact=_auto_skip(args, config),
        )
    except ValueError as e:
        print(f"Error: {e}")
        return None
    except Exception as e:
        logger.exception("Analysis failed for %s", filepath.name)
        print(f"Error: analysis of {store_name} could not run: {e}")
        return None
    return analysis, len(candidates) - analysis.total_new_transactions


def _print_analysis(analysis, invalid: int) -> None:
    from src.matching.decisions import filter_conflicts

    print(f"Conflict analysis for {analysis.store_name}")
    print("=" * 60)
    print(f"  Valid transactions:  {analysis.total_new_transactions:,}")
    print(f"  Invalid (dropped):   {invalid:,}")
    print(f"  Existing in store:   {len(analysis.existing_transactions):,}")
    print(f"  Safe to add:         {len(analysis.safe_to_add):,}")
    print(f"  Conflicts:           {len(analysis.conflicts):,}")
    print(f"  Auto-skipped:        {len(analysis.auto_skipped):,}")

    if not analysis.conflicts:
        return

    print("\nConflicts (highest confidence first):")
    print("-" * 60)
    for c in filter_conflicts(analysis.conflicts, sort_by="match_score"):
        print(
            f"[{c.match_score:>3}%] #{c.new_transaction.id} "
            f"{_format_txn(c.new_transaction)}"
        )
        print(f"       {c.match_reason}; default: {c.default_action.value}")
        for dup in c.possible_duplicates:
            print(f"       ~ {_format_txn(dup)}")


# ── Command handlers ─────────────────────────────────────


def cmd_analyze(args: argparse.Namespace) -> int:
    """Analyze an upload file against a store without writing anything."""
    config = _get_config()
    repo = _get_repo()
    try:
        outcome = _run_analysis(args, repo, config)
        if outcome is None:
            return 1
        analysis, invalid = outcome
        _print_analysis(analysis, invalid)
        return 0
    finally:
        repo.close()


def _load_decisions_file(path: Path):
    from src.matching.decisions import parse_decisions

    with open(path, encoding="utf-8") as f:
        try:
            raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ValueError(f"Decisions file must be a JSON object: {path}")
    return parse_decisions(raw)


def cmd_merge(args: argparse.Namespace) -> int:
    """Analyze, apply decisions and insert the approved transactions.

    Decisions start from each conflict's default action, then entries
    from --decisions override them, then --skip-all overrides everything.
    """
    from src.matching.decisions import (
        apply_decisions,
        initialize_default_decisions,
        skip_all_conflicts,
        unresolved_conflict_count,
    )

    config = _get_config()
    repo = _get_repo()
    try:
        explicit = {}
        if args.decisions is not None:
            try:
                explicit = _load_decisions_file(args.decisions)
            except (OSError, ValueError) as e:
                print(f"Error: {e}")
                return 1

        outcome = _run_analysis(args, repo, config)
        if outcome is None:
            return 1
        analysis, invalid = outcome

        unreviewed = unresolved_conflict_count(analysis.conflicts, explicit)
        decisions = initialize_default_decisions(analysis.conflicts)
        decisions.update(explicit)
        if args.skip_all:
            decisions = skip_all_conflicts(analysis.conflicts, decisions)

        approved = apply_decisions(analysis, decisions)
        inserted = repo.insert_transactions(analysis.store_name, approved)

        print(f"Merged into {analysis.store_name}:")
        print(f"  Added:               {len(inserted):,}")
        print(f"  Skipped:             {analysis.total_new_transactions - len(inserted):,}")
        print(f"  Invalid (dropped):   {invalid:,}")
        if unreviewed and not args.skip_all:
            print(f"  {unreviewed} conflict(s) had no decision and used the default action")
        if inserted:
            print(f"  New ids {inserted[0].id}..{inserted[-1].id}")
        return 0
    finally:
        repo.close()


def cmd_stores(args: argparse.Namespace) -> int:
    """List stores with their row counts."""
    config = _get_config()
    bank_names = config.store_names if config is not None else {}
    repo = _get_repo()
    try:
        stores = repo.list_stores()
        if not stores:
            print("No stores found.")
            return 0
        print("Stores")
        print("=" * 40)
        for store in stores:
            label = f" ({bank_names[store]})" if store in bank_names else ""
            print(f"  {store:<20} {repo.count(store):>8,}{label}")
        return 0
    finally:
        repo.close()


def cmd_watch(args: argparse.Namespace) -> int:
    """Start the upload folder watcher daemon."""
    from src.watcher.observer import FileWatcher, UploadPipeline

    config = _get_config()
    repo = _get_repo()
    pipeline = UploadPipeline(repo=repo, config=config, engine=_get_engine(repo))

    watcher_kwargs = {}
    if config is not None:
        watcher_kwargs = dict(
            stability_seconds=config.stability_seconds,
            poll_interval=config.poll_interval,
        )
    watcher = FileWatcher(
        watch_dir=_get_watch_dir(),
        pipeline=pipeline,
        config=config,
        **watcher_kwargs,
    )

    print(f"Watching {watcher.watch_dir} for uploads... (Ctrl+C to stop)")
    watcher.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping watcher...")
    finally:
        watcher.stop()
        repo.close()

    return 0


# ── Main entry point ─────────────────────────────────────


_COMMANDS = {
    "analyze": cmd_analyze,
    "merge": cmd_merge,
    "stores": cmd_stores,
    "watch": cmd_watch,
}


def main(argv: list[str] | None = None):
    _setup_logging()

    parser = argparse.ArgumentParser(
        prog="bankmerge",
        description="Bank statement upload conflict checker",
    )
    subparsers = parser.add_subparsers(dest="command")

    # analyze
    analyze_p = subparsers.add_parser("analyze", help="Show upload conflicts without writing")
    analyze_p.add_argument("store", help="Store name or bank id")
    analyze_p.add_argument("file", type=Path, help="Normalized JSON or CSV file")
    analyze_p.add_argument("--auto-skip", action="store_true", help="Auto-skip exact duplicates")

    # merge
    merge_p = subparsers.add_parser("merge", help="Apply decisions and insert approved rows")
    merge_p.add_argument("store", help="Store name or bank id")
    merge_p.add_argument("file", type=Path, help="Normalized JSON or CSV file")
    merge_p.add_argument("--auto-skip", action="store_true", help="Auto-skip exact duplicates")
    merge_p.add_argument(
        "--decisions", type=Path,
        help='JSON object of transaction id -> "add" or "skip"',
    )
    merge_p.add_argument("--skip-all", action="store_true", help="Skip every conflict")

    # stores
    subparsers.add_parser("stores", help="List stores and row counts")

    # watch
    subparsers.add_parser("watch", help="Start upload folder watcher")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()
