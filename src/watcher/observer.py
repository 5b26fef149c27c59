"""File watcher: PollingObserver + UploadPipeline orchestration.

Watches a drop folder for uploaded transaction files, one subfolder per
bank or store:

    import/
      Handelsbanken-SE/april.csv
      AMEX_2025/statement.json

Waits for file stability (size+mtime stable), validates completeness,
then runs the upload pipeline:
  detect → stable → load → analyze → default decisions → insert

Uses PollingObserver as primary (not fallback) due to NAS/Docker volume
unreliability with inotify.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEventHandler

from src.config import Config
from src.matching.conflicts import ConflictEngine
from src.matching.decisions import apply_decisions, initialize_default_decisions
from src.parsers.records import SUPPORTED_EXTENSIONS, detect_loader

if TYPE_CHECKING:
    from src.database.repository import Repository

logger = logging.getLogger(__name__)

# Default stability check parameters
DEFAULT_STABILITY_SECONDS = 10
DEFAULT_CHECK_INTERVAL = 2.0

# Default polling interval for PollingObserver
DEFAULT_POLL_INTERVAL = 30


@dataclass
class UploadResult:
    """Result of uploading a single file."""
    file_name: str
    store_name: str
    status: str  # "success", "error"
    added_count: int = 0
    conflict_count: int = 0
    skipped_count: int = 0       # Conflicts whose default action was skip
    auto_skipped_count: int = 0
    invalid_count: int = 0       # Rows without a numeric amount, or without date and description
    error_message: str | None = None


class FileStabilityError(Exception):
    """Raised when a file fails post-stability validation."""


# ── File stability & validation ──────────────────────────


def wait_for_stable(
    filepath: Path,
    stability_seconds: int = DEFAULT_STABILITY_SECONDS,
    check_interval: float = DEFAULT_CHECK_INTERVAL,
    max_wait: float = 300.0,
) -> None:
    """Wait until file size and mtime are stable for stability_seconds.

    Raises:
        TimeoutError: If file doesn't stabilize within max_wait.
    """
    prev_size = -1
    prev_mtime = -1.0
    stable_since: float | None = None
    start = time.monotonic()

    while True:
        if time.monotonic() - start > max_wait:
            raise TimeoutError(
                f"File did not stabilize within {max_wait}s: {filepath}"
            )

        stat = filepath.stat()
        if stat.st_size == prev_size and stat.st_mtime == prev_mtime:
            if stable_since is None:
                stable_since = time.monotonic()
            if time.monotonic() - stable_since >= stability_seconds:
                return
        else:
            stable_since = None

        prev_size = stat.st_size
        prev_mtime = stat.st_mtime
        time.sleep(check_interval)


def validate_file_completeness(filepath: Path) -> None:
    """Post-stability validation: ensure file content is complete.

    - CSV files: must end with a newline
    - JSON files: must end with a closing ] or }

    Raises:
        FileStabilityError: If file appears incomplete.
    """
    suffix = filepath.suffix.lower()
    content = filepath.read_bytes()
    if not content.strip():
        raise FileStabilityError(f"Empty file: {filepath}")

    if suffix == ".csv":
        if content[-1:] not in (b"\n", b"\r"):
            raise FileStabilityError(
                f"CSV file does not end with newline: {filepath}"
            )
    elif suffix == ".json":
        if content.rstrip()[-1:] not in (b"]", b"}"):
            raise FileStabilityError(
                f"JSON file is not closed: {filepath}"
            )


def resolve_store_name(folder_name: str, config: Config | None) -> str:
    """Map a drop subfolder (bank id or store name) to a store name.

    Falls back to the folder name itself if no bank matches.
    """
    if config is not None:
        store = config.store_for_bank(folder_name)
        if store:
            return store
        logger.debug("No bank mapping for folder %s; using it as store name", folder_name)
    return folder_name


# ── Upload pipeline ──────────────────────────────────────


class UploadPipeline:
    """Orchestrate: load → analyze → default decisions → insert.

    Unattended uploads have no reviewer, so every conflict takes its
    level's default action.

    Args:
        repo: Database repository.
        config: Application config (auto-skip setting).
        engine: Conflict engine; built from repo if not given.
    """

    def __init__(
        self,
        repo: Repository,
        config: Config | None = None,
        engine: ConflictEngine | None = None,
    ):
        self.repo = repo
        self.config = config
        self.engine = engine or ConflictEngine(repo)

    def process_file(self, filepath: Path, store_name: str) -> UploadResult:
        """Run the full upload pipeline on a single file.

        Steps:
        1. Check file extension
        2. Detect loader and load records
        3. Analyze against the store
        4. Apply default decisions
        5. Insert approved transactions

        Returns UploadResult with counts.
        """
        file_name = filepath.name

        if filepath.suffix.lower() not in SUPPORTED_EXTENSIONS:
            return UploadResult(
                file_name=file_name,
                store_name=store_name,
                status="error",
                error_message=f"Unsupported file extension: {filepath.suffix}",
            )

        auto_skip = self.config.auto_skip_exact if self.config is not None else False

        try:
            loader = detect_loader(filepath)
            candidates = loader.parse(filepath)

            analysis = self.engine.analyze(store_name, candidates, auto_skip_exact=auto_skip)
            decisions = initialize_default_decisions(analysis.conflicts)
            approved = apply_decisions(analysis, decisions)
            self.repo.insert_transactions(store_name, approved)

            conflicts_added = len(approved) - len(analysis.safe_to_add)
            return UploadResult(
                file_name=file_name,
                store_name=store_name,
                status="success",
                added_count=len(approved),
                conflict_count=len(analysis.conflicts),
                skipped_count=len(analysis.conflicts) - conflicts_added,
                auto_skipped_count=len(analysis.auto_skipped),
                invalid_count=(
                    loader.skipped_count
                    + len(candidates) - analysis.total_new_transactions
                ),
            )

        except Exception as e:
            logger.exception("Upload failed for %s", file_name)
            return UploadResult(
                file_name=file_name,
                store_name=store_name,
                status="error",
                error_message=str(e),
            )


# ── File watcher ─────────────────────────────────────────


class FileWatcher(FileSystemEventHandler):
    """Watch a drop folder for uploaded files using PollingObserver.

    Processes files sequentially to avoid database contention.

    Args:
        watch_dir: Directory to watch; files go in one subfolder per bank.
        pipeline: UploadPipeline to process files.
        config: Optional config for bank → store resolution.
        stability_seconds: Seconds of stability before processing.
        check_interval: Seconds between stability checks.
        poll_interval: Seconds between directory polls.
    """

    def __init__(
        self,
        watch_dir: Path,
        pipeline: UploadPipeline,
        config: Config | None = None,
        stability_seconds: int = DEFAULT_STABILITY_SECONDS,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        poll_interval: int = DEFAULT_POLL_INTERVAL,
    ):
        self.watch_dir = Path(watch_dir)
        self.pipeline = pipeline
        self.config = config
        self.stability_seconds = stability_seconds
        self.check_interval = check_interval
        self.poll_interval = poll_interval
        self._observer = None

    def start(self) -> None:
        """Start watching the drop folder."""
        from watchdog.observers.polling import PollingObserver

        if not self.watch_dir.exists():
            self.watch_dir.mkdir(parents=True, exist_ok=True)

        self._observer = PollingObserver(timeout=self.poll_interval)
        self._observer.schedule(self, str(self.watch_dir), recursive=True)
        self._observer.start()
        logger.info("Watching %s for uploaded transaction files", self.watch_dir)

    def stop(self) -> None:
        """Stop watching."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info("File watcher stopped")

    def on_created(self, event) -> None:
        """Handle new file creation events."""
        if event.is_directory:
            return

        filepath = Path(event.src_path)

        if filepath.suffix.lower() not in SUPPORTED_EXTENSIONS:
            return

        # Files directly in the drop folder have no bank to go to.
        if filepath.parent.resolve() == self.watch_dir.resolve():
            logger.warning(
                "Ignoring %s: put uploads in a subfolder named after the bank",
                filepath.name,
            )
            return

        logger.info("New file detected: %s", filepath.name)
        self._process_file(filepath)

    def _process_file(self, filepath: Path) -> UploadResult:
        """Wait for stability, validate, then upload."""
        store_name = resolve_store_name(filepath.parent.name, self.config)
        try:
            wait_for_stable(
                filepath,
                stability_seconds=self.stability_seconds,
                check_interval=self.check_interval,
            )
            validate_file_completeness(filepath)

            result = self.pipeline.process_file(filepath, store_name)
            logger.info(
                "Upload result for %s -> %s: %s (added=%d, conflicts=%d, auto-skipped=%d)",
                filepath.name, store_name, result.status,
                result.added_count, result.conflict_count, result.auto_skipped_count,
            )
            return result

        except FileStabilityError as e:
            logger.error("File validation failed: %s", e)
            return UploadResult(
                file_name=filepath.name,
                store_name=store_name,
                status="error",
                error_message=str(e),
            )
        except TimeoutError as e:
            logger.error("File stability timeout: %s", e)
            return UploadResult(
                file_name=filepath.name,
                store_name=store_name,
                status="error",
                error_message=str(e),
            )
        except Exception as e:
            logger.exception("Unexpected error processing %s", filepath.name)
            return UploadResult(
                file_name=filepath.name,
                store_name=store_name,
                status="error",
                error_message=str(e),
            )
