"""
Persistent on-disk submission queue.

Submissions whose live delivery failed are written as JSON files under a
base directory and redriven by a background poller thread:

    pending/     waiting for (re)delivery
    processing/  claimed by one worker holding the per-file lock
    success/     accepted by the API
    failed/      demoted by the startup sweep, awaiting administrative retry

Files only move between directories via rename; new files appear via an
atomic temp-file-then-replace write. A global lock serializes poll cycles
and a per-file lock ensures one worker dispatches a given file at a time.
Dispatch goes through the same CircuitBreaker the foreground client uses.
"""

import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError as RecordValidationError

from ..errors import ErrorDetail, QueuePersistenceError
from .circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from .locks import STALE_LOCK_SECONDS, FileLock
from .records import PayloadSubmission, PersistentSubmissionRecord

logger = logging.getLogger(__name__)

PENDING_DIR = "pending"
PROCESSING_DIR = "processing"
SUCCESS_DIR = "success"
FAILED_DIR = "failed"
QUEUE_DIRS = (PENDING_DIR, PROCESSING_DIR, SUCCESS_DIR, FAILED_DIR)

GLOBAL_LOCK_NAME = "processing.lock"
DEFAULT_POLL_INTERVAL = 0.5        # seconds between poll cycles
STALE_PROCESSING_SECONDS = 3600    # leftover processing files older than this go to failed/

REQUIRED_REQUEST_FIELDS = ("requestId", "documentType", "country")

Dispatch = Callable[[dict[str, Any]], dict[str, Any]]


@dataclass
class QueueStatus:
    """File counts per queue directory."""
    pending_count: int = 0
    processing_count: int = 0
    failed_count: int = 0
    success_count: int = 0
    is_running: bool = False

    def __str__(self) -> str:
        return (
            f"QueueStatus{{pending={self.pending_count}, processing={self.processing_count}, "
            f"failed={self.failed_count}, success={self.success_count}, "
            f"running={'true' if self.is_running else 'false'}}}"
        )


def is_successful_response(response: Any) -> bool:
    """Whether an API response means the document was accepted."""
    if not isinstance(response, dict):
        return False

    if response.get("status") == "success":
        return True

    data = response.get("data") or {}
    if not isinstance(data, dict):
        return False

    submission = data.get("submission")
    if isinstance(submission, dict):
        if submission.get("accepted") or str(submission.get("status") or "").lower() == "accepted":
            return True

    document = data.get("document")
    if isinstance(document, dict) and str(document.get("status") or "").lower() == "success":
        return True

    return False


def server_error_code(response: Any) -> Optional[int]:
    """The in-band error code if it is in the 5xx range, else None."""
    if not isinstance(response, dict):
        return None
    error = response.get("error")
    if not isinstance(error, dict) or error.get("code") is None:
        return None
    try:
        code = int(error["code"])
    except (TypeError, ValueError):
        return None
    return code if 500 <= code < 600 else None


def _atomic_write_text(path: Path, data: str) -> None:
    """Write *data* to a hidden temp file beside *path*, then rename into place."""
    tmp = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


class PersistentQueueManager:
    """
    Durable at-least-once redelivery of failed submissions.

    Usage:
        queue = PersistentQueueManager("./queue", dispatch=client.dispatch,
                                       circuit_breaker=shared_cb)
        queue.enqueue(submission)
        print(queue.get_queue_status())
        queue.stop_processing()

    With background=False no poller thread is started; cycles run only
    through process_pending_submissions_now().
    """

    def __init__(
        self,
        base_path: Union[str, Path],
        dispatch: Dispatch,
        circuit_breaker: Optional[CircuitBreaker] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        auto_start: bool = True,
        background: bool = True,
        stale_lock_seconds: float = STALE_LOCK_SECONDS,
        stale_processing_seconds: float = STALE_PROCESSING_SECONDS,
    ):
        self.base_path = Path(base_path)
        self.dispatch = dispatch
        self.circuit_breaker = circuit_breaker or CircuitBreaker("unify_queue")
        self.poll_interval = poll_interval
        self.background = background
        self.stale_lock_seconds = stale_lock_seconds
        self.stale_processing_seconds = stale_processing_seconds

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._thread_lock = threading.Lock()

        self._initialize_directories()
        if auto_start:
            self.start()

    # --- Lifecycle ---

    def _dir(self, name: str) -> Path:
        return self.base_path / name

    def _initialize_directories(self) -> None:
        for name in QUEUE_DIRS:
            self._dir(name).mkdir(parents=True, exist_ok=True)
        logger.info(f"Queue directories ready under {self.base_path}")

    def start(self) -> None:
        """Recover leftovers from a previous run, start polling, requeue failed files."""
        self._initialize_directories()
        self.recover_processing_directory()
        if self.background:
            self.start_processing()
        self.retry_failed_submissions()

    def recover_processing_directory(self) -> None:
        """Reclaim files a crashed worker left in processing/."""
        now = time.time()
        for path in sorted(self._dir(PROCESSING_DIR).glob("*.json")):
            lock = self._file_lock(path.name)
            lock_age = lock.age_seconds()
            if lock_age is not None and lock_age < self.stale_lock_seconds:
                logger.info(f"Skipping locked file (lock age {lock_age:.0f}s): {path.name}")
                continue
            if lock_age is not None:
                lock.path.unlink(missing_ok=True)

            try:
                file_age = now - path.stat().st_mtime
                if file_age > self.stale_processing_seconds:
                    logger.warning(f"Moving stale processing file to failed (age {file_age:.0f}s): {path.name}")
                    self.move_to_directory(path, FAILED_DIR)
                else:
                    logger.info(f"Returning interrupted file to pending: {path.name}")
                    self._return_to_pending(path)
            except OSError as e:
                logger.error(f"Failed to recover processing file {path.name}: {e}")

    def start_processing(self) -> None:
        """Start the background poller thread if it is not already running."""
        with self._thread_lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                name="complyance-queue-poller",
                daemon=True,
            )
            self._thread.start()
        logger.info(f"Queue poller started (interval={self.poll_interval}s)")

    def stop_processing(self, timeout: Optional[float] = None) -> None:
        """Ask the poller to exit after its current cycle and wait for it."""
        self._stop_event.set()
        with self._thread_lock:
            thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        logger.info("Queue poller stopped")

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.process_pending_submissions_now()
            except Exception:
                logger.exception("Queue poll cycle failed")
            self._stop_event.wait(self.poll_interval)

    # --- Enqueue ---

    def enqueue(
        self,
        submission: Union[PayloadSubmission, dict[str, Any]],
        error: Optional[ErrorDetail] = None,
    ) -> Path:
        """
        Persist a submission into pending/.

        Args:
            submission: PayloadSubmission, or a serialized request dict
            error: Last known failure, stored with the record

        Returns:
            Path of the queued file (the existing pending or processing one for a duplicate)

        Raises:
            QueuePersistenceError: Empty/invalid payload or the write failed
        """
        if isinstance(submission, dict):
            submission = PayloadSubmission.from_request_dict(submission)

        raw = (submission.payload or "").strip()
        if not raw or raw == "{}":
            raise QueuePersistenceError("Cannot enqueue empty payload")

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise QueuePersistenceError(f"Invalid JSON payload: {e}") from e
        if not isinstance(payload, dict) or not payload:
            raise QueuePersistenceError("Cannot enqueue empty payload")

        record = PersistentSubmissionRecord.from_submission(submission, payload, error)
        file_path = self._dir(PENDING_DIR) / record.file_name()

        in_flight = self._dir(PROCESSING_DIR) / file_path.name
        if file_path.exists() or in_flight.exists():
            existing = file_path if file_path.exists() else in_flight
            logger.info(f"Submission already queued, skipping duplicate: {existing.parent.name}/{existing.name}")
            if self.background:
                self.start_processing()
            return existing

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            _atomic_write_text(file_path, record.to_json())
        except OSError as e:
            logger.error(f"Failed to persist submission {file_path.name}: {e}")
            raise QueuePersistenceError(f"Failed to write queue file {file_path}: {e}") from e

        if not file_path.exists() or file_path.stat().st_size == 0:
            raise QueuePersistenceError(f"Queue file missing or empty after write: {file_path}")

        logger.info(
            f"Enqueued submission {file_path.name} "
            f"(source={record.source_id}, country={record.country})"
        )
        if self.background:
            self.start_processing()
        return file_path

    # --- Poll cycle ---

    def _file_lock(self, file_name: str) -> FileLock:
        return FileLock(self._dir(PROCESSING_DIR) / f"{file_name}.lock", self.stale_lock_seconds)

    def process_pending_submissions_now(self) -> int:
        """
        Run one poll cycle over pending/.

        Returns:
            Number of submissions that reached success/ in this cycle
        """
        global_lock = FileLock(self.base_path / GLOBAL_LOCK_NAME, self.stale_lock_seconds)
        if not global_lock.acquire():
            logger.debug("Another poll cycle holds the queue lock, skipping")
            return 0

        try:
            pending = sorted(self._dir(PENDING_DIR).glob("*.json"))
            if not pending:
                return 0

            if self.circuit_breaker.is_open():
                logger.info(
                    f"Circuit open, skipping poll cycle for {len(pending)} pending file(s) "
                    f"({self.circuit_breaker.remaining_seconds():.0f}s remaining)"
                )
                return 0

            delivered = 0
            for path in pending:
                if self.circuit_breaker.is_open():
                    logger.info("Circuit opened mid-cycle, deferring remaining files")
                    break

                lock = self._file_lock(path.name)
                if not lock.acquire():
                    logger.debug(f"File locked by another worker, skipping: {path.name}")
                    continue
                try:
                    if path.exists() and self._process_submission_file(path):
                        delivered += 1
                except Exception:
                    logger.exception(f"Error processing submission {path.name}")
                finally:
                    lock.release()

            return delivered
        finally:
            global_lock.release()

    def _process_submission_file(self, path: Path) -> bool:
        try:
            record = PersistentSubmissionRecord.from_json(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, RecordValidationError) as e:
            logger.error(f"Unreadable submission record {path.name}, moving to failed: {e}")
            self.move_to_directory(path, FAILED_DIR)
            return False

        processing_path = self.move_to_directory(path, PROCESSING_DIR)
        logger.info(f"Processing submission {processing_path.name} for source {record.source_id}")

        try:
            request = record.payload
            missing = [f for f in REQUIRED_REQUEST_FIELDS if f not in request]
            if missing:
                raise ValueError(f"Stored request missing fields: {', '.join(missing)}")
            response = self.circuit_breaker.execute(self.dispatch, request)
        except CircuitBreakerOpen as e:
            logger.info(f"Circuit open, returning {processing_path.name} to pending: {e}")
            self._return_to_pending(processing_path)
            return False
        except Exception as e:
            logger.warning(f"Dispatch failed for {processing_path.name}, returning to pending: {e}")
            self._return_to_pending(processing_path)
            return False

        if is_successful_response(response):
            self.move_to_directory(processing_path, SUCCESS_DIR)
            logger.info(f"Delivered queued submission {processing_path.name}")
            return True

        code = server_error_code(response)
        if code is not None:
            logger.warning(f"Server error {code} for {processing_path.name}, returning to pending")
        else:
            logger.warning(f"Non-success response for {processing_path.name}, returning to pending")
        self._return_to_pending(processing_path)
        return False

    def _return_to_pending(self, path: Path) -> Optional[Path]:
        """Move *path* back to pending/, dropping it if the same document is already waiting there."""
        if (self._dir(PENDING_DIR) / path.name).exists():
            logger.info(f"Same document already pending, dropping in-flight copy: {path.name}")
            path.unlink(missing_ok=True)
            return None
        return self.move_to_directory(path, PENDING_DIR)

    def move_to_directory(self, path: Path, target_dir: str) -> Path:
        """Rename *path* into *target_dir*, suffixing a timestamp on name collision."""
        target_root = self._dir(target_dir)
        target_root.mkdir(parents=True, exist_ok=True)

        target = target_root / path.name
        if target.exists():
            stamp = int(time.time())
            target = target_root / f"{path.stem}_{stamp}{path.suffix}"
            n = 1
            while target.exists():
                target = target_root / f"{path.stem}_{stamp}_{n}{path.suffix}"
                n += 1

        path.rename(target)
        logger.debug(f"Moved {path.name} to {target_dir}/{target.name}")
        return target

    # --- Administration ---

    def get_queue_status(self) -> QueueStatus:
        def count(name: str) -> int:
            return sum(1 for _ in self._dir(name).glob("*.json"))

        return QueueStatus(
            pending_count=count(PENDING_DIR),
            processing_count=count(PROCESSING_DIR),
            failed_count=count(FAILED_DIR),
            success_count=count(SUCCESS_DIR),
            is_running=self.is_running,
        )

    def retry_failed_submissions(self) -> int:
        """Move every file in failed/ back to pending/."""
        moved = 0
        for path in sorted(self._dir(FAILED_DIR).glob("*.json")):
            try:
                self.move_to_directory(path, PENDING_DIR)
                moved += 1
            except OSError as e:
                logger.error(f"Failed to requeue {path.name}: {e}")
        if moved:
            logger.info(f"Requeued {moved} failed submission(s)")
        return moved

    def cleanup_old_success_files(self, days_to_keep: int) -> int:
        """Delete success/ files last modified before the cutoff."""
        cutoff = time.time() - days_to_keep * 24 * 60 * 60
        removed = 0
        for path in self._dir(SUCCESS_DIR).glob("*.json"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except FileNotFoundError:
                continue
        if removed:
            logger.info(f"Cleaned up {removed} old success file(s)")
        return removed

    def clear_all_queues(self) -> int:
        """Delete every file in all four queue directories."""
        removed = 0
        for name in QUEUE_DIRS:
            for path in self._dir(name).iterdir():
                if path.is_file():
                    path.unlink(missing_ok=True)
                    removed += 1
        logger.warning(f"Cleared all queue directories ({removed} file(s) removed)")
        return removed

    def cleanup_duplicate_files(self) -> int:
        """Where a file name appears in several directories keep only the newest copy."""
        newest: dict[str, Path] = {}
        removed = 0
        for name in QUEUE_DIRS:
            for path in self._dir(name).glob("*.json"):
                current = newest.get(path.name)
                if current is None:
                    newest[path.name] = path
                    continue
                if path.stat().st_mtime > current.stat().st_mtime:
                    stale, newest[path.name] = current, path
                else:
                    stale = path
                stale.unlink(missing_ok=True)
                removed += 1
                logger.debug(f"Removed older duplicate: {stale.parent.name}/{stale.name}")
        logger.info(f"Duplicate file cleanup completed ({removed} removed)")
        return removed
