import re
import uuid
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from basehost_provider import BaseHostProvider
from data_classes import Progress, ScanStatus
from exceptions import InvalidScanIdError, ScanAlreadyRunningError, ScanNotFoundError
from results_export import list_exported_scan_ids, load_results, results_path
from scan_store import ScanStore
from secrets_scanner import SecretsScanner, parse_repository
from time_utils import calculate_elapsed_time, format_duration

logger = logging.getLogger(__name__)

_SCAN_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def generate_scan_id() -> str:
    return str(uuid.uuid4())


def validate_scan_id(scan_id: str) -> None:
    if not scan_id or not _SCAN_ID_RE.match(scan_id):
        raise InvalidScanIdError(
            f"Scan id may only contain letters, digits, '.', '_' and '-': {scan_id!r}"
        )


class ScanService:
    """
    Entry point used by the outer layers (CLI, request handlers).

    Each scan runs on its own background thread; callers poll status() and
    results() instead of waiting. Only one thread per scan id is ever started
    by this service.
    """

    def __init__(
        self,
        store: ScanStore,
        provider_factory: Callable[[], BaseHostProvider],
        results_dir: str = "results",
        scanner_options: Optional[Dict[str, Any]] = None,
    ):
        self.store = store
        self.provider_factory = provider_factory
        self.results_dir = results_dir
        self.scanner_options = scanner_options or {}
        self._lock = threading.Lock()
        self._threads: Dict[str, threading.Thread] = {}

    def start(self, repository: str, scan_id: Optional[str] = None) -> str:
        """Dispatches a scan and returns its id without waiting for it"""

        parse_repository(repository)
        scan_id = scan_id or generate_scan_id()
        validate_scan_id(scan_id)

        with self._lock:
            if self._is_running(scan_id) or (
                self.store.get_status(scan_id) == ScanStatus.IN_PROGRESS
            ):
                raise ScanAlreadyRunningError(scan_id)
            self.store.set_status(scan_id, ScanStatus.IN_PROGRESS)
            self.store.set_repository(scan_id, repository)
            self._dispatch(repository, scan_id)

        logger.info(f"[{scan_id}] Scan dispatched for {repository}")
        return scan_id

    def _is_running(self, scan_id: str) -> bool:
        thread = self._threads.get(scan_id)
        return thread is not None and thread.is_alive()

    def _dispatch(self, repository: str, scan_id: str) -> None:
        thread = threading.Thread(
            target=self._run_scan,
            args=(repository, scan_id),
            name=f"scan-{scan_id}",
            daemon=True,
        )
        self._threads[scan_id] = thread
        thread.start()

    def _run_scan(self, repository: str, scan_id: str) -> None:
        provider = None
        scanner = None
        try:
            provider = self.provider_factory()
            scanner = SecretsScanner(
                provider=provider,
                store=self.store,
                repository=repository,
                scan_id=scan_id,
                results_dir=self.results_dir,
                **self.scanner_options,
            )
            scanner.scan()
        except Exception:
            logger.exception(f"[{scan_id}] Background scan failed")
            if scanner is None:
                # failed before the scanner could record it
                self._mark_failed(scan_id)
        finally:
            if provider is not None:
                provider.close()
            with self._lock:
                if self._threads.get(scan_id) is threading.current_thread():
                    del self._threads[scan_id]

    def _mark_failed(self, scan_id: str) -> None:
        try:
            self.store.set_status(scan_id, ScanStatus.FAILED)
        except Exception as e:
            logger.error(f"[{scan_id}] Could not record failed status: {e}")

    def wait(self, scan_id: str, timeout: Optional[float] = None) -> None:
        thread = self._threads.get(scan_id)
        if thread is not None:
            thread.join(timeout)

    def wait_all(self, timeout: Optional[float] = None) -> None:
        for thread in list(self._threads.values()):
            thread.join(timeout)

    def resume_incomplete_scans(self) -> List[str]:
        """
        Crash recovery: re-dispatches every in-progress scan that still has its
        repository recorded. Meant to be called once at process startup.
        """

        resumed = []
        for scan_id in self.store.get_all_scan_ids():
            if self.store.get_status(scan_id) != ScanStatus.IN_PROGRESS:
                continue

            repository = self.store.get_repository(scan_id)
            if not repository:
                logger.warning(f"[{scan_id}] In-progress scan has no repository recorded, skipping")
                continue

            with self._lock:
                if self._is_running(scan_id):
                    continue
                self._dispatch(repository, scan_id)

            logger.info(f"[{scan_id}] Resuming interrupted scan of {repository}")
            resumed.append(scan_id)

        return resumed

    def status(self, scan_id: str) -> Dict[str, Any]:
        status = self.store.get_status(scan_id)
        if not status:
            data = load_results(scan_id, self.results_dir)
            if data is None:
                raise ScanNotFoundError(scan_id)
            total_commits = data.get("totalCommits") or 0
            return {
                "status": ScanStatus.COMPLETED,
                "progress": Progress(total_commits, total_commits).to_dict(),
                "findings": data.get("findings") or [],
                "startTime": data.get("startTime"),
                "elapsedTime": data.get("duration"),
            }

        progress = self.store.get_progress(scan_id) or Progress(0, 0)
        start_time = self.store.get_start_time(scan_id)
        return {
            "status": status,
            "progress": progress.to_dict(),
            "findings": [f.to_dict() for f in self.store.get_findings(scan_id)],
            "startTime": start_time,
            "elapsedTime": calculate_elapsed_time(start_time) if start_time else None,
        }

    def results(self, scan_id: str) -> Dict[str, Any]:
        status = self.store.get_status(scan_id)
        if not status:
            data = load_results(scan_id, self.results_dir)
            if data is None:
                raise ScanNotFoundError(scan_id)
            return {
                "scanId": data.get("scanId") or scan_id,
                "status": ScanStatus.COMPLETED,
                "totalFindings": data.get("totalFindings") or 0,
                "findings": data.get("findings") or [],
                "startTime": data.get("startTime"),
                "endTime": data.get("endTime"),
                "duration": data.get("duration"),
                "resultsArtifactPath": results_path(scan_id, self.results_dir),
            }

        findings = self.store.get_findings(scan_id)
        start_time = self.store.get_start_time(scan_id)
        end_time = self.store.get_end_time(scan_id)
        return {
            "scanId": scan_id,
            "status": status,
            "totalFindings": len(findings),
            "findings": [f.to_dict() for f in findings],
            "startTime": start_time,
            "endTime": end_time,
            "duration": (
                format_duration(start_time, end_time) if start_time and end_time else None
            ),
            "resultsArtifactPath": self.store.get_results_file(scan_id),
        }

    def delete(self, scan_id: str) -> None:
        """Clears the stored state of a scan. The results file is left in place."""
        self.store.delete_scan(scan_id)
        logger.info(f"[{scan_id}] Scan data deleted")

    def list_all_scan_ids(self) -> List[str]:
        scan_ids = set(self.store.get_all_scan_ids())
        scan_ids.update(list_exported_scan_ids(self.results_dir))
        return sorted(scan_ids)
