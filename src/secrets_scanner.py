import time
import logging
from typing import Any, Callable, List, Optional, TypeVar

from basehost_provider import BaseHostProvider
from data_classes import (
    Checkpoint,
    CommitDetail,
    Finding,
    HostResponse,
    Progress,
    RateLimit,
    ScanStatus,
)
from diff_parser import added_lines
from exceptions import InvalidRepositoryError, RateLimitError
from patterns_registry import PatternRegistry
from results_export import export_results
from scan_store import ScanStore
from time_utils import utc_now_iso

logger = logging.getLogger(__name__)

T = TypeVar("T")

COMMITS_PER_PAGE = 100
DEFAULT_RATE_LIMIT_FLOOR = 10
DEFAULT_RATE_LIMIT_BACKOFF_SECONDS = 60
DEFAULT_RATE_LIMIT_MAX_RETRIES = 5
# Extra wait after the reported quota reset instant
RATE_LIMIT_RESET_MARGIN_SECONDS = 1


def parse_repository(repository: str) -> List[str]:
    """Splits an `owner/name` identifier"""
    parts = repository.split("/") if repository else []
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise InvalidRepositoryError(
            f"Repository must be in format owner/repo: {repository!r}"
        )
    return parts


def commit_url(owner: str, repo: str, sha: str) -> str:
    return f"https://github.com/{owner}/{repo}/commit/{sha}"


class SecretsScanner:
    """Scans the full commit history of one repository for one scan id"""

    def __init__(
        self,
        provider: BaseHostProvider,
        store: ScanStore,
        repository: str,
        scan_id: str,
        results_dir: str = "results",
        pattern_registry: Optional[PatternRegistry] = None,
        rate_limit_floor: int = DEFAULT_RATE_LIMIT_FLOOR,
        rate_limit_backoff: float = DEFAULT_RATE_LIMIT_BACKOFF_SECONDS,
        max_rate_limit_retries: int = DEFAULT_RATE_LIMIT_MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initializes SecretsScanner

        Args:
            provider: Hosting API used to list commits and fetch commit diffs.
            store: Scan store holding status, progress, findings and the checkpoint.
            repository (str): Repository identifier in `owner/name` form.
            scan_id (str): Id scoping all stored state; reusing it resumes the scan.
            results_dir (str, optional): Directory the results file is written to.
            rate_limit_floor (int, optional): Remaining quota below which the scanner
                waits for the quota reset before the next call.
            rate_limit_backoff (float, optional): Seconds to wait after a rate limited call.
            max_rate_limit_retries (int, optional): Retries of one call after rate limiting.
            sleep / clock: Injectable time functions.
        """

        self.owner, self.repo = parse_repository(repository)
        self.repository = repository
        self.provider = provider
        self.store = store
        self.scan_id = scan_id
        self.results_dir = results_dir
        self.pattern_registry = pattern_registry or PatternRegistry()
        self.rate_limit_floor = rate_limit_floor
        self.rate_limit_backoff = rate_limit_backoff
        self.max_rate_limit_retries = max_rate_limit_retries
        self._sleep = sleep
        self._clock = clock

        self.commits_processed = 0
        self.findings_count = 0

    def scan(self) -> Optional[str]:
        """
        Runs (or resumes) the scan until every commit has been processed.

        Returns the results file path, None if the results file could not be written.
        On failure the status is set to failed, checkpoint and progress are kept for a
        later resume, and the error is re-raised.
        """

        try:
            self.store.set_status(self.scan_id, ScanStatus.IN_PROGRESS)
            self.store.set_repository(self.scan_id, self.repository)

            checkpoint = self.store.get_checkpoint(self.scan_id)
            if not self.store.get_start_time(self.scan_id):
                self.store.set_start_time(self.scan_id, utc_now_iso())
                logger.info(f"[{self.scan_id}] Starting new scan of {self.repository}")
            else:
                logger.info(f"[{self.scan_id}] Resuming scan of {self.repository}")

            total_commits = self._scan_commits(checkpoint)

            self.store.set_end_time(self.scan_id, utc_now_iso())
            results_file = self._export_results(total_commits)

            self.store.set_status(self.scan_id, ScanStatus.COMPLETED)
            self.store.set_progress(self.scan_id, Progress(total_commits, total_commits))

            # the results file is now the only record of this scan
            self.store.delete_scan(self.scan_id)
            logger.info(
                f"[{self.scan_id}] Scan completed: {total_commits} commits, "
                f"{self.findings_count} new findings"
            )
            return results_file

        except Exception as e:
            logger.error(f"[{self.scan_id}] Scan failed: {e}")
            self._mark_failed()
            raise

    def _mark_failed(self) -> None:
        try:
            self.store.set_status(self.scan_id, ScanStatus.FAILED)
        except Exception as e:
            logger.error(f"[{self.scan_id}] Could not record failed status: {e}")

    def _export_results(self, total_commits: int) -> Optional[str]:
        findings = self.store.get_findings(self.scan_id)
        results_file = export_results(
            scan_id=self.scan_id,
            repository=self.repository,
            findings=findings,
            total_commits=total_commits,
            start_time=self.store.get_start_time(self.scan_id),
            end_time=self.store.get_end_time(self.scan_id),
            results_dir=self.results_dir,
        )
        if results_file:
            self.store.set_results_file(self.scan_id, results_file)
        return results_file

    def _call_host(
        self, func: Callable[..., HostResponse[T]], *args: Any, **kwargs: Any
    ) -> HostResponse[T]:
        """
        Calls the hosting API, waiting out rate limits.

        A rate limited call is retried after a fixed backoff, at most
        max_rate_limit_retries times. After a successful call the remaining quota is
        checked and the scanner sleeps until the reset when it runs low.
        """

        retries = 0
        while True:
            try:
                response = func(*args, **kwargs)
            except RateLimitError:
                retries += 1
                if retries > self.max_rate_limit_retries:
                    logger.error(
                        f"[{self.scan_id}] Still rate limited after {self.max_rate_limit_retries} retries"
                    )
                    raise
                logger.warning(
                    f"[{self.scan_id}] Rate limited, retrying in {self.rate_limit_backoff}s "
                    f"({retries}/{self.max_rate_limit_retries})"
                )
                self._sleep(self.rate_limit_backoff)
                continue

            self._handle_rate_limit(response.rate_limit)
            return response

    def _handle_rate_limit(self, rate_limit: Optional[RateLimit]) -> None:
        if rate_limit is None or rate_limit.remaining is None or rate_limit.reset is None:
            return
        if rate_limit.remaining >= self.rate_limit_floor:
            return

        wait_seconds = rate_limit.reset - self._clock() + RATE_LIMIT_RESET_MARGIN_SECONDS
        if wait_seconds > 0:
            logger.warning(
                f"[{self.scan_id}] Only {rate_limit.remaining} API calls left, "
                f"waiting {wait_seconds:.0f}s for the quota reset"
            )
            self._sleep(wait_seconds)

    def _list_all_commits(self) -> List[str]:
        """All commit SHAs of the repository, oldest first"""

        logger.info(f"[{self.scan_id}] Fetching commit history...")
        all_commits = []
        page = 1

        while True:
            response = self._call_host(
                self.provider.list_commits,
                self.owner,
                self.repo,
                page=page,
                per_page=COMMITS_PER_PAGE,
            )
            if not response.data:
                break

            all_commits.extend(response.data)

            if len(response.data) < COMMITS_PER_PAGE:
                break
            page += 1

        # the API returns newest first
        all_commits.reverse()
        logger.info(f"[{self.scan_id}] Found {len(all_commits)} total commits")
        return all_commits

    def _scan_commits(self, checkpoint: Optional[Checkpoint]) -> int:
        all_commits = self._list_all_commits()

        start_index = 0
        processed = 0
        if checkpoint:
            try:
                start_index = all_commits.index(checkpoint.last_commit_sha) + 1
                processed = checkpoint.total_commits
                logger.info(
                    f"[{self.scan_id}] Resuming from commit {start_index + 1}/{len(all_commits)}"
                )
            except ValueError:
                logger.warning(
                    f"[{self.scan_id}] Checkpoint commit {checkpoint.last_commit_sha} not found "
                    f"in history, starting from the oldest commit"
                )
        else:
            logger.info(f"[{self.scan_id}] Starting from oldest commit")

        for index in range(start_index, len(all_commits)):
            sha = all_commits[index]
            self._process_commit(sha)
            processed += 1

            # only written once every finding of the commit is stored
            self.store.save_checkpoint(
                self.scan_id,
                Checkpoint(last_commit_sha=sha, total_commits=processed, timestamp=utc_now_iso()),
            )
            self.store.set_progress(self.scan_id, Progress(index + 1, len(all_commits)))
            self.commits_processed = processed

        self.commits_processed = processed
        logger.info(f"[{self.scan_id}] Finished processing all commits")
        return len(all_commits)

    def _process_commit(self, sha: str) -> None:
        logger.debug(f"[{self.scan_id}] Processing commit: {sha}")

        response = self._call_host(self.provider.get_commit, self.owner, self.repo, sha)
        detail = response.data

        committer = self._committer_info(detail)
        timestamp = detail.committer_date or detail.author_date or utc_now_iso()

        for changed_file in detail.files:
            if changed_file.patch:
                self._scan_patch(changed_file.patch, sha, committer, timestamp, changed_file.filename)

    def _committer_info(self, detail: CommitDetail) -> str:
        name = detail.committer_name or detail.author_name or "Unknown"
        email = detail.committer_email or detail.author_email or ""
        return f"{name} <{email}>" if email else name

    def _scan_patch(
        self, patch: str, sha: str, committer: str, timestamp: str, filename: str
    ) -> None:
        for line_number, content in added_lines(patch):
            for secret in self.pattern_registry.detect(content):
                logger.info(
                    f"[{self.scan_id}] Found {secret.leak_type} in {filename}:{line_number} "
                    f"(commit: {sha[:7]})"
                )
                finding = Finding(
                    commit=sha,
                    commit_url=commit_url(self.owner, self.repo, sha),
                    committer=committer,
                    timestamp=timestamp,
                    file=filename,
                    line=line_number,
                    leak_value=secret.value,
                    leak_type=secret.leak_type,
                )
                self.store.append_finding(self.scan_id, finding)
                self.findings_count += 1
