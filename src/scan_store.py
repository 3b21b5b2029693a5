import re
import json
import logging
from typing import List, Optional

import redis

from data_classes import Checkpoint, Finding, Progress
from exceptions import StoreNotInitializedError

logger = logging.getLogger(__name__)

KEY_PREFIX = "scan"

# Every per-scan field; delete_scan() clears all of them
SCAN_FIELDS = [
    "checkpoint",
    "findings",
    "status",
    "progress",
    "starttime",
    "endtime",
    "resultsfile",
    "repository",
]

_SCAN_KEY_RE = re.compile(r"^%s:([^:]+):" % KEY_PREFIX)


class ScanStore:
    """
    Durable per-scan state kept in Redis under `scan:<scan_id>:<field>` keys.

    Every write replaces a whole field, except findings which are an append-only list.
    The connection is created by initialize() and released by close(); a client can
    also be injected directly.
    """

    def __init__(self, client: Optional[redis.Redis] = None):
        self._client = client

    def initialize(self, redis_url: str) -> None:
        """Connects to Redis. Calling it again on a connected store does nothing"""

        if self._client is not None:
            logger.debug("Scan store already initialized")
            return

        client = redis.Redis.from_url(redis_url, decode_responses=True)
        client.ping()
        self._client = client
        logger.info("Connected to scan store")

    @property
    def is_initialized(self) -> bool:
        return self._client is not None

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("Scan store connection closed")

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            raise StoreNotInitializedError("Scan store not initialized")
        return self._client

    def _key(self, scan_id: str, field: str) -> str:
        return f"{KEY_PREFIX}:{scan_id}:{field}"

    def _set(self, scan_id: str, field: str, value: str) -> None:
        self._get_client().set(self._key(scan_id, field), value)

    def _get(self, scan_id: str, field: str) -> Optional[str]:
        return self._get_client().get(self._key(scan_id, field))

    def save_checkpoint(self, scan_id: str, checkpoint: Checkpoint) -> None:
        self._set(scan_id, "checkpoint", json.dumps(checkpoint.to_dict()))

    def get_checkpoint(self, scan_id: str) -> Optional[Checkpoint]:
        data = self._get(scan_id, "checkpoint")
        if not data:
            return None
        return Checkpoint.from_dict(json.loads(data))

    def append_finding(self, scan_id: str, finding: Finding) -> None:
        self._get_client().rpush(
            self._key(scan_id, "findings"), json.dumps(finding.to_dict())
        )

    def get_findings(self, scan_id: str) -> List[Finding]:
        items = self._get_client().lrange(self._key(scan_id, "findings"), 0, -1)
        return [Finding.from_dict(json.loads(item)) for item in items]

    def set_status(self, scan_id: str, status: str) -> None:
        self._set(scan_id, "status", status)

    def get_status(self, scan_id: str) -> Optional[str]:
        return self._get(scan_id, "status")

    def set_progress(self, scan_id: str, progress: Progress) -> None:
        self._set(scan_id, "progress", json.dumps(progress.to_dict()))

    def get_progress(self, scan_id: str) -> Optional[Progress]:
        data = self._get(scan_id, "progress")
        if not data:
            return None
        parsed = json.loads(data)
        return Progress(current=int(parsed["current"]), total=int(parsed["total"]))

    def set_start_time(self, scan_id: str, start_time: str) -> None:
        self._set(scan_id, "starttime", start_time)

    def get_start_time(self, scan_id: str) -> Optional[str]:
        return self._get(scan_id, "starttime")

    def set_end_time(self, scan_id: str, end_time: str) -> None:
        self._set(scan_id, "endtime", end_time)

    def get_end_time(self, scan_id: str) -> Optional[str]:
        return self._get(scan_id, "endtime")

    def set_results_file(self, scan_id: str, file_path: str) -> None:
        self._set(scan_id, "resultsfile", file_path)

    def get_results_file(self, scan_id: str) -> Optional[str]:
        return self._get(scan_id, "resultsfile")

    def set_repository(self, scan_id: str, repository: str) -> None:
        self._set(scan_id, "repository", repository)

    def get_repository(self, scan_id: str) -> Optional[str]:
        return self._get(scan_id, "repository")

    def get_all_scan_ids(self) -> List[str]:
        """Ids of every scan that still has at least one field in the store"""

        scan_ids = set()
        for key in self._get_client().scan_iter(match=f"{KEY_PREFIX}:*", count=100):
            match = _SCAN_KEY_RE.match(key)
            if match:
                scan_ids.add(match.group(1))
        return sorted(scan_ids)

    def delete_scan(self, scan_id: str) -> None:
        keys = [self._key(scan_id, field) for field in SCAN_FIELDS]
        self._get_client().delete(*keys)
