import os
import re
import json
import logging
from typing import Any, Dict, List, Optional

from data_classes import Finding
from time_utils import format_duration, utc_now_iso

logger = logging.getLogger(__name__)

_RESULTS_FILE_RE = re.compile(r"^scan_(.+)_results\.json$")


def results_path(scan_id: str, results_dir: str) -> str:
    return os.path.join(results_dir, f"scan_{scan_id}_results.json")


def build_results_document(
    scan_id: str,
    repository: str,
    findings: List[Finding],
    total_commits: int,
    start_time: Optional[str],
    end_time: Optional[str],
) -> Dict[str, Any]:
    """Builds the JSON document written for a completed scan"""

    return {
        "scanId": scan_id,
        "repository": repository,
        "totalFindings": len(findings),
        "totalCommits": total_commits,
        "scanDate": utc_now_iso(),
        "startTime": start_time,
        "endTime": end_time,
        "duration": (
            format_duration(start_time, end_time) if start_time and end_time else None
        ),
        "findings": [f.to_dict() for f in findings],
    }


def export_results(
    scan_id: str,
    repository: str,
    findings: List[Finding],
    total_commits: int,
    start_time: Optional[str],
    end_time: Optional[str],
    results_dir: str,
) -> Optional[str]:
    """
    Writes the results document of a scan to its fixed location under results_dir.

    Returns the file path, or None when the file could not be written. A failed
    export is logged and never raised so the scan can still complete.
    """

    output_file = results_path(scan_id, results_dir)
    document = build_results_document(
        scan_id, repository, findings, total_commits, start_time, end_time
    )

    try:
        os.makedirs(results_dir, exist_ok=True)
        with open(output_file, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"[{scan_id}] Failed to write results file {output_file}: {e}")
        return None

    logger.info(f"[{scan_id}] Results saved to {output_file}")
    return output_file


def load_results(scan_id: str, results_dir: str) -> Optional[Dict[str, Any]]:
    """Reads an exported results document, None if there is none or it is unreadable"""

    path = results_path(scan_id, results_dir)
    if not os.path.exists(path):
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read results file {path}: {e}")
        return None


def list_exported_scan_ids(results_dir: str) -> List[str]:
    if not os.path.isdir(results_dir):
        return []

    scan_ids = []
    for filename in os.listdir(results_dir):
        match = _RESULTS_FILE_RE.match(filename)
        if match:
            scan_ids.append(match.group(1))
    return sorted(scan_ids)
