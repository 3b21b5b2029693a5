import re
from typing import Callable, Dict, Generic, List, Optional, TypeVar, Any
from dataclasses import dataclass, field

T = TypeVar("T")


class ScanStatus:
    """Lifecycle states a scan record can be in"""

    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Finding:
    """Represents a single secret detected in an added line of a commit diff"""

    commit: str
    commit_url: str
    committer: str
    timestamp: str
    file: str
    line: int
    leak_value: str
    leak_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commit": self.commit,
            "commitUrl": self.commit_url,
            "committer": self.committer,
            "timestamp": self.timestamp,
            "file": self.file,
            "line": self.line,
            "leakValue": self.leak_value,
            "leakType": self.leak_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Finding":
        return cls(
            commit=data["commit"],
            commit_url=data["commitUrl"],
            committer=data["committer"],
            timestamp=data["timestamp"],
            file=data["file"],
            line=int(data["line"]),
            leak_value=data["leakValue"],
            leak_type=data["leakType"],
        )


@dataclass(frozen=True)
class Checkpoint:
    """Resume marker: the last fully processed commit of a scan"""

    last_commit_sha: str
    total_commits: int
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastCommitSha": self.last_commit_sha,
            "totalCommits": self.total_commits,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Checkpoint":
        return cls(
            last_commit_sha=data["lastCommitSha"],
            total_commits=int(data.get("totalCommits", 0)),
            timestamp=data.get("timestamp", ""),
        )


@dataclass(frozen=True)
class Progress:
    current: int
    total: int

    def to_dict(self) -> Dict[str, int]:
        return {"current": self.current, "total": self.total}


@dataclass(frozen=True)
class ScanPattern:
    """A named secret recognizer.

    When `value_group` is set the captured group is reported instead of the whole
    match. `validator` is an extra acceptance check run after the shared filters.
    """

    name: str
    regex: "re.Pattern[str]"
    description: str
    value_group: Optional[int] = None
    validator: Optional[Callable[[str], bool]] = None


@dataclass(frozen=True)
class SecretMatch:
    leak_type: str
    value: str


@dataclass(frozen=True)
class RateLimit:
    """Quota metadata read from a hosting API response"""

    remaining: Optional[int]
    reset: Optional[int]


@dataclass(frozen=True)
class HostResponse(Generic[T]):
    data: T
    rate_limit: Optional[RateLimit] = None


@dataclass(frozen=True)
class ChangedFile:
    filename: str
    patch: Optional[str] = None


@dataclass(frozen=True)
class CommitDetail:
    sha: str
    committer_name: Optional[str] = None
    committer_email: Optional[str] = None
    committer_date: Optional[str] = None
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    author_date: Optional[str] = None
    files: List[ChangedFile] = field(default_factory=list)
