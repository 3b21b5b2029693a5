from abc import ABC, abstractmethod
from typing import List

from data_classes import CommitDetail, HostResponse


class BaseHostProvider(ABC):
    """abstract base class for the repository hosting API"""

    @abstractmethod
    def list_commits(
        self, owner: str, repo: str, page: int, per_page: int
    ) -> HostResponse[List[str]]:
        """One page of commit SHAs, newest first. Pages are 1-based."""
        pass

    @abstractmethod
    def get_commit(self, owner: str, repo: str, sha: str) -> HostResponse[CommitDetail]:
        pass

    @abstractmethod
    def is_available(self) -> bool:
        pass

    def close(self) -> None:
        pass
