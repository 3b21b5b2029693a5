import logging
from typing import List, Optional

from github import Auth, Github, GithubException, RateLimitExceededException

from basehost_provider import BaseHostProvider
from data_classes import ChangedFile, CommitDetail, HostResponse, RateLimit
from exceptions import HostApiError, RateLimitError
from time_utils import to_iso

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 100


class GitHubProvider(BaseHostProvider):
    """Hosting API access through PyGithub"""

    def __init__(
        self,
        token: str,
        per_page: int = DEFAULT_PER_PAGE,
        github: Optional[Github] = None,
    ):
        self.per_page = per_page
        self._github = github or Github(auth=Auth.Token(token), per_page=per_page)

    def _rate_limit(self) -> RateLimit:
        """Quota reported by the headers of the most recent response"""
        remaining, _limit = self._github.rate_limiting
        return RateLimit(remaining=remaining, reset=self._github.rate_limiting_resettime)

    def _translate_error(self, error: GithubException) -> HostApiError:
        headers = getattr(error, "headers", None) or {}
        reset_header = next(
            (v for k, v in headers.items() if k.lower() == "x-ratelimit-reset"), None
        )

        is_rate_limit = (
            isinstance(error, RateLimitExceededException)
            or error.status == 429
            or (error.status == 403 and "rate limit" in str(error).lower())
        )
        if is_rate_limit:
            reset = int(reset_header) if reset_header else None
            return RateLimitError(str(error), status=error.status, reset=reset)

        return HostApiError(f"GitHub API error: {error}", status=error.status)

    def list_commits(
        self, owner: str, repo: str, page: int, per_page: int
    ) -> HostResponse[List[str]]:
        if per_page != self.per_page:
            raise ValueError(
                f"per_page {per_page} does not match provider page size {self.per_page}"
            )

        try:
            repository = self._github.get_repo(f"{owner}/{repo}", lazy=True)
            commits = repository.get_commits().get_page(page - 1)
            shas = [commit.sha for commit in commits]
        except GithubException as e:
            raise self._translate_error(e) from e

        logger.debug(f"Fetched commit page {page} of {owner}/{repo}: {len(shas)} commits")
        return HostResponse(data=shas, rate_limit=self._rate_limit())

    def get_commit(self, owner: str, repo: str, sha: str) -> HostResponse[CommitDetail]:
        try:
            repository = self._github.get_repo(f"{owner}/{repo}", lazy=True)
            commit = repository.get_commit(sha)
            git_commit = commit.commit
            committer = git_commit.committer
            author = git_commit.author
            files = [
                ChangedFile(filename=f.filename, patch=f.patch) for f in commit.files
            ]
        except GithubException as e:
            raise self._translate_error(e) from e

        detail = CommitDetail(
            sha=commit.sha,
            committer_name=committer.name if committer else None,
            committer_email=committer.email if committer else None,
            committer_date=to_iso(committer.date) if committer and committer.date else None,
            author_name=author.name if author else None,
            author_email=author.email if author else None,
            author_date=to_iso(author.date) if author and author.date else None,
            files=files,
        )
        return HostResponse(data=detail, rate_limit=self._rate_limit())

    def is_available(self) -> bool:
        try:
            self._github.get_rate_limit()
            return True
        except GithubException as e:
            logger.warning(f"GitHub API not reachable: {e}")
            return False

    def close(self) -> None:
        self._github.close()
