import unittest
from datetime import datetime, timezone
from unittest.mock import Mock, patch
import sys
import os

from github import GithubException, RateLimitExceededException

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from github_provider import GitHubProvider
from data_classes import ChangedFile, RateLimit
from exceptions import HostApiError, RateLimitError


def make_person(name, email, date):
    person = Mock(email=email, date=date)
    # `name` is reserved by the Mock constructor
    person.name = name
    return person


class TestGitHubProvider(unittest.TestCase):
    def setUp(self):
        self.github = Mock()
        self.github.rate_limiting = (4321, 5000)
        self.github.rate_limiting_resettime = 1700000000
        self.repository = self.github.get_repo.return_value
        self.provider = GitHubProvider("token", github=self.github)

    @patch("github_provider.Github")
    @patch("github_provider.Auth")
    def test_builds_client_from_token(self, mock_auth, mock_github):
        GitHubProvider("secret-token", per_page=50)
        mock_auth.Token.assert_called_once_with("secret-token")
        mock_github.assert_called_once_with(auth=mock_auth.Token.return_value, per_page=50)

    def test_list_commits(self):
        self.repository.get_commits.return_value.get_page.return_value = [
            Mock(sha="bbb"),
            Mock(sha="aaa"),
        ]

        response = self.provider.list_commits("octo", "repo", page=2, per_page=100)

        self.github.get_repo.assert_called_once_with("octo/repo", lazy=True)
        self.repository.get_commits.return_value.get_page.assert_called_once_with(1)
        self.assertEqual(response.data, ["bbb", "aaa"])
        self.assertEqual(response.rate_limit, RateLimit(remaining=4321, reset=1700000000))

    def test_list_commits_rejects_other_page_size(self):
        with self.assertRaises(ValueError):
            self.provider.list_commits("octo", "repo", page=1, per_page=30)

    def test_get_commit(self):
        committed = datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)
        commit = Mock(sha="abc")
        commit.commit.committer = make_person("Dev", "dev@corp.io", committed)
        commit.commit.author = None
        commit.files = [
            Mock(filename="app.py", patch="@@ -0,0 +1 @@\n+x"),
            Mock(filename="logo.png", patch=None),
        ]
        self.repository.get_commit.return_value = commit

        response = self.provider.get_commit("octo", "repo", "abc")

        self.repository.get_commit.assert_called_once_with("abc")
        detail = response.data
        self.assertEqual(detail.sha, "abc")
        self.assertEqual(detail.committer_name, "Dev")
        self.assertEqual(detail.committer_email, "dev@corp.io")
        self.assertEqual(detail.committer_date, "2025-01-15T10:00:00.000Z")
        self.assertIsNone(detail.author_name)
        self.assertIsNone(detail.author_date)
        self.assertEqual(
            detail.files,
            [ChangedFile("app.py", "@@ -0,0 +1 @@\n+x"), ChangedFile("logo.png", None)],
        )

    def test_rate_limit_exception(self):
        self.repository.get_commit.side_effect = RateLimitExceededException(
            403, {"message": "API rate limit exceeded"}, {"X-RateLimit-Reset": "1700000123"}
        )
        with self.assertRaises(RateLimitError) as ctx:
            self.provider.get_commit("octo", "repo", "abc")
        self.assertEqual(ctx.exception.status, 403)
        self.assertEqual(ctx.exception.reset, 1700000123)

    def test_too_many_requests(self):
        self.repository.get_commits.return_value.get_page.side_effect = GithubException(
            429, {"message": "Too Many Requests"}, None
        )
        with self.assertRaises(RateLimitError) as ctx:
            self.provider.list_commits("octo", "repo", page=1, per_page=100)
        self.assertIsNone(ctx.exception.reset)

    def test_forbidden_with_rate_limit_message(self):
        self.repository.get_commit.side_effect = GithubException(
            403, {"message": "You have exceeded a secondary rate limit"}, {}
        )
        with self.assertRaises(RateLimitError):
            self.provider.get_commit("octo", "repo", "abc")

    def test_other_errors_are_not_rate_limits(self):
        for status, message in [(403, "Resource not accessible"), (404, "Not Found"), (500, "Boom")]:
            self.repository.get_commit.side_effect = GithubException(status, {"message": message}, {})
            with self.assertRaises(HostApiError) as ctx:
                self.provider.get_commit("octo", "repo", "abc")
            self.assertNotIsInstance(ctx.exception, RateLimitError)
            self.assertEqual(ctx.exception.status, status)

    def test_is_available(self):
        self.assertTrue(self.provider.is_available())
        self.github.get_rate_limit.side_effect = GithubException(401, {"message": "Bad credentials"}, {})
        self.assertFalse(self.provider.is_available())

    def test_close(self):
        self.provider.close()
        self.github.close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
