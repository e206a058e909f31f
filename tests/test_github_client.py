"""Tests for the GitHub directory client."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from canopus.github_client import GitHubClient, GitHubClientError, RateLimitError
from canopus.validator import DirectoryLookupError, OrganizationNotFoundError


def _response(status: int, payload=None, text: str = "", headers: dict | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    resp.text = text
    resp.headers = headers or {}
    return resp


@pytest.fixture
def client() -> GitHubClient:
    gh = GitHubClient("ghp_test")
    gh.session = MagicMock()
    return gh


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("canopus.github_client.time.sleep", lambda seconds: None)


class TestConstruction:
    def test_requires_token(self) -> None:
        with pytest.raises(GitHubClientError, match="GITHUB_TOKEN"):
            GitHubClient("")

    def test_sets_auth_header(self) -> None:
        gh = GitHubClient("ghp_test")
        assert gh.session.headers["Authorization"] == "Bearer ghp_test"

    def test_errors_are_lookup_errors(self) -> None:
        assert issubclass(GitHubClientError, DirectoryLookupError)


class TestUserAndTeamLookups:
    def test_user_exists(self, client: GitHubClient) -> None:
        client.session.request.return_value = _response(200, {"login": "ubiratansoares"})
        assert client.user_exists("ubiratansoares") is True
        args, kwargs = client.session.request.call_args
        assert args == ("GET", "https://api.github.com/users/ubiratansoares")

    def test_user_missing(self, client: GitHubClient) -> None:
        client.session.request.return_value = _response(404)
        assert client.user_exists("ghost") is False

    def test_team_exists(self, client: GitHubClient) -> None:
        client.session.request.return_value = _response(200, {"slug": "crabbers"})
        assert client.team_exists("dotanuki-labs", "crabbers") is True
        args, _ = client.session.request.call_args
        assert args[1].endswith("/orgs/dotanuki-labs/teams/crabbers")

    def test_server_error_raises(self, client: GitHubClient) -> None:
        client.session.request.return_value = _response(500)
        with pytest.raises(GitHubClientError, match="HTTP 500"):
            client.team_exists("dotanuki-labs", "crabbers")

    def test_transport_error_is_wrapped(self, client: GitHubClient) -> None:
        client.session.request.side_effect = requests.ConnectionError("reset")
        with pytest.raises(GitHubClientError, match="failed"):
            client.user_exists("ubiratansoares")

    def test_retries_bad_gateway(self, client: GitHubClient) -> None:
        client.session.request.side_effect = [_response(502), _response(200, {})]
        assert client.user_exists("ubiratansoares") is True
        assert client.session.request.call_count == 2


class TestRateLimit:
    def test_retries_then_succeeds(self, client: GitHubClient) -> None:
        limited = _response(403, text="API rate limit exceeded")
        client.session.request.side_effect = [limited, _response(200, {})]
        assert client.user_exists("ubiratansoares") is True

    def test_gives_up_after_max_retries(self, client: GitHubClient) -> None:
        client.session.request.return_value = _response(429, text="secondary rate limit")
        with pytest.raises(RateLimitError):
            client.user_exists("ubiratansoares")
        assert client.session.request.call_count == 3

    def test_forbidden_without_rate_limit_is_an_error(self, client: GitHubClient) -> None:
        client.session.request.return_value = _response(403, text="Resource not accessible")
        with pytest.raises(GitHubClientError, match="HTTP 403"):
            client.user_exists("ubiratansoares")


class TestOrgMembers:
    def test_paginates(self, client: GitHubClient) -> None:
        first = [{"login": f"user{i}"} for i in range(100)]
        second = [{"login": "last"}]
        client.session.request.side_effect = [_response(200, first), _response(200, second)]
        members = client.org_members("dotanuki-labs")
        assert len(members) == 101
        assert "last" in members
        assert client.session.request.call_args.kwargs["params"] == {"per_page": 100, "page": 2}

    def test_missing_organization(self, client: GitHubClient) -> None:
        client.session.request.return_value = _response(404)
        with pytest.raises(OrganizationNotFoundError):
            client.org_members("no-such-org")

    def test_empty_organization(self, client: GitHubClient) -> None:
        client.session.request.return_value = _response(200, [])
        assert client.org_members("dotanuki-labs") == set()

    def test_large_organization_is_fully_listed(self, client: GitHubClient) -> None:
        pages = [
            _response(200, [{"login": f"user{page}-{i}"} for i in range(100)]) for page in range(101)
        ]
        client.session.request.side_effect = [*pages, _response(200, [])]
        members = client.org_members("dotanuki-labs")
        assert len(members) == 10100
        assert "user100-99" in members
