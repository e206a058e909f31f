"""GitHub REST API client backing the online CODEOWNERS checks."""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

from canopus.validator import DirectoryLookupError, OrganizationNotFoundError

logger = logging.getLogger(__name__)

API_BASE = "https://api.github.com"
PER_PAGE = 100
MAX_RETRIES = 3
BACKOFF_FACTOR = 2.0
REQUEST_TIMEOUT = 30


class GitHubClientError(DirectoryLookupError):
    pass


class RateLimitError(GitHubClientError):
    pass


class GitHubClient:
    """Answers user, team and membership questions with automatic rate-limit backoff."""

    def __init__(self, token: str, api_base: str = API_BASE) -> None:
        if not token:
            raise GitHubClientError(
                "GitHub token is required for online checks. Set GITHUB_TOKEN or run offline."
            )
        self.api_base = api_base.rstrip("/")
        self.session = requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )

    # ------------------------------------------------------------------
    # Core request
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, params: dict[str, Any] | None = None) -> requests.Response | None:
        """Send a request; return None on 404 and raise GitHubClientError on any other failure."""
        url = f"{self.api_base}{path}"
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                resp = self.session.request(method, url, params=params, timeout=REQUEST_TIMEOUT)
            except requests.RequestException as e:
                raise GitHubClientError(f"{method} {path} failed: {e}") from e

            if resp.status_code == 200:
                return resp
            if resp.status_code == 404:
                return None
            if resp.status_code in (403, 429) and "rate limit" in resp.text.lower():
                if attempt == MAX_RETRIES:
                    raise RateLimitError(f"Rate limit exhausted: {path}")
                reset_at = int(resp.headers.get("X-RateLimit-Reset", 0))
                wait = max(reset_at - int(time.time()), 0) + 1
                logger.warning("Rate limited. Sleeping %ds (attempt %d/%d)", wait, attempt, MAX_RETRIES)
                time.sleep(min(wait, 120))  # cap wait at 2 min
                continue
            if resp.status_code in (502, 503) and attempt < MAX_RETRIES:
                time.sleep(BACKOFF_FACTOR ** attempt)
                continue
            raise GitHubClientError(f"{method} {path} returned HTTP {resp.status_code}")
        raise GitHubClientError(f"Request failed after {MAX_RETRIES} retries: {path}")

    def _paginate(self, path: str) -> list[Any] | None:
        """Collect every page of a GitHub list endpoint; None when the resource is missing.

        Pages are read until GitHub returns a short or empty one.
        """
        items: list[Any] = []
        page = 1
        while True:
            resp = self._request("GET", path, params={"per_page": PER_PAGE, "page": page})
            if resp is None:
                return None if page == 1 else items
            data = resp.json()
            if not data:
                break
            items.extend(data)
            if len(data) < PER_PAGE:
                break
            page += 1
        return items

    # ------------------------------------------------------------------
    # Directory lookup
    # ------------------------------------------------------------------

    def user_exists(self, handle: str) -> bool:
        return self._request("GET", f"/users/{handle}") is not None

    def org_members(self, organization: str) -> set[str]:
        members = self._paginate(f"/orgs/{organization}/members")
        if members is None:
            raise OrganizationNotFoundError(f"organization '{organization}' not found")
        logger.debug("Organization %s has %d member(s)", organization, len(members))
        return {member["login"] for member in members}

    def team_exists(self, organization: str, team: str) -> bool:
        return self._request("GET", f"/orgs/{organization}/teams/{team}") is not None

