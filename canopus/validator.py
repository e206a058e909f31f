"""Rule-based CODEOWNERS validation.

Offline rules only need the parsed document, the configuration and the list
of project paths.  Online rules consult a :class:`DirectoryLookup` (GitHub in
production) and never abort the run: a failed lookup becomes a
``CannotVerify*`` issue instead of an exception.

Issues are always returned sorted by line; within one line they keep the
order in which the rules below discovered them.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence

from canopus.config import Config
from canopus.patterns import has_any_match
from canopus.schemas import (
    Document,
    EmailOwner,
    IssueKind,
    LineKind,
    Severity,
    TeamOwner,
    UserOwner,
    ValidationIssue,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Directory lookup
# ---------------------------------------------------------------------------

class DirectoryLookupError(Exception):
    """The directory could not answer (transport, auth, rate limit)."""


class OrganizationNotFoundError(DirectoryLookupError):
    """The directory answered: this organization does not exist."""


class DirectoryLookup(Protocol):
    def user_exists(self, handle: str) -> bool: ...

    def org_members(self, organization: str) -> set[str]: ...

    def team_exists(self, organization: str, team: str) -> bool: ...


# ---------------------------------------------------------------------------
# Effective policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EffectivePolicy:
    """Configuration with flag interactions resolved once per run."""

    organization: str
    consistency: bool  # GitHub consistency checks requested
    online: bool  # ... and a directory is available to answer them
    forbid_email_owners: bool
    enforce_github_teams_owners: bool
    enforce_one_owner_per_line: bool
    max_concurrent_lookups: int = 4

    @classmethod
    def from_config(cls, config: Config, lookup: DirectoryLookup | None = None) -> EffectivePolicy:
        return cls(
            organization=config.organization,
            consistency=not config.offline_only,
            online=lookup is not None and not config.offline_only,
            # Team-only ownership implies no email owners, whatever the stored flag says
            forbid_email_owners=config.forbid_email_owners or config.enforce_github_teams_owners,
            enforce_github_teams_owners=config.enforce_github_teams_owners,
            enforce_one_owner_per_line=config.enforce_one_owner_per_line,
            max_concurrent_lookups=max(1, config.max_concurrent_lookups),
        )

    def is_home_organization(self, organization: str) -> bool:
        return organization.casefold() == self.organization.casefold()


def has_errors(issues: Iterable[ValidationIssue]) -> bool:
    return any(issue.severity == Severity.ERROR for issue in issues)


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------

class CodeOwnersValidator:
    """Runs the rule catalogue over a parsed CODEOWNERS document."""

    def __init__(self, paths: Sequence[str] | None, lookup: DirectoryLookup | None = None) -> None:
        self.paths = None if paths is None else list(paths)
        self.lookup = lookup

    def validate(self, document: Document, config: Config) -> list[ValidationIssue]:
        policy = EffectivePolicy.from_config(config, self.lookup)

        issues: list[ValidationIssue] = []
        issues.extend(self._check_syntax(document))
        issues.extend(self._check_dangling_patterns(document))
        issues.extend(self._check_duplicated_patterns(document))
        issues.extend(self._check_team_organizations(document, policy))
        issues.extend(self._check_email_owners(document, policy))
        issues.extend(self._check_team_only_owners(document, policy))
        issues.extend(self._check_single_owner(document, policy))

        if policy.online and self.lookup is not None:
            issues.extend(self._check_directory(document, policy, self.lookup))
        else:
            logger.debug("Skipping online checks")

        # sorted() is stable: ties keep discovery order
        ordered = sorted(issues, key=lambda issue: issue.line_index)
        logger.info("Validation finished with %d issue(s)", len(ordered))
        return ordered

    # ------------------------------------------------------------------
    # Structural checks
    # ------------------------------------------------------------------

    def _check_syntax(self, document: Document) -> list[ValidationIssue]:
        return [
            ValidationIssue.of(IssueKind.INVALID_SYNTAX, line.index, line.error or "invalid syntax")
            for line in document.lines
            if line.kind == LineKind.MALFORMED
        ]

    def _check_dangling_patterns(self, document: Document) -> list[ValidationIssue]:
        if self.paths is None:
            logger.debug("No project paths given, skipping dangling pattern check")
            return []
        issues: list[ValidationIssue] = []
        for line in document.lines:
            if line.pattern is None:
                continue
            if not has_any_match(line.pattern, self.paths):
                issues.append(
                    ValidationIssue.of(
                        IssueKind.DANGLING_GLOB_PATTERN,
                        line.index,
                        f"{line.pattern} does not match any project path",
                    )
                )
        return issues

    def _check_duplicated_patterns(self, document: Document) -> list[ValidationIssue]:
        occurrences: dict[str, list[int]] = defaultdict(list)
        for line in document.rules():
            if line.pattern is not None:
                occurrences[line.pattern.normalized].append(line.index)

        issues: list[ValidationIssue] = []
        for pattern, lines in occurrences.items():
            if len(lines) < 2:
                continue
            # The last occurrence wins on GitHub; earlier ones are shadowed
            for index in lines[:-1]:
                issues.append(
                    ValidationIssue.of(
                        IssueKind.DUPLICATE_OWNERSHIP,
                        index,
                        f"{pattern} defined multiple times : lines {lines}",
                    )
                )
        return issues

    # ------------------------------------------------------------------
    # Configuration-driven checks
    # ------------------------------------------------------------------

    def _check_team_organizations(self, document: Document, policy: EffectivePolicy) -> list[ValidationIssue]:
        if not policy.consistency:
            return []
        issues: list[ValidationIssue] = []
        for line in document.rules():
            for owner in line.owners:
                if isinstance(owner, TeamOwner) and not policy.is_home_organization(owner.organization):
                    issues.append(
                        ValidationIssue.of(
                            IssueKind.TEAM_DOES_NOT_MATCH_ORGANIZATION,
                            line.index,
                            f"'{owner}' team does not match '{policy.organization}' organization",
                        )
                    )
        return issues

    def _check_email_owners(self, document: Document, policy: EffectivePolicy) -> list[ValidationIssue]:
        if not policy.forbid_email_owners:
            return []
        issues: list[ValidationIssue] = []
        for line in document.rules():
            for owner in line.owners:
                if isinstance(owner, EmailOwner):
                    issues.append(
                        ValidationIssue.of(
                            IssueKind.EMAIL_OWNER_FORBIDDEN,
                            line.index,
                            f"'{owner}' email is not allowed as owner",
                        )
                    )
        return issues

    def _check_team_only_owners(self, document: Document, policy: EffectivePolicy) -> list[ValidationIssue]:
        if not policy.enforce_github_teams_owners:
            return []
        issues: list[ValidationIssue] = []
        for line in document.rules():
            offenders = [str(owner) for owner in line.owners if not isinstance(owner, TeamOwner)]
            if offenders:
                issues.append(
                    ValidationIssue.of(
                        IssueKind.ONLY_GITHUB_TEAM_OWNER_ALLOWED,
                        line.index,
                        f"only GitHub teams are allowed as owners : {', '.join(offenders)}",
                    )
                )
        return issues

    def _check_single_owner(self, document: Document, policy: EffectivePolicy) -> list[ValidationIssue]:
        if not policy.enforce_one_owner_per_line:
            return []
        return [
            ValidationIssue.of(
                IssueKind.ONLY_ONE_OWNER_PER_ENTRY,
                line.index,
                f"expected one owner per entry, found {len(line.owners)}",
            )
            for line in document.rules()
            if len(line.owners) > 1
        ]

    # ------------------------------------------------------------------
    # Online checks
    # ------------------------------------------------------------------

    def _check_directory(
        self, document: Document, policy: EffectivePolicy, lookup: DirectoryLookup
    ) -> list[ValidationIssue]:
        occurrences = document.owners()
        users = [owner for owner in occurrences if isinstance(owner, UserOwner)]
        teams = [
            owner
            for owner in occurrences
            if isinstance(owner, TeamOwner) and policy.is_home_organization(owner.organization)
        ]
        if not users and not teams:
            return []

        issues: list[ValidationIssue] = []
        with ThreadPoolExecutor(max_workers=policy.max_concurrent_lookups) as pool:
            members_future = pool.submit(lookup.org_members, policy.organization) if users else None
            team_futures = [
                (team, pool.submit(_verify_team, lookup, policy.organization, team)) for team in teams
            ]

            user_futures: list[tuple[UserOwner, Future[tuple[IssueKind, str] | None]]] = []
            if members_future is not None:
                org_issue = _members_failure(members_future, policy.organization)
                if org_issue is not None:
                    kind, message = org_issue
                    user_lines = sorted({index for user in users for index in occurrences[user]})
                    issues.extend(ValidationIssue.of(kind, index, message) for index in user_lines)
                else:
                    members = {member.casefold() for member in members_future.result()}
                    user_futures = [
                        (user, pool.submit(_verify_user, lookup, user))
                        for user in users
                        if user.handle.casefold() not in members
                    ]

            # Submission order, not completion order
            for owner, future in [*user_futures, *team_futures]:
                outcome = future.result()
                if outcome is None:
                    continue
                kind, message = outcome
                issues.extend(ValidationIssue.of(kind, index, message) for index in occurrences[owner])

        return issues


def _members_failure(future: Future[set[str]], organization: str) -> tuple[IssueKind, str] | None:
    try:
        future.result()
    except OrganizationNotFoundError:
        return IssueKind.ORGANIZATION_DOES_NOT_EXIST, f"'{organization}' organization does not exist"
    except Exception as e:
        logger.warning("Cannot list members of %s: %s", organization, e)
        return (
            IssueKind.CANNOT_LIST_MEMBERS_IN_THE_ORGANIZATION,
            f"failed to list members that belong to '{organization}' organization",
        )
    return None


def _verify_user(lookup: DirectoryLookup, user: UserOwner) -> tuple[IssueKind, str] | None:
    """Check a user that is not listed among the organization members."""
    try:
        exists = lookup.user_exists(user.handle)
    except Exception as e:
        logger.warning("Cannot verify user %s: %s", user.handle, e)
        return IssueKind.CANNOT_VERIFY_USER, f"cannot confirm if user '{user.handle}' exists"

    if not exists:
        return IssueKind.USER_DOES_NOT_EXIST, f"'{user.handle}' user does not exist"
    return IssueKind.OUTSIDER_USER, f"'{user.handle}' user does not belong to this organization"


def _verify_team(lookup: DirectoryLookup, organization: str, team: TeamOwner) -> tuple[IssueKind, str] | None:
    try:
        exists = lookup.team_exists(organization, team.team_slug)
    except Exception as e:
        logger.warning("Cannot verify team %s: %s", team, e)
        return IssueKind.CANNOT_VERIFY_TEAM, f"cannot confirm if team '{team}' exists"

    if not exists:
        return (
            IssueKind.TEAM_DOES_NOT_EXIST,
            f"'{team.team_slug}' team does not belong to '{organization}' organization",
        )
    return None


def validate(
    document: Document,
    config: Config,
    lookup: DirectoryLookup | None = None,
    paths: Sequence[str] | None = None,
) -> list[ValidationIssue]:
    """Validate *document* against *paths* and, when given, a directory *lookup*.

    With *paths* left as None the dangling pattern check is skipped; an empty
    sequence means an empty project, where every pattern dangles.
    """
    return CodeOwnersValidator(paths, lookup).validate(document, config)
