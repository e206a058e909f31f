"""Data models for Canopus."""

from __future__ import annotations

import enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

class Pattern(BaseModel):
    """A CODEOWNERS path pattern, split into its ignore-style attributes."""

    model_config = ConfigDict(frozen=True)

    raw: str  # token as written, quotes included
    body: str  # glob without the anchoring/trailing slashes
    anchored: bool = False
    directory_only: bool = False

    @property
    def normalized(self) -> str:
        prefix = "/" if self.anchored else ""
        suffix = "/" if self.directory_only else ""
        return f"{prefix}{self.body}{suffix}"

    def __str__(self) -> str:
        return self.normalized


# ---------------------------------------------------------------------------
# Owners
# ---------------------------------------------------------------------------

class UserOwner(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["user"] = "user"
    handle: str

    def __str__(self) -> str:
        return f"@{self.handle}"


class TeamOwner(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["team"] = "team"
    organization: str
    team_slug: str

    def __str__(self) -> str:
        return f"@{self.organization}/{self.team_slug}"


class EmailOwner(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["email"] = "email"
    address: str

    def __str__(self) -> str:
        return self.address


class GroupOwner(BaseModel):
    """Bracketed label such as ``[backend]``; never verified against GitHub."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["group"] = "group"
    name: str

    def __str__(self) -> str:
        return f"[{self.name}]"


Owner = Annotated[
    Union[UserOwner, TeamOwner, EmailOwner, GroupOwner],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------

class LineKind(str, enum.Enum):
    RULE = "rule"
    COMMENT = "comment"
    BLANK = "blank"
    MALFORMED = "malformed"


class Line(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int  # 1-based
    raw: str  # without line terminator
    ending: str = ""  # "\n", "\r\n" or "" for an unterminated last line
    kind: LineKind
    pattern: Pattern | None = None  # also kept on malformed lines when the path parsed
    owners: tuple[Owner, ...] = ()
    comment: str | None = None
    inline_comment: str | None = None
    error: str = ""  # why a malformed line failed to parse

    @property
    def text(self) -> str:
        return self.raw + self.ending


class Document(BaseModel):
    """Ordered, immutable view of a CODEOWNERS file."""

    model_config = ConfigDict(frozen=True)

    lines: tuple[Line, ...] = ()

    def line(self, index: int) -> Line:
        return self.lines[index - 1]

    def rules(self) -> list[Line]:
        return [line for line in self.lines if line.kind == LineKind.RULE]

    def owners(self) -> dict[Owner, list[int]]:
        """Map each owner to the rule lines mentioning it, in first-seen order."""
        occurrences: dict[Owner, list[int]] = {}
        for line in self.rules():
            for owner in line.owners:
                lines = occurrences.setdefault(owner, [])
                if line.index not in lines:
                    lines.append(line.index)
        return occurrences

    def render(self) -> str:
        return "".join(line.text for line in self.lines)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class IssueKind(str, enum.Enum):
    INVALID_SYNTAX = "InvalidSyntax"
    DANGLING_GLOB_PATTERN = "DanglingGlobPattern"
    DUPLICATE_OWNERSHIP = "DuplicateOwnership"
    TEAM_DOES_NOT_MATCH_ORGANIZATION = "TeamDoesNotMatchOrganization"
    EMAIL_OWNER_FORBIDDEN = "EmailOwnerForbidden"
    ONLY_GITHUB_TEAM_OWNER_ALLOWED = "OnlyGithubTeamOwnerAllowed"
    ONLY_ONE_OWNER_PER_ENTRY = "OnlyOneOwnerPerEntry"
    CANNOT_LIST_MEMBERS_IN_THE_ORGANIZATION = "CannotListMembersInTheOrganization"
    CANNOT_VERIFY_USER = "CannotVerifyUser"
    CANNOT_VERIFY_TEAM = "CannotVerifyTeam"
    ORGANIZATION_DOES_NOT_EXIST = "OrganizationDoesNotExist"
    TEAM_DOES_NOT_EXIST = "TeamDoesNotExist"
    OUTSIDER_USER = "OutsiderUser"
    USER_DOES_NOT_EXIST = "UserDoesNotExist"

    @property
    def offline(self) -> bool:
        return self in _OFFLINE_KINDS

    @property
    def severity(self) -> Severity:
        return Severity.WARNING if self in _UNVERIFIED_KINDS else Severity.ERROR

    @property
    def category(self) -> str:
        if self in _STRUCTURAL_KINDS:
            return "structure"
        if self in _OFFLINE_KINDS:
            return "custom"
        return "consistency"


class Severity(str, enum.Enum):
    ERROR = "error"
    WARNING = "warning"


_STRUCTURAL_KINDS = frozenset({
    IssueKind.INVALID_SYNTAX,
    IssueKind.DANGLING_GLOB_PATTERN,
    IssueKind.DUPLICATE_OWNERSHIP,
})

_OFFLINE_KINDS = _STRUCTURAL_KINDS | frozenset({
    IssueKind.TEAM_DOES_NOT_MATCH_ORGANIZATION,
    IssueKind.EMAIL_OWNER_FORBIDDEN,
    IssueKind.ONLY_GITHUB_TEAM_OWNER_ALLOWED,
    IssueKind.ONLY_ONE_OWNER_PER_ENTRY,
})

_UNVERIFIED_KINDS = frozenset({
    IssueKind.CANNOT_LIST_MEMBERS_IN_THE_ORGANIZATION,
    IssueKind.CANNOT_VERIFY_USER,
    IssueKind.CANNOT_VERIFY_TEAM,
})


class ValidationIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: IssueKind
    line_index: int
    message: str
    offline: bool

    @classmethod
    def of(cls, kind: IssueKind, line_index: int, message: str) -> ValidationIssue:
        return cls(kind=kind, line_index=line_index, message=message, offline=kind.offline)

    @property
    def severity(self) -> Severity:
        return self.kind.severity

    def __str__(self) -> str:
        return f"[{self.kind.category}] L{self.line_index} : {self.message}"


# ---------------------------------------------------------------------------
# Repair
# ---------------------------------------------------------------------------

class RepairPolicy(str, enum.Enum):
    COMMENT_OUT = "comment-out"
    DELETE = "delete"


class ActionType(str, enum.Enum):
    KEEP = "keep"
    COMMENT_OUT = "comment-out"
    DELETE = "delete"


class RepairAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    line_index: int
    action: ActionType = ActionType.KEEP
    annotation: str = ""
    reasons: tuple[str, ...] = ()


class RepairPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    policy: RepairPolicy = RepairPolicy.COMMENT_OUT
    actions: tuple[RepairAction, ...] = ()

    def changes(self) -> list[RepairAction]:
        return [a for a in self.actions if a.action != ActionType.KEEP]

    @property
    def is_noop(self) -> bool:
        return not self.changes()
