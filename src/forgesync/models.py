from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PrState(str, Enum):
    """Platform-neutral pull request state; ``ALL`` is a query wildcard only."""

    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"
    ALL = "all"


class IssueState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class BranchStatus(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class MergeMethod(str, Enum):
    REBASE = "rebase"
    REBASE_MERGE = "rebase-merge"
    SQUASH = "squash"
    MERGE = "merge"


class LabelScope(str, Enum):
    REPOSITORY = "repository"
    ORGANIZATION = "organization"


class Outcome(str, Enum):
    """Result of a best-effort operation.

    ``SKIPPED`` means the operation gave up (remote error, unresolvable
    input); the failure has already been logged.
    """

    APPLIED = "applied"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


class EnsureIssueResult(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


@dataclass
class Pr:
    number: int
    state: PrState
    title: str
    body: str
    source_branch: str
    source_repo: str
    target_branch: str
    sha: str
    created_at: str | None = None
    cannot_merge_reason: str | None = None
    has_assignees: bool = False

    @property
    def display_number(self) -> str:
        return f"Pull Request #{self.number}"


@dataclass
class Issue:
    number: int
    state: IssueState
    title: str
    body: str
    labels: list[int] = field(default_factory=list)
    created_at: str | None = None


@dataclass
class Label:
    id: int
    name: str
    scope: LabelScope = LabelScope.REPOSITORY


@dataclass
class Comment:
    id: int
    body: str
    issue_number: int


@dataclass
class CommitStatus:
    context: str
    status: str
    description: str | None = None
    target_url: str | None = None


@dataclass
class CombinedStatus:
    worst_status: str
    statuses: list[CommitStatus] = field(default_factory=list)

    def find(self, context: str) -> CommitStatus | None:
        for status in self.statuses:
            if status.context == context:
                return status
        return None


@dataclass
class PlatformIdentity:
    user_id: int
    username: str
    git_author: str
    version: str = "0.0.0"


@dataclass
class PlatformResult:
    endpoint: str
    git_author: str


__all__ = [
    "BranchStatus",
    "CombinedStatus",
    "Comment",
    "CommitStatus",
    "EnsureIssueResult",
    "Issue",
    "IssueState",
    "Label",
    "LabelScope",
    "MergeMethod",
    "Outcome",
    "PlatformIdentity",
    "PlatformResult",
    "Pr",
    "PrState",
]
