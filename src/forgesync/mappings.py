"""Translation between the remote vocabulary and forgesync's own.

Every lookup here is total: an unknown remote value maps to an explicit
default instead of raising, so a new status string on the server can never
fail a reconciliation pass.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from .models import (
    BranchStatus,
    CombinedStatus,
    Comment,
    CommitStatus,
    Issue,
    IssueState,
    Label,
    LabelScope,
    Pr,
    PrState,
)

# Ordered from best to worst; the combined status of a commit is the worst entry.
COMMIT_STATUS_ORDER: tuple[str, ...] = (
    "unknown",
    "success",
    "pending",
    "warning",
    "failure",
    "error",
)

REMOTE_TO_BRANCH_STATUS: Mapping[str, BranchStatus] = {
    "unknown": BranchStatus.YELLOW,
    "success": BranchStatus.GREEN,
    "pending": BranchStatus.YELLOW,
    "warning": BranchStatus.RED,
    "failure": BranchStatus.RED,
    "error": BranchStatus.RED,
}

BRANCH_STATUS_TO_REMOTE: Mapping[BranchStatus, str] = {
    BranchStatus.GREEN: "success",
    BranchStatus.YELLOW: "pending",
    BranchStatus.RED: "failure",
}

STATE_WILDCARD = PrState.ALL.value
STATE_NEGATION = "!"


def _text(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def is_known_status(value: str | None) -> bool:
    return value in REMOTE_TO_BRANCH_STATUS


def to_branch_status(
    value: str | None, default: BranchStatus = BranchStatus.YELLOW
) -> BranchStatus:
    if value is None:
        return default
    return REMOTE_TO_BRANCH_STATUS.get(value, default)


def to_remote_status(state: BranchStatus | str) -> str:
    try:
        return BRANCH_STATUS_TO_REMOTE[BranchStatus(_text(state))]
    except ValueError:
        return "pending"


def worst_status(statuses: Iterable[str]) -> str:
    worst = 0
    for status in statuses:
        # Unrecognised values rank as "unknown" rather than poisoning the aggregate.
        idx = COMMIT_STATUS_ORDER.index(status) if status in COMMIT_STATUS_ORDER else 0
        worst = max(worst, idx)
    return COMMIT_STATUS_ORDER[worst]


def match_state(actual: PrState | IssueState | str, expected: PrState | IssueState | str) -> bool:
    """Match a concrete state against a query.

    ``expected`` may be an exact state, the ``all`` wildcard, or a negation
    written as ``!state``.
    """
    actual_s = _text(actual)
    expected_s = _text(expected)
    if expected_s == STATE_WILDCARD:
        return True
    if expected_s.startswith(STATE_NEGATION):
        return actual_s != expected_s[len(STATE_NEGATION):]
    return actual_s == expected_s


def to_pr_state(data: Mapping[str, Any]) -> PrState:
    if data.get("merged"):
        return PrState.MERGED
    if data.get("state") == "closed":
        return PrState.CLOSED
    return PrState.OPEN


def to_pr(data: Mapping[str, Any] | None, bot_username: str | None = None) -> Pr | None:
    """Map a remote pull request to a ``Pr`` or ``None`` when it must stay invisible.

    Pull requests lacking a base ref, head label, head sha or head repository
    are skipped, as are pull requests authored by someone other than the
    automation identity (only when that identity is known).
    """
    if not data:
        return None
    base = data.get("base") or {}
    head = data.get("head") or {}
    head_repo = head.get("repo") or {}
    if not (base.get("ref") and head.get("label") and head.get("sha") and head_repo.get("full_name")):
        return None

    user = data.get("user") or {}
    created_by = user.get("username") or user.get("login")
    if created_by and bot_username and created_by != bot_username:
        return None

    mergeable = data.get("mergeable")
    assignee = data.get("assignee") or {}
    assignees = data.get("assignees") or []
    return Pr(
        number=int(data["number"]),
        state=to_pr_state(data),
        title=data.get("title") or "",
        body=data.get("body") or "",
        source_branch=head["label"],
        source_repo=head_repo["full_name"],
        target_branch=base["ref"],
        sha=head["sha"],
        created_at=data.get("created_at"),
        cannot_merge_reason=None if mergeable else f'pr.mergeable="{mergeable}"',
        has_assignees=bool(assignee.get("login") or assignees),
    )


def label_ids(raw_labels: Any) -> list[int]:
    ids: list[int] = []
    if isinstance(raw_labels, list):
        for lbl in raw_labels:
            if isinstance(lbl, dict) and isinstance(lbl.get("id"), int):
                ids.append(lbl["id"])
    return ids


def to_issue(data: Mapping[str, Any]) -> Issue:
    state = IssueState.CLOSED if data.get("state") == "closed" else IssueState.OPEN
    return Issue(
        number=int(data["number"]),
        state=state,
        title=data.get("title") or "",
        body=data.get("body") or "",
        labels=label_ids(data.get("labels")),
        created_at=data.get("created_at"),
    )


def to_label(data: Mapping[str, Any], scope: LabelScope = LabelScope.REPOSITORY) -> Label:
    return Label(id=int(data["id"]), name=data.get("name") or "", scope=scope)


def to_comment(data: Mapping[str, Any], issue_number: int) -> Comment:
    return Comment(id=int(data["id"]), body=data.get("body") or "", issue_number=issue_number)


def to_commit_status(data: Mapping[str, Any]) -> CommitStatus:
    # Older servers report the value under "status", newer ones under "state".
    value = data.get("status") or data.get("state") or "unknown"
    return CommitStatus(
        context=data.get("context") or "",
        status=value,
        description=data.get("description"),
        target_url=data.get("target_url"),
    )


def to_combined_status(raw_statuses: Iterable[Mapping[str, Any]]) -> CombinedStatus:
    statuses = [to_commit_status(s) for s in raw_statuses]
    return CombinedStatus(
        worst_status=worst_status(s.status for s in statuses),
        statuses=statuses,
    )


__all__ = [
    "BRANCH_STATUS_TO_REMOTE",
    "COMMIT_STATUS_ORDER",
    "REMOTE_TO_BRANCH_STATUS",
    "is_known_status",
    "label_ids",
    "match_state",
    "to_branch_status",
    "to_combined_status",
    "to_comment",
    "to_commit_status",
    "to_issue",
    "to_label",
    "to_pr",
    "to_pr_state",
    "to_remote_status",
    "worst_status",
]
