"""Issue reconciliation: idempotence, duplicate suppression, labels."""

from __future__ import annotations

import asyncio

from conftest import make_issue

from forgesync.errors import RemoteAPIError
from forgesync.issues import (
    add_assignees,
    delete_label,
    ensure_issue,
    ensure_issue_closing,
    find_issue,
    get_issue,
    get_issue_list,
)
from forgesync.models import EnsureIssueResult, IssueState, Outcome

MUTATIONS = ("create_issue", "update_issue", "close_issue", "update_issue_labels")


def _mutations(client) -> int:
    return sum(client.count(name) for name in MUTATIONS)


def test_ensure_issue_creates_when_missing(client, session):
    client.repo_labels = [{"id": 3, "name": "dashboard"}]

    result = asyncio.run(ensure_issue(session, "Dashboard", None, "hello", labels=["dashboard"]))

    assert result == EnsureIssueResult.CREATED
    assert client.kwargs_of("create_issue")[0] == {
        "title": "Dashboard",
        "body": "hello",
        "labels": [3],
    }


def test_ensure_issue_is_idempotent(client, session):
    async def _run() -> None:
        first = await ensure_issue(session, "Dashboard", None, "hello")
        second = await ensure_issue(session, "Dashboard", None, "hello")
        assert first == EnsureIssueResult.CREATED
        assert second is None

    asyncio.run(_run())
    assert _mutations(client) == 1
    # creation invalidated the issue cache, so the second pass refetched
    assert client.count("search_issues") == 2


def test_second_update_with_same_content_is_noop(client, session):
    client.issues = [make_issue(1, "Dashboard", body="old")]

    async def _run() -> None:
        assert await ensure_issue(session, "Dashboard", None, "new") == EnsureIssueResult.UPDATED
        assert await ensure_issue(session, "Dashboard", None, "new") is None

    asyncio.run(_run())
    assert client.count("update_issue") == 1
    assert client.count("search_issues") == 1


def test_duplicates_are_closed_and_newest_kept(client, session):
    client.issues = [
        make_issue(2, "Dashboard", body="a"),
        make_issue(5, "Dashboard", body="b"),
        make_issue(3, "Dashboard", body="c"),
    ]

    result = asyncio.run(ensure_issue(session, "Dashboard", None, "b"))

    assert result is None
    closed = sorted(call[1][1] for call in client.calls if call[0] == "close_issue")
    assert closed == [2, 3]
    open_numbers = [i["number"] for i in client.issues if i["state"] == "open"]
    assert open_numbers == [5]


def test_closed_issue_reopened_when_requested(client, session):
    client.issues = [make_issue(4, "Dashboard", body="x", state="closed")]

    result = asyncio.run(ensure_issue(session, "Dashboard", None, "x", should_reopen=True))

    assert result == EnsureIssueResult.UPDATED
    assert client.kwargs_of("update_issue")[0]["state"] == "open"


def test_closed_issue_body_updated_but_left_closed(client, session):
    client.issues = [make_issue(4, "Dashboard", body="x", state="closed")]

    result = asyncio.run(ensure_issue(session, "Dashboard", None, "y"))

    assert result == EnsureIssueResult.UPDATED
    assert client.kwargs_of("update_issue")[0]["state"] == "closed"


def test_once_leaves_closed_issue_alone(client, session):
    client.issues = [make_issue(4, "Dashboard", body="x", state="closed")]

    result = asyncio.run(ensure_issue(session, "Dashboard", None, "y", once=True))

    assert result is None
    assert _mutations(client) == 0


def test_reuse_title_adopts_previous_issue(client, session):
    client.issues = [make_issue(8, "Old Dashboard", body="x")]

    result = asyncio.run(ensure_issue(session, "Dashboard", "Old Dashboard", "x"))

    assert result == EnsureIssueResult.UPDATED
    assert client.kwargs_of("update_issue")[0]["title"] == "Dashboard"
    assert client.count("create_issue") == 0


def test_labels_replaced_only_when_set_differs(client, session):
    client.repo_labels = [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]
    client.issues = [make_issue(6, "Dashboard", body="old", labels=[2, 1])]

    async def _run() -> None:
        await ensure_issue(session, "Dashboard", None, "new", labels=["a", "b"])
        assert client.count("update_issue_labels") == 0
        await ensure_issue(session, "Dashboard", None, "newer", labels=["a"])
        assert client.count("update_issue_labels") == 1
        assert client.kwargs_of("update_issue_labels")[0] == {"labels": [1]}

    asyncio.run(_run())


def test_labels_none_leaves_labels_untouched(client, session):
    client.issues = [make_issue(6, "Dashboard", body="old", labels=[2])]

    asyncio.run(ensure_issue(session, "Dashboard", None, "new"))

    assert client.count("update_issue_labels") == 0
    assert client.count("get_repo_labels") == 0


def test_body_links_rewritten(client, session):
    asyncio.run(ensure_issue(session, "Dashboard", None, "see [x](../pull/4)"))

    assert client.kwargs_of("create_issue")[0]["body"] == "see [x](../pulls/4)"


def test_remote_error_reported_as_none(client, session):
    client.failures["search_issues"] = RemoteAPIError("boom", status=500)

    assert asyncio.run(ensure_issue(session, "Dashboard", None, "x")) is None


def test_ensure_issue_survives_malformed_payload(client, session):
    client.issues.append({"title": "Dashboard", "state": "open"})

    assert asyncio.run(ensure_issue(session, "Dashboard", None, "x")) is None
    assert client.count("create_issue") == 0


def test_reopen_scenario_end_to_end(client, session):
    async def _run() -> None:
        assert await ensure_issue(session, "Dashboard", None, "v1") == EnsureIssueResult.CREATED
        number = client.issues[0]["number"]
        await ensure_issue_closing(session, "Dashboard")
        assert client.issues[0]["state"] == "closed"
        result = await ensure_issue(session, "Dashboard", None, "v2", should_reopen=True)
        assert result == EnsureIssueResult.UPDATED
        assert client.issues[0]["number"] == number
        assert client.issues[0]["state"] == "open"
        assert client.issues[0]["body"] == "v2"
        assert await ensure_issue(session, "Dashboard", None, "v2", should_reopen=True) is None

    asyncio.run(_run())
    assert client.count("create_issue") == 1


def test_ensure_issue_closing_closes_all_open_matches(client, session):
    client.issues = [
        make_issue(1, "Dashboard"),
        make_issue(2, "Dashboard", state="closed"),
        make_issue(3, "Dashboard"),
        make_issue(4, "Other"),
    ]

    asyncio.run(ensure_issue_closing(session, "Dashboard"))

    closed = [call[1][1] for call in client.calls if call[0] == "close_issue"]
    assert closed == [1, 3]
    assert asyncio.run(get_issue_list(session))[0].state == IssueState.CLOSED


def test_find_issue_returns_fresh_open_issue(client, session):
    client.issues = [make_issue(1, "Dashboard", state="closed"), make_issue(2, "Dashboard")]

    issue = asyncio.run(find_issue(session, "Dashboard"))

    assert issue is not None and issue.number == 2
    assert asyncio.run(find_issue(session, "Missing")) is None


def test_get_issue_swallows_errors(client, session):
    assert asyncio.run(get_issue(session, 99)) is None


def test_delete_label_by_name(client, session):
    client.repo_labels = [{"id": 4, "name": "stale"}]
    client.issues = [make_issue(1, "Dashboard", labels=[4])]

    async def _run() -> None:
        await get_issue_list(session)
        assert await delete_label(session, 1, "stale") == Outcome.APPLIED
        assert await delete_label(session, 1, "unknown") == Outcome.SKIPPED
        issues = await get_issue_list(session)
        assert issues[0].labels == []

    asyncio.run(_run())
    assert client.count("unassign_label") == 1


def test_add_assignees_sends_list(client, session):
    client.issues = [make_issue(1, "Dashboard")]

    asyncio.run(add_assignees(session, 1, ["alice", "bob"]))

    assert client.kwargs_of("update_issue")[0]["assignees"] == ["alice", "bob"]
