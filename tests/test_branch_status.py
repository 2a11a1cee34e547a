from __future__ import annotations

import asyncio

import pytest
from conftest import REPO, make_session

from forgesync import git_storage
from forgesync.branch_status import get_branch_status, get_branch_status_check, set_branch_status
from forgesync.errors import RemoteAPIError, RepositoryChanged
from forgesync.git_storage import LocalGitStorage
from forgesync.models import BranchStatus, Outcome


def test_get_branch_status_uses_worst_status(client, session):
    client.statuses["main"] = [
        {"context": "ci", "status": "success"},
        {"context": "lint", "status": "warning"},
    ]

    assert asyncio.run(get_branch_status(session, "main")) == BranchStatus.RED


def test_branch_without_statuses_is_yellow(client, session):
    client.statuses["main"] = []

    assert asyncio.run(get_branch_status(session, "main")) == BranchStatus.YELLOW


def test_missing_branch_raises_repository_changed(client, session):
    with pytest.raises(RepositoryChanged) as excinfo:
        asyncio.run(get_branch_status(session, "gone"))
    assert excinfo.value.branch_name == "gone"


def test_other_errors_propagate(client, session):
    client.failures["get_combined_commit_status"] = RemoteAPIError("boom", status=500)

    with pytest.raises(RemoteAPIError):
        asyncio.run(get_branch_status(session, "main"))


def test_status_check_lookup(client, session):
    client.statuses["main"] = [
        {"context": "ci", "status": "success"},
        {"context": "odd", "status": "galactic"},
    ]

    assert asyncio.run(get_branch_status_check(session, "main", "ci")) == BranchStatus.GREEN
    assert asyncio.run(get_branch_status_check(session, "main", "odd")) == BranchStatus.YELLOW
    assert asyncio.run(get_branch_status_check(session, "main", "missing")) is None


def test_set_branch_status_posts_to_head_commit(client, session):
    client.statuses["feature"] = []

    outcome = asyncio.run(
        set_branch_status(session, "feature", "renovate/stability", "ok", BranchStatus.GREEN, "https://ci")
    )

    assert outcome == Outcome.APPLIED
    name, args, kwargs = client.calls[0]
    assert (name, args) == ("create_commit_status", (REPO, "def456"))
    assert kwargs["state"] == "success"
    assert kwargs["target_url"] == "https://ci"
    assert client.kwargs_of("get_combined_commit_status") == [{"use_cache": False}]


def test_set_branch_status_skips_unknown_branch(client, session):
    outcome = asyncio.run(set_branch_status(session, "nowhere", "ctx", "d", BranchStatus.RED))

    assert outcome == Outcome.SKIPPED
    assert client.calls == []


def test_set_branch_status_without_storage_is_skipped(client):
    session = make_session(client)

    assert asyncio.run(set_branch_status(session, "main", "ctx", "d", BranchStatus.RED)) == Outcome.SKIPPED


def test_set_branch_status_remote_failure_is_skipped(client, session):
    client.failures["create_commit_status"] = RemoteAPIError("denied", status=403)

    assert asyncio.run(set_branch_status(session, "main", "ctx", "d", BranchStatus.RED)) == Outcome.SKIPPED


def test_set_branch_status_without_git_binary_is_skipped(client, monkeypatch):
    def _missing(cmd, **kwargs):
        raise FileNotFoundError(2, "No such file or directory", "git")

    monkeypatch.setattr(git_storage.shutil, "which", lambda name: None)
    monkeypatch.setattr(git_storage.subprocess, "check_output", _missing)
    storage = LocalGitStorage()
    storage.init_repo("https://tkn@h/r.git", default_branch="main")
    session = make_session(client, storage=storage)

    assert asyncio.run(set_branch_status(session, "main", "ctx", "d", BranchStatus.GREEN)) == Outcome.SKIPPED
    assert client.calls == []


def test_set_branch_status_before_storage_init_is_skipped(client):
    session = make_session(client, storage=LocalGitStorage())

    assert asyncio.run(set_branch_status(session, "main", "ctx", "d", BranchStatus.GREEN)) == Outcome.SKIPPED
    assert client.calls == []
