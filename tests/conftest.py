"""Pytest configuration for forgesync tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`), and provides an
in-memory Gitea double (`FakeGiteaClient`) that records every call so tests
can assert on the exact number of remote requests.
"""

from __future__ import annotations

import base64
import sys
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from forgesync.errors import RemoteAPIError  # noqa: E402
from forgesync.gitea_rest import GiteaRestClient  # noqa: E402
from forgesync.mappings import to_combined_status  # noqa: E402
from forgesync.models import CombinedStatus, MergeMethod, PlatformIdentity  # noqa: E402
from forgesync.session import RepoSession  # noqa: E402

REPO = "acme/widgets"
BOT = "forge-bot"


def make_pr(
    number: int,
    branch: str,
    *,
    title: str = "Update dependency",
    body: str = "body",
    state: str = "open",
    merged: bool = False,
    user: str = BOT,
    repo: str = REPO,
    base: str = "main",
) -> dict[str, Any]:
    return {
        "number": number,
        "state": state,
        "merged": merged,
        "title": title,
        "body": body,
        "mergeable": True,
        "created_at": "2024-01-01T00:00:00Z",
        "user": {"username": user},
        "base": {"ref": base},
        "head": {"label": branch, "sha": f"sha-{number}", "repo": {"full_name": repo}},
        "assignees": [],
    }


def make_issue(
    number: int,
    title: str,
    *,
    body: str = "body",
    state: str = "open",
    labels: list[int] | None = None,
) -> dict[str, Any]:
    return {
        "number": number,
        "title": title,
        "body": body,
        "state": state,
        "labels": [{"id": lid, "name": f"label-{lid}"} for lid in labels or []],
        "created_at": "2024-01-01T00:00:00Z",
    }


class FakeGiteaClient(GiteaRestClient):
    """In-memory stand-in for the REST client.

    ``calls`` lists ``(method, args, kwargs)`` tuples in call order.
    ``failures`` maps a method name to an exception raised on its next call.
    """

    def __init__(self, **_: Any) -> None:
        super().__init__(token="tkn")
        self.user: dict[str, Any] = {
            "id": 7,
            "username": BOT,
            "full_name": "Forge Bot",
            "email": "bot@example.com",
        }
        self.version = "1.21.0"
        self.repos: dict[str, dict[str, Any]] = {}
        self.prs: list[dict[str, Any]] = []
        self.issues: list[dict[str, Any]] = []
        self.repo_labels: list[dict[str, Any]] = []
        self.org_labels: list[dict[str, Any]] = []
        self.comments: dict[int, list[dict[str, Any]]] = {}
        self.statuses: dict[str, list[dict[str, Any]]] = {}
        self.files: dict[tuple[str, str, str | None], str] = {}
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        self.failures: dict[str, Exception] = {}
        self._next_id = 1000

    def _record(self, name: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((name, args, kwargs))
        exc = self.failures.pop(name, None)
        if exc is not None:
            raise exc

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def kwargs_of(self, name: str) -> list[dict[str, Any]]:
        return [call[2] for call in self.calls if call[0] == name]

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def _issue(self, number: int) -> dict[str, Any]:
        for issue in self.issues:
            if issue["number"] == number:
                return issue
        raise RemoteAPIError("not found", status=404)

    # ---- user / repos
    def get_current_user(self) -> dict[str, Any]:
        self._record("get_current_user")
        return dict(self.user)

    def get_version(self) -> str:
        self._record("get_version")
        return self.version

    def get_repo(self, repo: str) -> dict[str, Any]:
        self._record("get_repo", repo)
        if repo not in self.repos:
            raise RemoteAPIError("not found", status=404)
        return dict(self.repos[repo])

    def search_repos(self, *, uid: int, archived: bool = False) -> list[dict[str, Any]]:
        self._record("search_repos", uid=uid, archived=archived)
        return [{"full_name": name} for name in self.repos]

    def get_repo_contents(self, repo: str, file_path: str, *, ref: str | None = None) -> dict[str, Any]:
        self._record("get_repo_contents", repo, file_path, ref=ref)
        if (repo, file_path, ref) not in self.files:
            raise RemoteAPIError("not found", status=404)
        text = self.files[(repo, file_path, ref)]
        return {"path": file_path, "encoding": "base64", "content": base64.b64encode(text.encode()).decode()}

    # ---- pull requests
    def search_prs(self, repo: str, *, state: str = "all", use_cache: bool = True) -> list[dict[str, Any]]:
        self._record("search_prs", repo, state=state, use_cache=use_cache)
        return [dict(pr) for pr in self.prs]

    def get_pr(self, repo: str, number: int) -> dict[str, Any]:
        self._record("get_pr", repo, number)
        for pr in self.prs:
            if pr["number"] == number:
                return dict(pr)
        raise RemoteAPIError("not found", status=404)

    def create_pr(self, repo: str, *, head: str, base: str, title: str, body: str, labels=None) -> dict[str, Any]:
        self._record("create_pr", repo, head=head, base=base, title=title, body=body, labels=labels)
        number = self._new_id()
        pr = make_pr(number, head, title=title, body=body, base=base, user=self.user["username"])
        self.prs.append(pr)
        return dict(pr)

    def update_pr(self, repo: str, number: int, *, title=None, body=None, state=None) -> dict[str, Any] | None:
        self._record("update_pr", repo, number, title=title, body=body, state=state)
        for pr in self.prs:
            if pr["number"] == number:
                for key, value in (("title", title), ("body", body), ("state", state)):
                    if value is not None:
                        pr[key] = value
                return dict(pr)
        raise RemoteAPIError("not found", status=404)

    def merge_pr(self, repo: str, number: int, *, method: str) -> None:
        self._record("merge_pr", repo, number, method=method)

    def request_pr_reviewers(self, repo: str, number: int, *, reviewers) -> None:
        self._record("request_pr_reviewers", repo, number, reviewers=list(reviewers))

    # ---- issues
    def search_issues(self, repo: str, *, state: str = "all", use_cache: bool = True) -> list[dict[str, Any]]:
        self._record("search_issues", repo, state=state, use_cache=use_cache)
        return [dict(issue) for issue in self.issues]

    def get_issue(self, repo: str, number: int, *, use_cache: bool = True) -> dict[str, Any]:
        self._record("get_issue", repo, number, use_cache=use_cache)
        return dict(self._issue(number))

    def create_issue(self, repo: str, *, title: str, body: str, labels=None) -> dict[str, Any]:
        self._record("create_issue", repo, title=title, body=body, labels=labels)
        issue = make_issue(self._new_id(), title, body=body, labels=list(labels or []))
        self.issues.append(issue)
        return dict(issue)

    def update_issue(self, repo: str, number: int, *, title=None, body=None, state=None, assignees=None) -> dict[str, Any]:
        self._record(
            "update_issue", repo, number, title=title, body=body, state=state, assignees=assignees
        )
        issue = self._issue(number)
        for key, value in (("title", title), ("body", body), ("state", state)):
            if value is not None:
                issue[key] = value
        return dict(issue)

    def close_issue(self, repo: str, number: int) -> dict[str, Any]:
        self._record("close_issue", repo, number)
        issue = self._issue(number)
        issue["state"] = "closed"
        return dict(issue)

    def update_issue_labels(self, repo: str, number: int, *, labels) -> list[dict[str, Any]]:
        self._record("update_issue_labels", repo, number, labels=list(labels))
        issue = self._issue(number)
        issue["labels"] = [{"id": lid, "name": f"label-{lid}"} for lid in labels]
        return list(issue["labels"])

    def unassign_label(self, repo: str, number: int, label_id: int) -> None:
        self._record("unassign_label", repo, number, label_id)

    # ---- comments
    def get_comments(self, repo: str, number: int) -> list[dict[str, Any]]:
        self._record("get_comments", repo, number)
        return [dict(c) for c in self.comments.get(number, [])]

    def create_comment(self, repo: str, number: int, body: str) -> dict[str, Any]:
        self._record("create_comment", repo, number, body=body)
        comment = {"id": self._new_id(), "body": body}
        self.comments.setdefault(number, []).append(comment)
        return dict(comment)

    def update_comment(self, repo: str, comment_id: int, body: str) -> dict[str, Any]:
        self._record("update_comment", repo, comment_id, body=body)
        for comments in self.comments.values():
            for comment in comments:
                if comment["id"] == comment_id:
                    comment["body"] = body
                    return dict(comment)
        raise RemoteAPIError("not found", status=404)

    def delete_comment(self, repo: str, comment_id: int) -> None:
        self._record("delete_comment", repo, comment_id)
        for number, comments in self.comments.items():
            self.comments[number] = [c for c in comments if c["id"] != comment_id]

    # ---- labels
    def get_repo_labels(self, repo: str) -> list[dict[str, Any]]:
        self._record("get_repo_labels", repo)
        return list(self.repo_labels)

    def get_org_labels(self, org: str) -> list[dict[str, Any]]:
        self._record("get_org_labels", org)
        return list(self.org_labels)

    # ---- commit status
    def create_commit_status(self, repo: str, sha: str, *, state: str, context: str, description=None, target_url=None) -> dict[str, Any]:
        self._record(
            "create_commit_status",
            repo,
            sha,
            state=state,
            context=context,
            description=description,
            target_url=target_url,
        )
        return {"state": state, "context": context}

    def get_combined_commit_status(self, repo: str, branch_name: str, *, use_cache: bool = True) -> CombinedStatus:
        self._record("get_combined_commit_status", repo, branch_name, use_cache=use_cache)
        if branch_name not in self.statuses:
            raise RemoteAPIError("not found", status=404)
        return to_combined_status(self.statuses[branch_name])


class FakeStorage:
    def __init__(self, commits: dict[str, str] | None = None) -> None:
        self.commits = dict(commits or {})
        self.init_calls: list[tuple[str, str, bool]] = []

    def init_repo(self, url: str, *, default_branch: str, clone_submodules: bool = False) -> None:
        self.init_calls.append((url, default_branch, clone_submodules))

    def get_branch_commit(self, branch_name: str) -> str | None:
        return self.commits.get(branch_name)


def make_session(
    client: FakeGiteaClient,
    *,
    storage: FakeStorage | None = None,
    identity: PlatformIdentity | None = None,
    version: str = "1.21.0",
) -> RepoSession:
    return RepoSession(
        repository=REPO,
        merge_method=MergeMethod.REBASE,
        default_branch="main",
        client=client,
        identity=identity or PlatformIdentity(7, BOT, "Forge Bot <bot@example.com>", version),
        storage=storage,
    )


@pytest.fixture
def client() -> FakeGiteaClient:
    return FakeGiteaClient()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage({"main": "abc123", "feature": "def456"})


@pytest.fixture
def session(client: FakeGiteaClient, storage: FakeStorage) -> RepoSession:
    return make_session(client, storage=storage)
