from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import requests

from .errors import RemoteAPIError
from .mappings import to_combined_status
from .models import CombinedStatus
from .retry import RetryConfig, run_with_retries

DEFAULT_API_URL = "https://gitea.com/api/v1/"
USER_AGENT = "forgesync-rest/0.3.0"
HTTP_ERROR_STATUS = 400
DEFAULT_PAGE_SIZE = 50


def _retry_after(response: requests.Response) -> float | None:
    headers = getattr(response, "headers", None) or {}
    raw = headers.get("Retry-After")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _cache_key(url: str, params: dict[str, Any] | None) -> str:
    return url + "?" + json.dumps(params or {}, sort_keys=True)


@dataclass
class GiteaRestClient:
    """Lightweight REST client for a Gitea-compatible ``/api/v1`` endpoint.

    One method per resource action; every method blocks. Errors surface as
    ``RemoteAPIError`` carrying the HTTP status so callers can branch on 404
    and 409. GET responses are memoised per client; pass ``use_cache=False``
    to force a re-fetch (which also refreshes the memoised value).
    """

    token: str
    base_url: str = DEFAULT_API_URL
    session: requests.Session | None = None
    timeout: float = 30
    retry: RetryConfig | None = None
    cache_enabled: bool = True
    _session: requests.Session = field(init=False, repr=False)
    _cache: dict[str, Any] = field(init=False, repr=False, default_factory=dict)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("Authorization", f"token {self.token}")
        self._session.headers.setdefault("Accept", "application/json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    # ---- REST helpers -------------------------------------------------
    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
        use_cache: bool = True,
    ) -> Any:
        url = self._url(path)
        cacheable = method == "GET" and self.cache_enabled
        key = _cache_key(url, params)
        if cacheable and use_cache and key in self._cache:
            return self._cache[key]

        def _run() -> requests.Response:
            try:
                response = self._session.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    headers=self._session.headers,
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                raise RemoteAPIError(f"{method} {url} failed: {exc}") from exc
            if response.status_code >= HTTP_ERROR_STATUS:
                raise RemoteAPIError(
                    f"API {method} {url} failed with {response.status_code}",
                    status=response.status_code,
                    response_text=response.text,
                    retry_after=_retry_after(response),
                )
            return response

        response = run_with_retries(_run, cfg=self.retry)
        data: Any = None
        if response.text:
            try:
                data = response.json()
            except ValueError:
                data = response.text
        if cacheable:
            self._cache[key] = data
        elif method != "GET":
            # writes invalidate memoised reads
            self._cache.clear()
        return data

    def _paginate(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        items_key: str | None = None,
        use_cache: bool = True,
    ) -> list[Any]:
        params = dict(params or {})
        limit = params.setdefault("limit", DEFAULT_PAGE_SIZE)
        params.setdefault("page", 1)
        results: list[Any] = []
        while True:
            data = self._request("GET", path, params=dict(params), use_cache=use_cache)
            if items_key and isinstance(data, dict):
                data = data.get(items_key)
            if not isinstance(data, list):
                break
            results.extend(data)
            if len(data) < limit:
                break
            params["page"] = params.get("page", 1) + 1
        return results

    def clear_cache(self) -> None:
        self._cache.clear()

    # ---- User / server -----------------------------------------------
    def get_current_user(self) -> dict[str, Any]:
        return self._request("GET", "/user", use_cache=False)

    def get_version(self) -> str:
        data = self._request("GET", "/version", use_cache=False)
        if isinstance(data, dict) and isinstance(data.get("version"), str):
            return data["version"]
        return "0.0.0"

    # ---- Repositories ------------------------------------------------
    def get_repo(self, repo: str) -> dict[str, Any]:
        return self._request("GET", f"/repos/{repo}", use_cache=False)

    def search_repos(self, *, uid: int, archived: bool = False) -> list[dict[str, Any]]:
        params = {"uid": uid, "archived": str(archived).lower()}
        return self._paginate("/repos/search", params=params, items_key="data", use_cache=False)

    def get_repo_contents(self, repo: str, file_path: str, *, ref: str | None = None) -> dict[str, Any]:
        """Fetch file metadata plus base64 ``content`` from the contents endpoint."""
        params = {"ref": ref} if ref else None
        path = quote(file_path.lstrip("/"), safe="/")
        return self._request("GET", f"/repos/{repo}/contents/{path}", params=params)

    # ---- Pull requests -----------------------------------------------
    def search_prs(self, repo: str, *, state: str = "all", use_cache: bool = True) -> list[dict[str, Any]]:
        return self._paginate(f"/repos/{repo}/pulls", params={"state": state}, use_cache=use_cache)

    def get_pr(self, repo: str, number: int) -> dict[str, Any]:
        return self._request("GET", f"/repos/{repo}/pulls/{number}")

    def create_pr(
        self,
        repo: str,
        *,
        head: str,
        base: str,
        title: str,
        body: str,
        labels: Iterable[int] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"head": head, "base": base, "title": title, "body": body}
        if labels:
            payload["labels"] = list(labels)
        return self._request("POST", f"/repos/{repo}/pulls", json_body=payload)

    def update_pr(
        self,
        repo: str,
        number: int,
        *,
        title: str | None = None,
        body: str | None = None,
        state: str | None = None,
    ) -> dict[str, Any] | None:
        payload: dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if body is not None:
            payload["body"] = body
        if state is not None:
            payload["state"] = state
        if not payload:
            return None
        return self._request("PATCH", f"/repos/{repo}/pulls/{number}", json_body=payload)

    def merge_pr(self, repo: str, number: int, *, method: str) -> None:
        self._request("POST", f"/repos/{repo}/pulls/{number}/merge", json_body={"Do": method})

    def request_pr_reviewers(self, repo: str, number: int, *, reviewers: Iterable[str]) -> None:
        self._request(
            "POST",
            f"/repos/{repo}/pulls/{number}/requested_reviewers",
            json_body={"reviewers": list(reviewers)},
        )

    # ---- Issues ------------------------------------------------------
    def search_issues(self, repo: str, *, state: str = "all", use_cache: bool = True) -> list[dict[str, Any]]:
        params = {"state": state, "type": "issues"}
        return self._paginate(f"/repos/{repo}/issues", params=params, use_cache=use_cache)

    def get_issue(self, repo: str, number: int, *, use_cache: bool = True) -> dict[str, Any]:
        return self._request("GET", f"/repos/{repo}/issues/{number}", use_cache=use_cache)

    def create_issue(
        self,
        repo: str,
        *,
        title: str,
        body: str,
        labels: Iterable[int] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"title": title, "body": body}
        if labels:
            payload["labels"] = list(labels)
        return self._request("POST", f"/repos/{repo}/issues", json_body=payload)

    def update_issue(
        self,
        repo: str,
        number: int,
        *,
        title: str | None = None,
        body: str | None = None,
        state: str | None = None,
        assignees: Iterable[str] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if body is not None:
            payload["body"] = body
        if state is not None:
            payload["state"] = state
        if assignees is not None:
            payload["assignees"] = list(assignees)
        return self._request("PATCH", f"/repos/{repo}/issues/{number}", json_body=payload)

    def close_issue(self, repo: str, number: int) -> dict[str, Any]:
        return self.update_issue(repo, number, state="closed")

    def update_issue_labels(self, repo: str, number: int, *, labels: Iterable[int]) -> list[dict[str, Any]]:
        return self._request(
            "PUT", f"/repos/{repo}/issues/{number}/labels", json_body={"labels": list(labels)}
        )

    def unassign_label(self, repo: str, number: int, label_id: int) -> None:
        self._request("DELETE", f"/repos/{repo}/issues/{number}/labels/{label_id}")

    # ---- Comments ----------------------------------------------------
    def get_comments(self, repo: str, number: int) -> list[dict[str, Any]]:
        data = self._request("GET", f"/repos/{repo}/issues/{number}/comments", use_cache=False)
        return [entry for entry in data or [] if isinstance(entry, dict)]

    def create_comment(self, repo: str, number: int, body: str) -> dict[str, Any]:
        return self._request("POST", f"/repos/{repo}/issues/{number}/comments", json_body={"body": body})

    def update_comment(self, repo: str, comment_id: int, body: str) -> dict[str, Any]:
        return self._request(
            "PATCH", f"/repos/{repo}/issues/comments/{comment_id}", json_body={"body": body}
        )

    def delete_comment(self, repo: str, comment_id: int) -> None:
        self._request("DELETE", f"/repos/{repo}/issues/comments/{comment_id}")

    # ---- Labels ------------------------------------------------------
    def get_repo_labels(self, repo: str) -> list[dict[str, Any]]:
        return self._paginate(f"/repos/{repo}/labels", use_cache=False)

    def get_org_labels(self, org: str) -> list[dict[str, Any]]:
        return self._paginate(f"/orgs/{org}/labels", use_cache=False)

    # ---- Commit status -----------------------------------------------
    def create_commit_status(
        self,
        repo: str,
        sha: str,
        *,
        state: str,
        context: str,
        description: str | None = None,
        target_url: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"state": state, "context": context}
        if description:
            payload["description"] = description
        if target_url:
            payload["target_url"] = target_url
        return self._request("POST", f"/repos/{repo}/statuses/{sha}", json_body=payload)

    def get_combined_commit_status(
        self, repo: str, branch_name: str, *, use_cache: bool = True
    ) -> CombinedStatus:
        ref = quote(branch_name, safe="")
        raw = self._paginate(f"/repos/{repo}/commits/{ref}/statuses", use_cache=use_cache)
        return to_combined_status(entry for entry in raw if isinstance(entry, dict))


__all__ = [
    "DEFAULT_API_URL",
    "GiteaRestClient",
]
