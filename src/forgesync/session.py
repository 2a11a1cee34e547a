"""Repository session context.

A ``RepoSession`` is created by ``GiteaPlatform.init_repo`` and passed
explicitly to every reconciliation operation. It owns the three list caches
for that repository; nothing about the repository lives in module globals.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from .cache import ListCache
from .errors import RemoteAPIError, classify_error
from .gitea_rest import GiteaRestClient
from .git_storage import GitStorage
from .logging import get_logger
from .mappings import to_issue, to_label, to_pr
from .models import Issue, Label, LabelScope, MergeMethod, PlatformIdentity, Pr

R = TypeVar("R")


async def call(fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
    """Run a blocking client call on the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))


@dataclass
class RepoSession:
    repository: str
    merge_method: MergeMethod
    default_branch: str
    client: GiteaRestClient
    identity: PlatformIdentity | None = None
    storage: GitStorage | None = None
    clone_submodules: bool = False
    is_fork: bool = False
    prs: ListCache[Pr] = field(init=False, repr=False)
    issues: ListCache[Issue] = field(init=False, repr=False)
    labels: ListCache[Label] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.prs = ListCache("pull requests", self._load_prs, key=lambda p: p.number)
        self.issues = ListCache("issues", self._load_issues, key=lambda i: i.number)
        self.labels = ListCache("labels", self._load_labels, key=lambda lbl: (lbl.scope, lbl.id))

    @property
    def owner(self) -> str:
        return self.repository.split("/", 1)[0]

    @property
    def bot_username(self) -> str | None:
        return self.identity.username if self.identity else None

    def reset(self) -> None:
        """Drop all cached collections back to unpopulated."""
        self.prs.invalidate()
        self.issues.invalidate()
        self.labels.invalidate()

    def to_pr(self, data: dict[str, Any] | None) -> Pr | None:
        return to_pr(data, self.bot_username)

    # ---- loaders -----------------------------------------------------
    async def _load_prs(self) -> list[Pr]:
        raw = await call(self.client.search_prs, self.repository, state="all", use_cache=False)
        return [pr for pr in (self.to_pr(entry) for entry in raw) if pr is not None]

    async def _load_issues(self) -> list[Issue]:
        raw = await call(self.client.search_issues, self.repository, state="all", use_cache=False)
        return [to_issue(entry) for entry in raw]

    async def _load_org_labels(self) -> list[Label]:
        try:
            raw = await call(self.client.get_org_labels, self.owner)
        except RemoteAPIError as exc:
            # Owner is a user account, or the server predates org labels.
            get_logger().debug(
                "Unable to fetch organization labels",
                repository=self.repository,
                category=classify_error(exc).category,
            )
            return []
        return [to_label(entry, LabelScope.ORGANIZATION) for entry in raw]

    async def _load_labels(self) -> list[Label]:
        repo_raw, org_labels = await asyncio.gather(
            call(self.client.get_repo_labels, self.repository),
            self._load_org_labels(),
        )
        repo_labels = [to_label(entry, LabelScope.REPOSITORY) for entry in repo_raw]
        return repo_labels + org_labels

    async def lookup_label(self, name: str) -> int | None:
        for label in await self.labels.get():
            if label.name == name:
                return label.id
        return None

    async def resolve_labels(self, names: list[str]) -> list[int]:
        """Resolve label names to ids, silently dropping unknown names."""
        ids: list[int] = []
        for name in names:
            label_id = await self.lookup_label(name)
            if label_id is not None:
                ids.append(label_id)
        return ids


__all__ = ["RepoSession", "call"]
