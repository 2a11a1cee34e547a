"""Platform entry point: authentication, repository sessions, discovery.

``GiteaPlatform`` holds the process-wide pieces (REST client, automation
identity, git storage). ``init_repo`` hands back a fresh ``RepoSession``;
the previous session, if any, is reset and stops being current, so at most
one repository is reconciled at a time.
"""

from __future__ import annotations

import base64
import json
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import json5

from .errors import (
    AuthenticationFailure,
    ForgeSyncError,
    NoMergeMethodAvailable,
    RemoteAPIError,
    RepositoryAccessForbidden,
    RepositoryArchived,
    RepositoryEmpty,
    RepositoryMirrored,
    redact,
    register_secret,
)
from .gitea_rest import DEFAULT_API_URL, GiteaRestClient
from .git_storage import GitStorage
from .logging import get_logger
from .markdown import massage_markdown
from .models import MergeMethod, PlatformIdentity, PlatformResult
from .session import RepoSession, call

ClientFactory = Callable[..., GiteaRestClient]

# Preference order: fast-forward rebase first, plain merge commit last.
_MERGE_PREFERENCE: tuple[tuple[str, MergeMethod], ...] = (
    ("allow_rebase", MergeMethod.REBASE),
    ("allow_rebase_explicit", MergeMethod.REBASE_MERGE),
    ("allow_squash_merge", MergeMethod.SQUASH),
    ("allow_merge_commits", MergeMethod.MERGE),
)


def ensure_trailing_slash(url: str) -> str:
    return url if url.endswith("/") else url + "/"


def choose_merge_method(repo: dict[str, Any]) -> MergeMethod | None:
    for flag, method in _MERGE_PREFERENCE:
        if repo.get(flag):
            return method
    return None


def clone_url_with_token(clone_url: str, token: str | None) -> str:
    if not token:
        return clone_url
    parts = urlsplit(clone_url)
    host = parts.netloc.rsplit("@", 1)[-1]
    return urlunsplit((parts.scheme, f"{token}@{host}", parts.path, parts.query, parts.fragment))


def validate_repo(repository: str, repo: dict[str, Any]) -> MergeMethod:
    """Raise the matching ``RepositoryUnusable`` subclass or return the merge method."""
    logger = get_logger()
    if repo.get("archived"):
        logger.debug("Repository is archived - aborting", repository=repository)
        raise RepositoryArchived(repository)
    if repo.get("mirror"):
        logger.debug("Repository is a mirror - aborting", repository=repository)
        raise RepositoryMirrored(repository)
    permissions = repo.get("permissions") or {}
    if not permissions.get("pull") or not permissions.get("push"):
        logger.debug("Repository does not permit pull and push - aborting", repository=repository)
        raise RepositoryAccessForbidden(repository)
    if repo.get("empty"):
        logger.debug("Repository is empty - aborting", repository=repository)
        raise RepositoryEmpty(repository)
    method = choose_merge_method(repo)
    if method is None:
        logger.debug("Repository has no allowed merge methods - aborting", repository=repository)
        raise NoMergeMethodAvailable(repository)
    return method


class GiteaPlatform:
    def __init__(
        self,
        *,
        storage: GitStorage | None = None,
        client_factory: ClientFactory | None = None,
        client_options: dict[str, Any] | None = None,
    ) -> None:
        self.storage = storage
        self._client_factory: ClientFactory = client_factory or GiteaRestClient
        self._client_options = dict(client_options or {})
        self.endpoint = DEFAULT_API_URL
        self.client: GiteaRestClient | None = None
        self.identity: PlatformIdentity | None = None
        self.current: RepoSession | None = None
        self._token: str | None = None

    async def init_platform(self, endpoint: str | None, token: str | None) -> PlatformResult:
        logger = get_logger()
        if not token:
            raise AuthenticationFailure("Init: You must configure an API access token")
        if endpoint:
            self.endpoint = ensure_trailing_slash(endpoint)
        else:
            logger.debug("Using default endpoint: " + self.endpoint)
        register_secret(token)
        client = self._client_factory(token=token, base_url=self.endpoint, **self._client_options)
        try:
            user = await call(client.get_current_user)
            version = await call(client.get_version)
        except RemoteAPIError as exc:
            logger.debug("Error authenticating. Check your token", error=redact(str(exc)))
            raise AuthenticationFailure("Init: Authentication failure") from exc

        username = user.get("username") or user.get("login") or ""
        git_author = f"{user.get('full_name') or username} <{user.get('email')}>"
        self.identity = PlatformIdentity(
            user_id=int(user.get("id", 0)),
            username=username,
            git_author=git_author,
            version=version,
        )
        self.client = client
        self._token = token
        logger.log_operation("platform_initialized", endpoint=self.endpoint, version=version)
        return PlatformResult(endpoint=self.endpoint, git_author=git_author)

    def _require_client(self) -> GiteaRestClient:
        if self.client is None:
            raise AuthenticationFailure("Platform not initialised; call init_platform first")
        return self.client

    async def init_repo(self, repository: str, clone_submodules: bool = False) -> RepoSession:
        logger = get_logger()
        client = self._require_client()
        if self.current is not None:
            self.current.reset()
            self.current = None
        client.clear_cache()

        try:
            repo = await call(client.get_repo, repository)
        except RemoteAPIError as exc:
            logger.debug("Unknown initRepo error", repository=repository, error=redact(str(exc)))
            raise

        merge_method = validate_repo(repository, repo)
        default_branch = repo.get("default_branch") or "main"
        logger.debug(f"{repository} default branch = {default_branch}")

        if self.storage is not None:
            await call(
                self.storage.init_repo,
                clone_url_with_token(repo.get("clone_url") or "", self._token),
                default_branch=default_branch,
                clone_submodules=clone_submodules,
            )

        session = RepoSession(
            repository=repository,
            merge_method=merge_method,
            default_branch=default_branch,
            client=client,
            identity=self.identity,
            storage=self.storage,
            clone_submodules=clone_submodules,
            is_fork=bool(repo.get("fork")),
        )
        self.current = session
        logger.log_operation(
            "repo_initialized", repository=repository, merge_method=merge_method.value
        )
        return session

    async def get_repos(self) -> list[str]:
        logger = get_logger()
        client = self._require_client()
        logger.debug("Auto-discovering repositories")
        uid = self.identity.user_id if self.identity else 0
        try:
            repos = await call(client.search_repos, uid=uid, archived=False)
        except RemoteAPIError as exc:
            logger.log_error("getRepos() error", error=redact(str(exc)))
            raise
        return [r["full_name"] for r in repos if isinstance(r, dict) and r.get("full_name")]

    async def get_raw_file(
        self,
        file_name: str,
        repo_name: str | None = None,
        branch_or_tag: str | None = None,
    ) -> str | None:
        """Return the decoded text of ``file_name``, ``None`` when it has no content.

        ``repo_name`` defaults to the current session's repository and
        ``branch_or_tag`` to the repository's default branch.
        """
        client = self._require_client()
        repository = repo_name or (self.current.repository if self.current else None)
        if not repository:
            raise ForgeSyncError("No repository given and no repository initialised")
        contents = await call(client.get_repo_contents, repository, file_name, ref=branch_or_tag)
        encoded = contents.get("content") if isinstance(contents, dict) else None
        if encoded is None:
            return None
        if contents.get("encoding", "base64") != "base64":
            return str(encoded)
        return base64.b64decode(encoded).decode("utf-8")

    async def get_json_file(
        self,
        file_name: str,
        repo_name: str | None = None,
        branch_or_tag: str | None = None,
    ) -> Any:
        """Parse ``file_name`` as JSON, or JSON5 when the name ends in ``.json5``."""
        raw = await self.get_raw_file(file_name, repo_name, branch_or_tag)
        if raw is None:
            return None
        if file_name.endswith(".json5"):
            return json5.loads(raw)
        return json.loads(raw)

    @staticmethod
    def get_repo_force_rebase() -> bool:
        return False

    @staticmethod
    def get_vulnerability_alerts() -> list[Any]:
        return []

    @staticmethod
    def massage_markdown(body: str) -> str:
        return massage_markdown(body)


__all__ = [
    "GiteaPlatform",
    "choose_merge_method",
    "clone_url_with_token",
    "ensure_trailing_slash",
    "validate_repo",
]
