"""Pull request reconciliation.

All functions take the ``RepoSession`` first and read through its PR cache.
``create_pr`` carries the conflict recovery path: a 409 from the server
means a PR for the branch pairing already exists (typically a PR orphaned
when its branch was deleted and later pushed again). The cache is dropped,
the open PR for the branch is looked up once, brought in line with the
requested title/body and returned in place of the failed creation.
"""

from __future__ import annotations

from collections.abc import Iterable

from packaging.version import InvalidVersion, Version

from .errors import ForgeSyncError, RemoteAPIError, classify_error, redact
from .logging import get_logger
from .mappings import match_state
from .markdown import sanitize
from .models import Outcome, Pr, PrState
from .session import RepoSession, call

MIN_REVIEWER_VERSION = Version("1.14.0")


async def get_pr_list(session: RepoSession) -> list[Pr]:
    return await session.prs.get()


async def find_pr(
    session: RepoSession,
    branch_name: str,
    title: str | None = None,
    state: PrState | str = PrState.ALL,
) -> Pr | None:
    logger = get_logger()
    logger.debug(f"find_pr({branch_name}, {title}, {state})")
    for pr in await session.prs.get():
        if (
            pr.source_repo == session.repository
            and pr.source_branch == branch_name
            and match_state(pr.state, state)
            and (not title or pr.title == title)
        ):
            logger.debug(f"Found PR #{pr.number}")
            return pr
    return None


async def get_pr(session: RepoSession, number: int) -> Pr | None:
    logger = get_logger()
    prs = await session.prs.get()
    for pr in prs:
        if pr.number == number:
            logger.debug("Returning from cached PRs", number=number)
            return pr

    logger.debug("PR not found in cached PRs - fetching directly", number=number)
    try:
        data = await call(session.client.get_pr, session.repository, number)
    except RemoteAPIError as exc:
        if exc.is_not_found:
            return None
        raise
    fetched = session.to_pr(data)
    if fetched is None:
        return None
    await session.prs.append(fetched)
    return fetched


async def get_branch_pr(session: RepoSession, branch_name: str) -> Pr | None:
    get_logger().debug(f"get_branch_pr({branch_name})")
    pr = await find_pr(session, branch_name, state=PrState.OPEN)
    return await get_pr(session, pr.number) if pr else None


async def update_pr(
    session: RepoSession,
    number: int,
    title: str,
    body: str | None = None,
    state: PrState | str | None = None,
) -> None:
    """Partially update a PR; ``body``/``state`` left unset are not sent."""
    state_value = PrState(state).value if state is not None else None
    await call(
        session.client.update_pr,
        session.repository,
        number,
        title=title,
        body=body or None,
        state=state_value,
    )
    cached = session.prs.find(lambda p: p.number == number)
    if cached is not None:
        cached.title = title
        if body:
            cached.body = body
        if state_value is not None:
            cached.state = PrState(state_value)


async def _recover_from_conflict(
    session: RepoSession, source_branch: str, title: str, body: str
) -> Pr | None:
    logger = get_logger()
    logger.warning(
        f"Attempting to recover from 409 Conflict in create_pr({title}, {source_branch})",
        repository=session.repository,
    )
    session.prs.invalidate()
    pr = await find_pr(session, source_branch, state=PrState.OPEN)
    if pr is None:
        return None
    if pr.title != title or pr.body != body:
        logger.debug(f"Recovered from 409 Conflict, but PR for {source_branch} is outdated. Updating...")
        await update_pr(session, pr.number, title, body)
        pr.title = title
        pr.body = body
    else:
        logger.debug(f"Recovered from 409 Conflict and PR for {source_branch} is up-to-date")
    return pr


async def create_pr(
    session: RepoSession,
    source_branch: str,
    target_branch: str,
    title: str,
    body: str,
    labels: Iterable[str] | None = None,
) -> Pr:
    logger = get_logger()
    body = sanitize(body)
    logger.debug(f"Creating pull request: {title} ({source_branch} => {target_branch})")
    label_ids = await session.resolve_labels(list(labels or []))
    try:
        data = await call(
            session.client.create_pr,
            session.repository,
            head=source_branch,
            base=target_branch,
            title=title,
            body=body,
            labels=label_ids,
        )
    except RemoteAPIError as exc:
        if not exc.is_conflict:
            raise
        recovered = await _recover_from_conflict(session, source_branch, title, body)
        if recovered is None:
            raise
        return recovered

    pr = session.to_pr(data)
    if pr is None:
        raise ForgeSyncError("Can not parse newly created pull request")
    await session.prs.append(pr)
    logger.log_remote_action("pr_created", session.repository, pr.number, branch=source_branch)
    return pr


async def merge_pr(session: RepoSession, number: int) -> bool:
    """Merge with the session's merge method; ``False`` when the server refuses."""
    logger = get_logger()
    try:
        await call(
            session.client.merge_pr,
            session.repository,
            number,
            method=session.merge_method.value,
        )
    except RemoteAPIError as exc:
        logger.warning(
            "Merging of PR failed",
            number=number,
            error=redact(str(exc)),
            category=classify_error(exc).category,
        )
        return False
    cached = session.prs.find(lambda p: p.number == number)
    if cached is not None:
        cached.state = PrState.MERGED
    logger.log_remote_action("pr_merged", session.repository, number, method=session.merge_method.value)
    return True


async def add_reviewers(session: RepoSession, number: int, reviewers: list[str]) -> Outcome:
    logger = get_logger()
    logger.debug(f"Adding reviewers '{', '.join(reviewers)}' to #{number}")
    raw_version = session.identity.version if session.identity else "0.0.0"
    try:
        version = Version(raw_version)
    except InvalidVersion:
        version = Version("0.0.0")
    if version < MIN_REVIEWER_VERSION:
        logger.debug("Adding reviewer not yet supported.", version=raw_version)
        return Outcome.SKIPPED
    try:
        await call(session.client.request_pr_reviewers, session.repository, number, reviewers=reviewers)
    except RemoteAPIError as exc:
        logger.warning("Failed to assign reviewer", number=number, error=redact(str(exc)))
        return Outcome.SKIPPED
    return Outcome.APPLIED


__all__ = [
    "add_reviewers",
    "create_pr",
    "find_pr",
    "get_branch_pr",
    "get_pr",
    "get_pr_list",
    "merge_pr",
    "update_pr",
]
