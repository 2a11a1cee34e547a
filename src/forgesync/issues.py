"""Issue reconciliation.

``ensure_issue`` keeps at most one open issue per logical title:

1. candidates are cached issues with the title (or, failing that, the
   ``reuse_title`` used before a title migration);
2. the active issue is the most recent open candidate, else the most recent
   candidate overall (unless ``once`` is set, which leaves closed issues be);
3. every other open candidate is closed;
4. the active issue is patched only when title, body or state differ, and
   its labels are replaced only when the label id sets differ;
5. with no candidates at all a new issue is created and the issue cache is
   invalidated.

Remote errors anywhere in the pass are logged and reported as ``None``.
"""

from __future__ import annotations

from .errors import RemoteAPIError, classify_error, redact
from .logging import get_logger
from .mappings import label_ids, to_issue
from .markdown import smart_links
from .models import EnsureIssueResult, Issue, IssueState, Outcome
from .session import RepoSession, call


async def get_issue_list(session: RepoSession) -> list[Issue]:
    return await session.issues.get()


async def get_issue(session: RepoSession, number: int, use_cache: bool = True) -> Issue | None:
    try:
        data = await call(
            session.client.get_issue, session.repository, number, use_cache=use_cache
        )
    except RemoteAPIError as exc:
        get_logger().debug("Error getting issue", number=number, error=redact(str(exc)))
        return None
    return to_issue(data)


async def find_issue(session: RepoSession, title: str) -> Issue | None:
    for issue in await session.issues.get():
        if issue.state == IssueState.OPEN and issue.title == title:
            get_logger().debug(f"Found Issue #{issue.number}")
            return await get_issue(session, issue.number)
    return None


def _pick_active(candidates: list[Issue]) -> Issue:
    return max(candidates, key=lambda i: i.number)


async def _close_duplicates(session: RepoSession, candidates: list[Issue], active: Issue) -> None:
    logger = get_logger()
    for issue in candidates:
        if issue.state == IssueState.OPEN and issue.number != active.number:
            logger.warning(f"Closing duplicate Issue #{issue.number}", repository=session.repository)
            await call(session.client.close_issue, session.repository, issue.number)
            issue.state = IssueState.CLOSED


async def _update_active(
    session: RepoSession,
    active: Issue,
    title: str,
    body: str,
    state: IssueState,
    wanted_labels: list[int] | None,
) -> None:
    data = await call(
        session.client.update_issue,
        session.repository,
        active.number,
        title=title,
        body=body,
        state=state.value,
    )
    active.title = title
    active.body = body
    active.state = state
    current_labels = label_ids(data.get("labels")) if isinstance(data, dict) else active.labels
    active.labels = current_labels
    if wanted_labels is not None and set(wanted_labels) != set(current_labels):
        await call(
            session.client.update_issue_labels,
            session.repository,
            active.number,
            labels=wanted_labels,
        )
        active.labels = list(wanted_labels)


async def _ensure_issue(
    session: RepoSession,
    title: str,
    reuse_title: str | None,
    body: str,
    labels: list[str] | None,
    should_reopen: bool,
    once: bool,
) -> EnsureIssueResult | None:
    logger = get_logger()
    desired_body = smart_links(body)

    issue_list = await session.issues.get()
    candidates = [i for i in issue_list if i.title == title]
    if not candidates and reuse_title:
        candidates = [i for i in issue_list if i.title == reuse_title]

    wanted_labels = await session.resolve_labels(labels) if labels is not None else None

    if candidates:
        open_candidates = [i for i in candidates if i.state == IssueState.OPEN]
        if open_candidates:
            active = _pick_active(open_candidates)
        else:
            if once:
                logger.debug("Issue already closed - skipping update")
                return None
            if should_reopen:
                logger.debug("Reopening previously closed Issue")
            active = _pick_active(candidates)

        await _close_duplicates(session, candidates, active)

        desired_state = (
            IssueState.OPEN if should_reopen or active.state == IssueState.OPEN else active.state
        )
        if active.title == title and active.body == desired_body and active.state == desired_state:
            logger.debug(f"Issue #{active.number} is up to date - nothing to do")
            return None

        logger.debug(f"Updating Issue #{active.number}")
        await _update_active(session, active, title, desired_body, desired_state, wanted_labels)
        logger.log_remote_action("issue_updated", session.repository, active.number)
        return EnsureIssueResult.UPDATED

    created = await call(
        session.client.create_issue,
        session.repository,
        title=title,
        body=desired_body,
        labels=wanted_labels,
    )
    # the created issue is not tracked locally; next read refetches
    session.issues.invalidate()
    number = created.get("number") if isinstance(created, dict) else None
    logger.log_remote_action("issue_created", session.repository, number)
    return EnsureIssueResult.CREATED


async def ensure_issue(
    session: RepoSession,
    title: str,
    reuse_title: str | None,
    body: str,
    labels: list[str] | None = None,
    should_reopen: bool = False,
    once: bool = False,
) -> EnsureIssueResult | None:
    """Make sure exactly one issue titled ``title`` carries ``body``.

    Returns ``EnsureIssueResult.CREATED`` / ``UPDATED``, or ``None`` when
    nothing changed or the pass failed (the failure is logged).
    """
    logger = get_logger()
    logger.debug(f"ensure_issue({title})")
    try:
        return await _ensure_issue(
            session, title, reuse_title, body, labels, should_reopen, once
        )
    except (RemoteAPIError, KeyError, TypeError, ValueError) as exc:
        info = classify_error(exc)
        logger.warning(
            "Could not ensure issue",
            title=title,
            error=info.message,
            category=info.category,
        )
    return None


async def ensure_issue_closing(session: RepoSession, title: str) -> None:
    logger = get_logger()
    logger.debug(f"ensure_issue_closing({title})")
    for issue in await session.issues.get():
        if issue.state == IssueState.OPEN and issue.title == title:
            logger.debug("Closing issue", number=issue.number)
            await call(session.client.close_issue, session.repository, issue.number)
            issue.state = IssueState.CLOSED
            logger.log_remote_action("issue_closed", session.repository, issue.number)


async def delete_label(session: RepoSession, number: int, label_name: str) -> Outcome:
    logger = get_logger()
    logger.debug(f"Deleting label {label_name} from Issue #{number}")
    label_id = await session.lookup_label(label_name)
    if label_id is None:
        logger.warning("Failed to lookup label for deletion", number=number, label=label_name)
        return Outcome.SKIPPED
    await call(session.client.unassign_label, session.repository, number, label_id)
    cached = session.issues.find(lambda i: i.number == number)
    if cached is not None and label_id in cached.labels:
        cached.labels = [lid for lid in cached.labels if lid != label_id]
    return Outcome.APPLIED


async def add_assignees(session: RepoSession, number: int, assignees: list[str]) -> None:
    get_logger().debug(f"Updating assignees '{', '.join(assignees)}' on Issue #{number}")
    await call(session.client.update_issue, session.repository, number, assignees=assignees)
    cached_pr = session.prs.find(lambda p: p.number == number)
    if cached_pr is not None:
        cached_pr.has_assignees = bool(assignees)


__all__ = [
    "add_assignees",
    "delete_label",
    "ensure_issue",
    "ensure_issue_closing",
    "find_issue",
    "get_issue",
    "get_issue_list",
]
