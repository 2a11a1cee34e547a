from __future__ import annotations

from .errors import ForgeSyncError, RemoteAPIError, RepositoryChanged, classify_error, redact
from .logging import get_logger
from .mappings import is_known_status, to_branch_status, to_remote_status
from .models import BranchStatus, CombinedStatus, Outcome
from .session import RepoSession, call


async def set_branch_status(
    session: RepoSession,
    branch_name: str,
    context: str,
    description: str,
    state: BranchStatus,
    url: str | None = None,
) -> Outcome:
    """Attach a status to the branch head; best effort, failures are logged."""
    logger = get_logger()
    if session.storage is None:
        logger.warning("No git storage configured; cannot resolve branch", branch=branch_name)
        return Outcome.SKIPPED
    try:
        sha = await call(session.storage.get_branch_commit, branch_name)
    except ForgeSyncError as exc:
        logger.warning(
            "Failed to set branch status: cannot resolve branch",
            branch=branch_name,
            error=redact(str(exc)),
        )
        return Outcome.SKIPPED
    if not sha:
        logger.warning("Failed to set branch status: branch has no commit", branch=branch_name)
        return Outcome.SKIPPED
    try:
        await call(
            session.client.create_commit_status,
            session.repository,
            sha,
            state=to_remote_status(state),
            context=context,
            description=description,
            target_url=url,
        )
        # re-fetch so later reads see the new status
        await call(
            session.client.get_combined_commit_status,
            session.repository,
            branch_name,
            use_cache=False,
        )
    except RemoteAPIError as exc:
        logger.warning(
            "Failed to set branch status",
            branch=branch_name,
            context=context,
            error=redact(str(exc)),
            category=classify_error(exc).category,
        )
        return Outcome.SKIPPED
    logger.log_remote_action("status_set", session.repository, branch=branch_name, context=context)
    return Outcome.APPLIED


async def _combined_status(session: RepoSession, branch_name: str) -> CombinedStatus:
    return await call(session.client.get_combined_commit_status, session.repository, branch_name)


async def get_branch_status(session: RepoSession, branch_name: str) -> BranchStatus:
    logger = get_logger()
    try:
        ccs = await _combined_status(session, branch_name)
    except RemoteAPIError as exc:
        if exc.is_not_found:
            logger.debug("Received 404 when checking branch status, assuming branch deletion")
            raise RepositoryChanged(branch_name) from exc
        logger.debug("Unknown error when checking branch status", branch=branch_name)
        raise
    logger.debug("Branch status check result", branch=branch_name, worst_status=ccs.worst_status)
    return to_branch_status(ccs.worst_status)


async def get_branch_status_check(
    session: RepoSession, branch_name: str, context: str
) -> BranchStatus | None:
    ccs = await _combined_status(session, branch_name)
    check = ccs.find(context)
    if check is None:
        return None
    if not is_known_status(check.status):
        get_logger().warning(
            "Could not map remote status value",
            context=context,
            status=check.status,
        )
    return to_branch_status(check.status)


__all__ = ["get_branch_status", "get_branch_status_check", "set_branch_status"]
