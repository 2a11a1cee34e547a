from __future__ import annotations

from dataclasses import dataclass

from .errors import RemoteAPIError, classify_error, redact
from .logging import get_logger
from .mappings import to_comment
from .markdown import sanitize
from .models import Comment, Outcome
from .session import RepoSession, call

BY_TOPIC = "by-topic"
BY_CONTENT = "by-content"


def topic_marker(topic: str) -> str:
    return f"### {topic}\n\n"


def find_comment_by_topic(comments: list[Comment], topic: str) -> Comment | None:
    marker = topic_marker(topic)
    for comment in comments:
        if comment.body.startswith(marker):
            return comment
    return None


def find_comment_by_content(comments: list[Comment], content: str) -> Comment | None:
    for comment in comments:
        if comment.body.strip() == content:
            return comment
    return None


@dataclass(frozen=True)
class CommentRemoval:
    """Selects the comment ``ensure_comment_removal`` should delete."""

    number: int
    kind: str
    key: str

    @classmethod
    def by_topic(cls, number: int, topic: str) -> CommentRemoval:
        return cls(number=number, kind=BY_TOPIC, key=topic)

    @classmethod
    def by_content(cls, number: int, content: str) -> CommentRemoval:
        return cls(number=number, kind=BY_CONTENT, key=content)


async def _get_comments(session: RepoSession, number: int) -> list[Comment]:
    raw = await call(session.client.get_comments, session.repository, number)
    return [to_comment(entry, number) for entry in raw]


async def ensure_comment(
    session: RepoSession, number: int, topic: str | None, content: str
) -> bool:
    """Create or update a comment addressed by topic (or by exact body).

    Returns ``True`` when the comment is in the desired state afterwards and
    ``False`` when a remote error prevented that.
    """
    logger = get_logger()
    try:
        body = sanitize(content)
        comments = await _get_comments(session, number)

        if topic:
            comment = find_comment_by_topic(comments, topic)
            body = f"{topic_marker(topic)}{body}"
        else:
            comment = find_comment_by_content(comments, body)

        if comment is None:
            created = await call(session.client.create_comment, session.repository, number, body)
            logger.info(
                "Comment added",
                repository=session.repository,
                number=number,
                comment=created.get("id") if isinstance(created, dict) else None,
            )
        elif comment.body == body:
            logger.debug(f"Comment #{comment.id} is already up-to-date")
        else:
            await call(session.client.update_comment, session.repository, comment.id, body)
            logger.debug(
                "Comment updated",
                repository=session.repository,
                number=number,
                comment=comment.id,
            )
        return True
    except RemoteAPIError as exc:
        logger.warning(
            "Error ensuring comment",
            number=number,
            topic=topic,
            error=redact(str(exc)),
            category=classify_error(exc).category,
        )
        return False


async def ensure_comment_removal(session: RepoSession, removal: CommentRemoval) -> Outcome:
    logger = get_logger()
    logger.debug(f'Ensuring comment "{removal.key}" in #{removal.number} is removed')
    comments = await _get_comments(session, removal.number)

    if removal.kind == BY_TOPIC:
        comment = find_comment_by_topic(comments, removal.key)
    else:
        comment = find_comment_by_content(comments, sanitize(removal.key))

    if comment is None:
        return Outcome.UNCHANGED

    try:
        await call(session.client.delete_comment, session.repository, comment.id)
    except RemoteAPIError as exc:
        logger.warning(
            "Error deleting comment",
            number=removal.number,
            kind=removal.kind,
            error=redact(str(exc)),
        )
        return Outcome.SKIPPED
    return Outcome.APPLIED


__all__ = [
    "CommentRemoval",
    "ensure_comment",
    "ensure_comment_removal",
    "find_comment_by_content",
    "find_comment_by_topic",
    "topic_marker",
]
