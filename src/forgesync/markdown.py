"""Markdown helpers applied to bodies before they are sent upstream."""

from __future__ import annotations

import re

from .errors import redact

MAX_BODY_LENGTH = 1_000_000

_RELATIVE_PULL_LINK = re.compile(r"\]\(\.\./pull/")


def smart_links(body: str) -> str:
    """Rewrite relative pull links to the ``pulls`` route used by the server."""
    if not body:
        return body
    return _RELATIVE_PULL_LINK.sub("](../pulls/", body)


def smart_truncate(body: str, length: int = MAX_BODY_LENGTH) -> str:
    if len(body) <= length:
        return body
    return body[:length]


def sanitize(text: str) -> str:
    return redact(text)


def massage_markdown(body: str) -> str:
    return smart_truncate(smart_links(body), MAX_BODY_LENGTH)


__all__ = ["MAX_BODY_LENGTH", "massage_markdown", "sanitize", "smart_links", "smart_truncate"]
