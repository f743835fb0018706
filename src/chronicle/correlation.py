"""Correlation id carried from a scheduling request to the events it causes."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

_correlation_id: ContextVar[str | None] = ContextVar(
    "chronicle_correlation_id", default=None
)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> Token[str | None]:
    """Set the id for the current context; the token undoes it."""
    return _correlation_id.set(correlation_id)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


@contextmanager
def correlation_scope(correlation_id: str | None) -> Iterator[str | None]:
    """Run a block under *correlation_id*.

    ``None`` keeps whatever id the caller already has. The previous id is
    restored on exit, so a receiver handling many messages in one task never
    leaks one message's id into the next.
    """
    if correlation_id is None:
        yield _correlation_id.get()
        return
    token = _correlation_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id.reset(token)
