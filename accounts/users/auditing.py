"""
Request-scoped current user and automatic auditing.

The current user lives in a ``ContextVar``, so each request (each asyncio
task) sees its own value. ``AuditorAware`` turns it into a ``User`` row and
a before-flush listener stamps ``created_by_id`` / ``last_modified_by_id``
on every ``Auditable`` object being written.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

from accounts.users.dto import UserDto
from accounts.users.models import Auditable, User

logger = logging.getLogger(__name__)

_current_user: ContextVar[Optional[UserDto]] = ContextVar("accounts_current_user", default=None)


def current_user() -> Optional[UserDto]:
    """The user the current request acts as, or None when anonymous."""
    return _current_user.get()


def login(user: UserDto) -> None:
    """Make ``user`` the current user for the rest of the request."""
    _current_user.set(user)


def logout() -> None:
    _current_user.set(None)


@contextmanager
def as_current_user(user: Optional[UserDto]) -> Iterator[None]:
    """Temporarily run as ``user`` (used by the CLI and tests)."""
    token = _current_user.set(user)
    try:
        yield
    finally:
        _current_user.reset(token)


class AuditorAware:
    """Resolves the auditor (the acting ``User``) for a session."""

    def __init__(self):
        logger.info("Created")

    def get_current_auditor(self, session: Session) -> Optional[User]:
        user = current_user()

        if user is None:
            return None

        with session.no_autoflush:
            return session.get(User, user.id)


def _stamp(session: Session, auditor_aware: AuditorAware) -> None:
    new = [obj for obj in session.new if isinstance(obj, Auditable)]
    dirty = [
        obj
        for obj in session.dirty
        if isinstance(obj, Auditable) and session.is_modified(obj)
    ]
    if not new and not dirty:
        return

    auditor = auditor_aware.get_current_auditor(session)
    auditor_id = auditor.id if auditor is not None else None

    for obj in new:
        obj.created_by_id = auditor_id
        obj.last_modified_by_id = auditor_id
    for obj in dirty:
        obj.last_modified_by_id = auditor_id


def install_auditing(target) -> AuditorAware:
    """
    Register the auditing listener on a ``sessionmaker`` (or ``Session``
    class). Returns the ``AuditorAware`` in use.
    """
    auditor_aware = AuditorAware()

    @event.listens_for(target, "before_flush")
    def _before_flush(session, flush_context, instances):
        _stamp(session, auditor_aware)

    return auditor_aware
