"""
SQLAlchemy models for user accounts.

Models:
- User: an application user, identified by email, with roles and
  auditing columns filled in automatically on flush
"""

import enum
import time
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    create_engine,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from accounts.config import get_database_url
from accounts.users.dto import UserDto

Base = declarative_base()


class Role(str, enum.Enum):
    """User roles."""

    UNVERIFIED = "UNVERIFIED"
    BLOCKED = "BLOCKED"
    ADMIN = "ADMIN"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_millis() -> int:
    return int(time.time() * 1000)


class Auditable:
    """
    Mixin for entities whose creator and last modifier are recorded.

    The values are filled in by the before-flush listener installed by
    ``accounts.users.auditing.install_auditing``.
    """

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class User(Auditable, Base):
    """An application user. The email doubles as the username."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(250), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(50))

    # Comma separated Role values
    roles = Column(String(100), nullable=False, default="")

    # Pending email change, confirmed by a mailed code
    new_email = Column(String(250))

    # Tokens issued before this instant are rejected
    credentials_updated_millis = Column(BigInteger, nullable=False, default=now_millis)

    created_by_id = Column(Integer, ForeignKey("users.id"))
    last_modified_by_id = Column(Integer, ForeignKey("users.id"))

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', roles='{self.roles}')>"

    # ==================== ROLES ====================

    @property
    def role_set(self) -> set[str]:
        return {r for r in (self.roles or "").split(",") if r}

    def set_roles(self, roles: Iterable[str]) -> None:
        self.roles = ",".join(sorted(set(roles)))

    def has_role(self, role: Role) -> bool:
        return role.value in self.role_set

    def add_role(self, role: Role) -> None:
        self.set_roles(self.role_set | {role.value})

    def remove_role(self, role: Role) -> None:
        self.set_roles(self.role_set - {role.value})

    @property
    def unverified(self) -> bool:
        return self.has_role(Role.UNVERIFIED)

    @property
    def blocked(self) -> bool:
        return self.has_role(Role.BLOCKED)

    @property
    def admin(self) -> bool:
        return self.has_role(Role.ADMIN)

    @property
    def good_user(self) -> bool:
        return not (self.unverified or self.blocked)

    @property
    def good_admin(self) -> bool:
        return self.good_user and self.admin

    def credentials_updated(self) -> None:
        """Invalidate every token issued so far."""
        self.credentials_updated_millis = now_millis()

    # ==================== CONVERSIONS ====================

    def to_dto(self) -> UserDto:
        return UserDto(
            id=self.id,
            username=self.email,
            name=self.name,
            roles=sorted(self.role_set),
            tag={"name": self.name},
            unverified=self.unverified,
            blocked=self.blocked,
            admin=self.admin,
            good_user=self.good_user,
            good_admin=self.good_admin,
        )

    def has_permission(self, current_user: Optional[UserDto], permission: str) -> bool:
        """
        Whether ``current_user`` may perform ``permission`` on this user.

        Only "edit" is defined: a user may edit themself, a good admin may
        edit anyone.
        """
        if current_user is None or permission != "edit":
            return False
        return current_user.id == self.id or current_user.good_admin


# Database setup
_engine = None
_SessionLocal = None


def get_engine():
    """Get or create database engine."""
    global _engine
    if _engine is None:
        db_url = get_database_url()
        connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
        _engine = create_engine(db_url, echo=False, connect_args=connect_args)
    return _engine


def init_db() -> None:
    """Initialize database and create tables."""
    engine = get_engine()
    Base.metadata.create_all(engine)


def reset_engine() -> None:
    """Dispose the engine so the next call picks up a fresh DATABASE_URL."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_session() -> Session:
    """Get a new database session."""
    global _SessionLocal
    if _SessionLocal is None:
        from accounts.users.auditing import install_auditing

        engine = get_engine()
        _SessionLocal = sessionmaker(bind=engine)
        install_auditing(_SessionLocal)
    return _SessionLocal()


async def get_db():
    """FastAPI dependency yielding a session that is closed after the request."""
    session = get_session()
    try:
        yield session
    finally:
        session.close()


def get_user_by_email(session: Session, email: str) -> Optional[User]:
    """Get a user by email (case-insensitive)."""
    if not email:
        return None
    return session.query(User).filter(User.email == email.strip().lower()).first()
