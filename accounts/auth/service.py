"""
User management service.

Handles:
- Password hashing with bcrypt
- Signup, login and email verification
- Forgot/reset password and change password
- Email change requests and confirmation
- Fetching and updating users, minting new auth tokens

Every check failure raises one of the typed exceptions from
``accounts.exceptions``; the web layer turns them into error responses.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import bcrypt
from fastapi import Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from accounts.auth import email as mail
from accounts.auth.tokens import (
    CHANGE_EMAIL_AUDIENCE,
    FORGOT_PASSWORD_AUDIENCE,
    TOKEN_PREFIX,
    VERIFY_AUDIENCE,
    AUTH_AUDIENCE,
    JwtService,
    ensure_issued_after,
    get_jwt_service,
    hours_to_millis,
)
from accounts.config import settings
from accounts.exceptions import (
    MultiErrorException,
    UnauthorizedException,
    VersionException,
    ensure_authority,
    ensure_credentials,
    ensure_found,
    validate,
)
from accounts.users.auditing import current_user, login
from accounts.users.dto import UserDto
from accounts.users.models import Role, User, get_user_by_email
from accounts.web.schemas import (
    ChangePasswordForm,
    EmailChangeInput,
    SignupInput,
    UserUpdate,
    UserView,
)

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8")[:_BCRYPT_MAX_BYTES], salt).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against its hash."""
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(
            password.encode("utf-8")[:_BCRYPT_MAX_BYTES], hashed.encode("utf-8")
        )
    except ValueError as e:
        logger.error(f"Password verification error: {e}")
        return False


class UserService:
    """Business logic behind the user management endpoints."""

    def __init__(self, session: Session, jwt_service: Optional[JwtService] = None):
        self.session = session
        self.jwt_service = jwt_service or get_jwt_service()

    # ==================== HELPERS ====================

    def _commit(self, user: Optional[User] = None, email_field: str = "email") -> None:
        try:
            self.session.commit()
        except StaleDataError:
            self.session.rollback()
            raise VersionException("User", user.id if user is not None else None)
        except IntegrityError as e:
            # Only the email column is unique; a concurrent request took it
            self.session.rollback()
            logger.info(f"Email conflict on commit: {e.orig}")
            validate(False, email_field, "Email already used", code="email.duplicate").go()

    def _require_current_user(self) -> UserDto:
        user = current_user()
        ensure_credentials(user is not None, "Authentication required")
        return user

    def _ensure_email_unused(self, email: str, field: str) -> None:
        validate(
            get_user_by_email(self.session, email) is None,
            field,
            "Email already used",
            code="email.duplicate",
        ).go()

    def _login(self, user: User) -> UserDto:
        dto = user.to_dto()
        login(dto)
        return dto

    def get_user(self, user_id: Any) -> Optional[User]:
        try:
            return self.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    # ==================== CONTEXT ====================

    def get_context(self, expiration_millis: Optional[int], response: Response) -> dict[str, Any]:
        """
        Context properties needed at the client side and the current user.

        A fresh auth token for the current user, if any, is added to the
        response headers.
        """
        user = current_user()
        if user is not None:
            self.jwt_service.add_auth_header(
                response,
                user.username,
                expiration_millis or settings.jwt_expiration_millis,
            )

        return {
            "context": {"shared": settings.shared},
            "user": user.model_dump() if user is not None else None,
        }

    # ==================== SIGNUP & VERIFICATION ====================

    def signup(self, data: SignupInput) -> UserDto:
        """Create a new unverified user, mail a verification link and log them in."""
        ensure_authority(current_user() is None, "Already logged in")

        email = data.email.strip().lower()
        self._ensure_email_unused(email, "email")

        user = User(
            email=email,
            password_hash=hash_password(data.password),
            name=data.name.strip(),
        )
        user.set_roles([Role.UNVERIFIED.value])
        user.credentials_updated()
        self.session.add(user)
        self._commit(user)
        self.session.refresh(user)

        logger.info(f"Created user: {email}")
        self._send_verification_mail(user)
        return self._login(user)

    def _send_verification_mail(self, user: User) -> None:
        code = self.jwt_service.create_token(
            VERIFY_AUDIENCE,
            str(user.id),
            hours_to_millis(settings.verification_token_hours),
            {"email": user.email},
        )
        mail.send_verification_email(user.email, mail.verification_link(user.id, code), user.name)
        logger.debug(f"Verification mail to {user.email} queued")

    def resend_verification_mail(self, user: Optional[User]) -> None:
        ensure_found(user, "User not found")
        ensure_authority(user.has_permission(current_user(), "edit"), "Not authorized")
        validate(user.unverified, "id", "Already verified", code="id.already_verified").go()

        self._send_verification_mail(user)

    def verify_user(self, user_id: Any, code: str) -> UserDto:
        """Mark the user verified if ``code`` is their verification token."""
        user = ensure_found(self.get_user(user_id), "User not found")
        validate(user.unverified, "id", "Already verified", code="id.already_verified").go()

        claims = self.jwt_service.parse_token(
            code, VERIFY_AUDIENCE, user.credentials_updated_millis
        )
        ensure_credentials(
            claims.get("sub") == str(user.id) and claims.get("email") == user.email,
            "Wrong verification code",
        )

        user.remove_role(Role.UNVERIFIED)
        user.credentials_updated()
        self._commit(user)

        logger.info(f"Email verified: {user.email}")
        return self._login(user)

    # ==================== PASSWORDS ====================

    def forgot_password(self, email: str) -> None:
        """Mail a password reset link to the user with ``email``."""
        user = ensure_found(get_user_by_email(self.session, email), "User not found")

        code = self.jwt_service.create_token(
            FORGOT_PASSWORD_AUDIENCE,
            user.email,
            hours_to_millis(settings.reset_token_hours),
        )
        mail.send_password_reset_email(user.email, mail.password_reset_link(code), user.name)

    def reset_password(self, code: str, new_password: str) -> UserDto:
        """Set a new password using a forgot-password code, then log the user in."""
        validate(
            new_password and 6 <= len(new_password) <= 50,
            "new_password",
            "Password must be between 6 and 50 characters",
            code="new_password.size",
        ).go()

        claims = self.jwt_service.parse_token(code, FORGOT_PASSWORD_AUDIENCE)
        user = ensure_found(get_user_by_email(self.session, claims.get("sub")), "User not found")
        ensure_issued_after(claims, user.credentials_updated_millis)

        user.password_hash = hash_password(new_password)
        user.credentials_updated()
        self._commit(user)

        logger.info(f"Password reset for: {user.email}")
        return self._login(user)

    def change_password(self, user: Optional[User], form: ChangePasswordForm) -> str:
        """
        Change the password of ``user``.

        Returns the username a new auth token should be issued for.
        """
        ensure_found(user, "User not found")
        logged_in = self._require_current_user()
        ensure_authority(user.has_permission(logged_in, "edit"), "Not authorized")

        errors = MultiErrorException()
        errors.validate(
            verify_password(form.old_password, user.password_hash),
            "old_password",
            "Wrong password",
            code="old_password.wrong",
        )
        errors.validate(
            form.password == form.retype_password,
            "retype_password",
            "Passwords do not match",
            code="retype_password.mismatch",
        )
        errors.go()

        user.password_hash = hash_password(form.password)
        user.credentials_updated()
        self._commit(user)

        logger.info(f"Password changed for: {user.email}")
        return logged_in.username

    # ==================== FETCH & UPDATE ====================

    def process_user(self, user: Optional[User]) -> UserView:
        """The public view of ``user``; confidential fields only for editors."""
        ensure_found(user, "User not found")

        view = UserView.from_user(user)
        if not user.has_permission(current_user(), "edit"):
            view.hide_confidential_fields()
        return view

    def fetch_user_by_email(self, email: str) -> UserView:
        user = ensure_found(get_user_by_email(self.session, email), "User not found")
        return self.process_user(user)

    def update_user(self, user: Optional[User], updated: UserUpdate) -> UserDto:
        """
        Apply editable fields from ``updated`` to ``user``.

        Name is editable by the user and admins; roles only by a good admin
        editing someone else. Returns the current user.
        """
        ensure_found(user, "User not found")
        logged_in = self._require_current_user()
        ensure_authority(user.has_permission(logged_in, "edit"), "Not authorized")

        if updated.version != user.version:
            raise VersionException("User", user.id)

        errors = MultiErrorException()
        name = (updated.name or "").strip()
        errors.validate(name, "name", "Name required", code="name.blank")
        errors.validate(len(name) <= 50, "name", "Name too long", code="name.size")
        unknown_roles = set(updated.roles) - {r.value for r in Role}
        errors.validate(not unknown_roles, "roles", f"Unknown roles: {sorted(unknown_roles)}", code="roles.unknown")
        errors.go()

        user.name = name

        if logged_in.good_admin and logged_in.id != user.id:
            if set(updated.roles) != user.role_set:
                user.set_roles(updated.roles)
                user.credentials_updated()

        self._commit(user)
        logger.info(f"Updated user: {user.email}")

        if logged_in.id == user.id:
            return self._login(user)
        return logged_in

    # ==================== EMAIL CHANGE ====================

    def request_email_change(self, user: Optional[User], data: EmailChangeInput) -> None:
        """Store a pending new email and mail a confirmation code to it."""
        ensure_found(user, "User not found")
        logged_in = self._require_current_user()
        ensure_authority(user.has_permission(logged_in, "edit"), "Not authorized")

        acting = ensure_found(self.get_user(logged_in.id), "User not found")
        new_email = data.new_email.strip().lower()

        errors = MultiErrorException()
        errors.validate(
            verify_password(data.password, acting.password_hash),
            "password",
            "Wrong password",
            code="password.wrong",
        )
        errors.validate(
            get_user_by_email(self.session, new_email) is None,
            "new_email",
            "Email already used",
            code="email.duplicate",
        )
        errors.go()

        user.new_email = new_email
        self._commit(user)

        code = self.jwt_service.create_token(
            CHANGE_EMAIL_AUDIENCE,
            str(user.id),
            hours_to_millis(settings.change_email_token_hours),
            {"new_email": new_email},
        )
        mail.send_change_email_email(new_email, mail.change_email_link(user.id, code), user.name)
        logger.info(f"Email change requested for: {user.email}")

    def change_email(self, user_id: Any, code: str) -> UserDto:
        """Confirm a pending email change for the current user."""
        logged_in = self._require_current_user()
        ensure_authority(str(logged_in.id) == str(user_id), "Not authorized")

        user = ensure_found(self.get_user(user_id), "User not found")
        validate(user.new_email, "id", "No pending email change", code="id.no_new_email").go()

        claims = self.jwt_service.parse_token(
            code, CHANGE_EMAIL_AUDIENCE, user.credentials_updated_millis
        )
        ensure_credentials(
            claims.get("sub") == str(user.id) and claims.get("new_email") == user.new_email,
            "Wrong change email code",
        )
        self._ensure_email_unused(user.new_email, "id")

        old_email = user.email
        user.email = user.new_email
        user.new_email = None
        user.credentials_updated()
        # Confirming the new address proves ownership
        user.remove_role(Role.UNVERIFIED)
        self._commit(user, email_field="id")

        logger.info(f"Email changed: {old_email} -> {user.email}")
        return self._login(user)

    # ==================== TOKENS ====================

    def login(self, email: str, password: str) -> UserDto:
        user = get_user_by_email(self.session, email)
        ensure_credentials(
            user is not None and verify_password(password, user.password_hash),
            "Bad credentials",
        )
        ensure_credentials(not user.blocked, "Account blocked")

        logger.info(f"Logged in: {user.email}")
        return self._login(user)

    def fetch_new_token(self, expiration_millis: Optional[int], username: Optional[str]) -> str:
        """
        A new auth token, for session sliding or (admins only) switching user.
        """
        logged_in = self._require_current_user()
        username = username or logged_in.username
        ensure_authority(
            logged_in.good_admin or username == logged_in.username,
            "Only admins can switch user",
        )

        token = self.jwt_service.create_token(
            AUTH_AUDIENCE, username, expiration_millis or settings.jwt_expiration_millis
        )
        return TOKEN_PREFIX + token

    # ==================== STARTUP ====================

    def create_first_admin(self) -> Optional[User]:
        """Create the configured admin user unless it already exists."""
        username = settings.admin_username.strip().lower()
        if get_user_by_email(self.session, username) is not None:
            return None

        user = User(
            email=username,
            password_hash=hash_password(settings.admin_password),
            name="Administrator",
        )
        user.set_roles([Role.ADMIN.value])
        user.credentials_updated()
        self.session.add(user)
        self._commit(user)

        logger.info(f"Created first admin: {username}")
        return user


def authenticate_token(session: Session, token: Optional[str]) -> Optional[UserDto]:
    """
    Resolve the user behind a bearer token.

    Returns None when no token is given; raises
    UnauthorizedException when the token is invalid, obsolete or its user
    is gone.
    """
    if not token:
        return None

    claims = get_jwt_service().parse_token(token, AUTH_AUDIENCE)

    user = get_user_by_email(session, claims.get("sub"))
    if user is None:
        raise UnauthorizedException("User not found")
    ensure_issued_after(claims, user.credentials_updated_millis)

    return user.to_dto()
