"""
User management API routes.

Provides endpoints for:
- Signup, login and auth token refresh
- Email verification
- Forgot/reset/change password
- Email change
- Fetching and patching users

Handlers validate their inputs, delegate to ``UserService`` and shape the
response. Endpoints that (re)establish the current user return it and put
a fresh auth token into the response headers.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, Query, Request, Response

from accounts.auth.service import UserService
from accounts.auth.tokens import JwtService, get_jwt_service
from accounts.config import settings
from accounts.exceptions import ensure_found
from accounts.users.auditing import current_user, logout
from accounts.users.dto import UserDto
from accounts.users.models import User
from accounts.utils import apply_patch, parse_model
from accounts.web.dependencies import authenticate, get_path_user, get_user_service
from accounts.web.schemas import (
    ChangePasswordForm,
    EmailChangeInput,
    SignupInput,
    TokenResponse,
    UserUpdate,
    UserView,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"], dependencies=[Depends(authenticate)])


def user_with_token(response: Response, jwt_service: JwtService) -> UserDto:
    """The current user, with a new auth token for them in the response."""
    user = current_user()
    jwt_service.add_auth_header(response, user.username, settings.jwt_expiration_millis)
    return user


# ==================== CONTEXT & SESSION ====================


@router.get("/ping", status_code=204, response_class=Response)
async def ping():
    """A simple function for pinging this server."""
    logger.debug("Received a ping")


@router.get("/context")
async def get_context(
    response: Response,
    expiration_millis: Optional[int] = Query(None, alias="expirationMillis", gt=0),
    service: UserService = Depends(get_user_service),
):
    """
    Context properties needed at the client side, the current user, and an
    auth token as a response header.
    """
    logger.debug("Getting context")
    context = service.get_context(expiration_millis, response)
    logger.debug(f"Returning context: {context}")
    return context


@router.post("/login", response_model=UserDto)
async def do_login(
    response: Response,
    username: str = Form(...),
    password: str = Form(...),
    expiration_millis: Optional[int] = Form(None, alias="expirationMillis", gt=0),
    service: UserService = Depends(get_user_service),
    jwt_service: JwtService = Depends(get_jwt_service),
):
    """Log in with email and password; the auth token comes back as a header."""
    logger.debug(f"Logging in: {username}")
    user = service.login(username, password)
    jwt_service.add_auth_header(
        response, user.username, expiration_millis or settings.jwt_expiration_millis
    )
    return user


@router.post("/logout", status_code=204, response_class=Response)
async def do_logout():
    """Tokens are stateless; this only ends the current request's login."""
    logout()


# ==================== SIGNUP & VERIFICATION ====================


@router.post("/users", status_code=201, response_model=UserDto)
async def signup(
    data: SignupInput,
    response: Response,
    service: UserService = Depends(get_user_service),
    jwt_service: JwtService = Depends(get_jwt_service),
):
    """Sign up a user, and return them with an auth token header."""
    logger.debug(f"Signing up: {data.email}")
    service.signup(data)
    logger.debug(f"Signed up: {data.email}")

    return user_with_token(response, jwt_service)


@router.post("/users/{user_id}/resend-verification-mail", status_code=204, response_class=Response)
async def resend_verification_mail(
    user: Optional[User] = Depends(get_path_user),
    service: UserService = Depends(get_user_service),
):
    """Resend the verification mail."""
    logger.debug(f"Resending verification mail for: {user}")
    service.resend_verification_mail(user)
    logger.debug(f"Resent verification mail for: {user}")


@router.post("/users/{user_id}/verification", response_model=UserDto)
async def verify_user(
    user_id: int,
    response: Response,
    code: str = Query(...),
    service: UserService = Depends(get_user_service),
    jwt_service: JwtService = Depends(get_jwt_service),
):
    """Verify a user with the code from the verification mail."""
    logger.debug("Verifying user ...")
    service.verify_user(user_id, code)

    return user_with_token(response, jwt_service)


# ==================== PASSWORDS ====================


@router.post("/forgot-password", status_code=204, response_class=Response)
async def forgot_password(
    email: str = Form(...),
    service: UserService = Depends(get_user_service),
):
    """Mail a password reset link."""
    logger.debug(f"Received forgot password request for: {email}")
    service.forgot_password(email)


@router.post("/reset-password", response_model=UserDto)
async def reset_password(
    response: Response,
    code: str = Form(...),
    new_password: str = Form(..., alias="newPassword"),
    service: UserService = Depends(get_user_service),
    jwt_service: JwtService = Depends(get_jwt_service),
):
    """Reset the password after it is forgotten."""
    logger.debug("Resetting password ... ")
    service.reset_password(code, new_password)

    return user_with_token(response, jwt_service)


@router.post("/users/{user_id}/password", status_code=204, response_class=Response)
async def change_password(
    form: ChangePasswordForm,
    response: Response,
    user: Optional[User] = Depends(get_path_user),
    service: UserService = Depends(get_user_service),
    jwt_service: JwtService = Depends(get_jwt_service),
):
    """Change the password; a new auth token comes back as a header."""
    logger.debug("Changing password ... ")
    username = service.change_password(user, form)

    jwt_service.add_auth_header(response, username, settings.jwt_expiration_millis)


# ==================== FETCH & UPDATE ====================


@router.post("/users/fetch-by-email", response_model=UserView)
async def fetch_user_by_email(
    email: str = Form(...),
    service: UserService = Depends(get_user_service),
):
    """Fetch a user by email."""
    logger.debug(f"Fetching user by email: {email}")
    return service.fetch_user_by_email(email)


@router.get("/users/{user_id}", response_model=UserView)
async def fetch_user_by_id(
    user: Optional[User] = Depends(get_path_user),
    service: UserService = Depends(get_user_service),
):
    """Fetch a user by id."""
    logger.debug(f"Fetching user: {user}")
    return service.process_user(user)


@router.patch("/users/{user_id}", response_model=UserDto)
async def update_user(
    request: Request,
    response: Response,
    user: Optional[User] = Depends(get_path_user),
    service: UserService = Depends(get_user_service),
    jwt_service: JwtService = Depends(get_jwt_service),
):
    """Update a user with a JSON Patch (RFC 6902) document."""
    logger.debug("Updating user ... ")

    ensure_found(user, "User not found")
    patched = apply_patch(UserView.from_user(user).model_dump(), await request.body())
    user_dto = service.update_user(user, parse_model(UserUpdate, patched))

    # New token for the logged in user
    user_with_token(response, jwt_service)

    return user_dto


# ==================== EMAIL CHANGE ====================


@router.post("/users/{user_id}/email-change-request", status_code=204, response_class=Response)
async def request_email_change(
    data: EmailChangeInput,
    user: Optional[User] = Depends(get_path_user),
    service: UserService = Depends(get_user_service),
):
    """Request for changing the email."""
    logger.debug("Requesting email change ... ")
    service.request_email_change(user, data)


@router.post("/users/{user_id}/email", response_model=UserDto)
async def change_email(
    user_id: int,
    response: Response,
    code: str = Query(...),
    service: UserService = Depends(get_user_service),
    jwt_service: JwtService = Depends(get_jwt_service),
):
    """Change the email using the code mailed to the new address."""
    logger.debug("Changing email of user ...")
    service.change_email(user_id, code)

    # the logged in user with the new email
    return user_with_token(response, jwt_service)


# ==================== TOKENS ====================


@router.post("/fetch-new-auth-token", response_model=TokenResponse)
async def fetch_new_token(
    expiration_millis: Optional[int] = Form(None, alias="expirationMillis", gt=0),
    username: Optional[str] = Form(None),
    service: UserService = Depends(get_user_service),
):
    """Fetch a new token, for session sliding, switch user etc."""
    logger.debug("Fetching a new token ... ")
    return TokenResponse(token=service.fetch_new_token(expiration_millis, username))
