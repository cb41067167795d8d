"""
Pydantic schemas for API request/response validation.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# ==================== REQUEST MODELS ====================


class SignupInput(BaseModel):
    """User signup request."""

    email: EmailStr
    password: str = Field(..., min_length=6, max_length=50)
    name: str = Field(..., min_length=1, max_length=50)


class ChangePasswordForm(BaseModel):
    """Change password request."""

    old_password: str
    password: str = Field(..., min_length=6, max_length=50)
    retype_password: str


class EmailChangeInput(BaseModel):
    """Request for changing the email; ``password`` is the caller's own."""

    new_email: EmailStr
    password: str


class UserUpdate(BaseModel):
    """
    Editable user fields, read from the patched user document.

    Everything else in the document (id, email, flags) is ignored.
    """

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    version: int


# ==================== RESPONSE MODELS ====================


class UserView(BaseModel):
    """A user as returned by the fetch endpoints."""

    id: int
    email: Optional[str] = None
    new_email: Optional[str] = None
    name: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    version: int

    unverified: bool = False
    blocked: bool = False
    admin: bool = False
    good_user: bool = False
    good_admin: bool = False

    @classmethod
    def from_user(cls, user) -> "UserView":
        return cls(
            id=user.id,
            email=user.email,
            new_email=user.new_email,
            name=user.name,
            roles=sorted(user.role_set),
            version=user.version,
            unverified=user.unverified,
            blocked=user.blocked,
            admin=user.admin,
            good_user=user.good_user,
            good_admin=user.good_admin,
        )

    def hide_confidential_fields(self) -> "UserView":
        self.email = None
        self.new_email = None
        return self


class FieldErrorModel(BaseModel):
    field: Optional[str] = None
    code: Optional[str] = None
    message: str


class ErrorResponse(BaseModel):
    """Body of every error response."""

    exception_id: str
    error: str
    message: str
    status: int
    errors: List[FieldErrorModel] = Field(default_factory=list)


class TokenResponse(BaseModel):
    token: str


# ==================== HELPER FUNCTIONS ====================


def success_response(data: Any = None, message: str = None) -> dict:
    """Create a standardized success response dict."""
    response = {"success": True}
    if data is not None:
        response["data"] = data
    if message:
        response["message"] = message
    return response
