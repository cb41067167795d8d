"""
Lightweight user representation.

A ``UserDto`` is what gets stored as the request's current user and what
the API hands back after signup, login and similar operations. It never
contains the password hash.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, Field


class UserDto(BaseModel):
    """The logged-in user, detached from any database session."""

    id: int
    username: str
    name: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    tag: dict[str, Any] = Field(default_factory=dict)

    unverified: bool = False
    blocked: bool = False
    admin: bool = False
    good_user: bool = False
    good_admin: bool = False
