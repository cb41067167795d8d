"""
Shared FastAPI dependencies for authentication and user lookup.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from accounts.auth.service import UserService, authenticate_token
from accounts.users.auditing import login, logout
from accounts.users.dto import UserDto
from accounts.users.models import User, get_db

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def authenticate(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[UserDto]:
    """
    Establish the current user of the request from its bearer token.

    Anonymous requests get ``None``. An invalid or obsolete token is
    rejected with 401 rather than silently treated as anonymous.
    """
    token = credentials.credentials if credentials else None
    user = authenticate_token(db, token)
    if user is None:
        logout()
    else:
        login(user)
    return user


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


async def get_path_user(user_id: int, db: Session = Depends(get_db)) -> Optional[User]:
    """
    The user addressed by the ``{user_id}`` path variable, or None.

    Missing users are reported by the service, which raises 404.
    """
    return db.get(User, user_id)
