"""
User model, database session management and auditing.
"""

from .dto import UserDto
from .models import Role, User, get_db, get_session, init_db

__all__ = [
    'UserDto',
    'Role',
    'User',
    'get_db',
    'get_session',
    'init_db',
]
