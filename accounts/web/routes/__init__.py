"""
Route modules for the accounts API.

This package contains modular route definitions split by functionality.
"""

from .system import router as system_router
from .users import router as users_router

__all__ = [
    'system_router',
    'users_router',
]
