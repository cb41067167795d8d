"""
Authentication module for the accounts service.

Provides:
- Password hashing and verification
- JWT creation and validation
- The user management service
- Verification, password reset and email change mails
"""

from .service import (
    UserService,
    authenticate_token,
    hash_password,
    verify_password,
)
from .tokens import JwtService, get_jwt_service

from .email import send_verification_email, send_password_reset_email, send_change_email_email

__all__ = [
    'UserService',
    'authenticate_token',
    'hash_password',
    'verify_password',
    'JwtService',
    'get_jwt_service',
    'send_verification_email',
    'send_password_reset_email',
    'send_change_email_email',
]
