"""
Accounts

User management and authentication service: signup, login tokens, email
verification, password reset/change and email change over a REST API.
"""

__version__ = "0.1.0"
