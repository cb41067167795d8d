"""
Configuration management for the accounts service.

Loads settings from config.yaml and environment variables.
"""

import logging
import os
import secrets
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_FILE = PROJECT_ROOT / "config.yaml"
DATA_DIR = PROJECT_ROOT / "data"

# Ensure directories exist
DATA_DIR.mkdir(exist_ok=True)

# Ten days, in milliseconds
DEFAULT_JWT_EXPIRATION_MILLIS = 864000000


def load_config() -> dict[str, Any]:
    """Load configuration from YAML file."""
    if CONFIG_FILE.exists():
        with open(CONFIG_FILE, "r") as f:
            return yaml.safe_load(f) or {}
    return get_default_config()


def get_default_config() -> dict[str, Any]:
    """Return default configuration if config.yaml doesn't exist."""
    return {
        "app_url": "http://localhost:8000",
        "api_prefix": "/api/core",
        "jwt": {
            "expiration_millis": DEFAULT_JWT_EXPIRATION_MILLIS,
            "auth_header": "X-Authorization",
        },
        "tokens": {
            "verification_hours": 24,
            "reset_hours": 1,
            "change_email_hours": 24,
        },
        "admin": {
            "username": "admin@example.com",
            "password": "admin!",
        },
        "shared": {
            "app_name": "Accounts",
        },
    }


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to YAML file."""
    with open(CONFIG_FILE, "w") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)


class Settings:
    """Application settings singleton."""

    _instance = None
    _config: dict[str, Any] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._config = load_config()
        return cls._instance

    @property
    def app_url(self) -> str:
        return os.getenv("APP_URL") or self.get("app_url", "http://localhost:8000")

    @property
    def api_prefix(self) -> str:
        return self.get("api_prefix", "/api/core").rstrip("/")

    @property
    def jwt_secret(self) -> str:
        env_secret = os.getenv("JWT_SECRET")
        if env_secret:
            return env_secret
        secret = self.get("jwt.secret")
        if not secret:
            # Tokens will not survive a restart
            logger.warning("JWT_SECRET not set - generating a random secret for this process")
            secret = secrets.token_hex(32)
            self._config.setdefault("jwt", {})["secret"] = secret
        return secret

    @property
    def jwt_expiration_millis(self) -> int:
        return int(self.get("jwt.expiration_millis", DEFAULT_JWT_EXPIRATION_MILLIS))

    @property
    def auth_header(self) -> str:
        return self.get("jwt.auth_header", "X-Authorization")

    @property
    def verification_token_hours(self) -> int:
        return int(self.get("tokens.verification_hours", 24))

    @property
    def reset_token_hours(self) -> int:
        return int(self.get("tokens.reset_hours", 1))

    @property
    def change_email_token_hours(self) -> int:
        return int(self.get("tokens.change_email_hours", 24))

    @property
    def admin_username(self) -> str:
        return os.getenv("ADMIN_USERNAME") or self.get("admin.username", "admin@example.com")

    @property
    def admin_password(self) -> str:
        return os.getenv("ADMIN_PASSWORD") or self.get("admin.password", "admin!")

    @property
    def shared(self) -> dict[str, Any]:
        """Properties published to clients by the context endpoint."""
        return dict(self.get("shared", {}) or {})

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value by dot-notation key."""
        keys = key.split(".")
        value = self._config
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
        return value if value is not None else default


# Global settings instance
settings = Settings()


def get_database_url() -> str:
    """Get database URL from environment or default."""
    default_db = f"sqlite:///{DATA_DIR}/accounts.db"
    return os.getenv("DATABASE_URL", default_db)


def get_smtp_settings() -> dict[str, Any]:
    """
    Get SMTP settings from environment.

    Sending is disabled unless both SMTP_USER and SMTP_PASSWORD are set.
    """
    user = os.getenv("SMTP_USER", "")
    return {
        "host": os.getenv("SMTP_HOST", "smtp.gmail.com"),
        "port": int(os.getenv("SMTP_PORT", "587")),
        "user": user,
        "password": os.getenv("SMTP_PASSWORD", ""),
        "from": os.getenv("SMTP_FROM", user),
        "use_tls": os.getenv("SMTP_USE_TLS", "true").lower() == "true",
    }
