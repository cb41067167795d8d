"""
FastAPI web server for the accounts service.
"""

import logging

from fastapi import FastAPI

from accounts import __version__
from accounts.auth.service import UserService
from accounts.config import settings
from accounts.logging_utils import install_log_safety
from accounts.users.models import get_session, init_db
from accounts.web.errors import register_exception_handlers
from accounts.web.routes import system_router, users_router

logger = logging.getLogger(__name__)


def create_first_admin() -> None:
    session = get_session()
    try:
        UserService(session).create_first_admin()
    finally:
        session.close()


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    try:
        install_log_safety()
    except Exception:
        # Logging should never prevent app startup.
        pass

    app = FastAPI(
        title="Accounts",
        description="User management: signup, login tokens, verification, password and email changes",
        version=__version__,
    )

    register_exception_handlers(app)
    app.include_router(system_router)
    app.include_router(users_router, prefix=settings.api_prefix)

    # Initialize database on startup
    @app.on_event("startup")
    async def startup():
        init_db()
        create_first_admin()

    logger.info("Created")
    return app


app = create_app()


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the web server."""
    import uvicorn

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
