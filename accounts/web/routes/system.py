"""
System/health API routes.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from accounts import __version__
from accounts.auth.email import is_email_configured
from accounts.config import settings
from accounts.web.schemas import success_response

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return JSONResponse(success_response(data={"status": "healthy"}, message="Service is running"))


@router.get("/api/status")
async def api_status():
    """Get API status including mail availability."""
    return JSONResponse(
        success_response(
            data={
                "version": __version__,
                "api_prefix": settings.api_prefix,
                "email_configured": is_email_configured(),
            }
        )
    )
