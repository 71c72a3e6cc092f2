"""Health check and public settings endpoints."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(request: Request):
    """Client-visible limits (no credentials)."""
    settings = request.app.state.settings
    return {
        "hardCap": settings.hard_cap,
        "defaultLength": settings.default_length,
        "lengthPolicy": settings.length_policy,
        "metering": settings.metering,
        "freeQuota": settings.free_quota,
    }
