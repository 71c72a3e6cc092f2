"""FastAPI API endpoints under /api.

Endpoint groups: health, script generation, credit top-up. Only POST is
served on /generate and /credit/add; any other method answers 405 with a
machine-readable error body.
"""

from fastapi import APIRouter

from .credit import router as credit_router
from .generate import router as generate_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(generate_router)
router.include_router(credit_router)
