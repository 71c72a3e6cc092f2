"""Shared request/response helpers for the API routes."""

from typing import Any

from fastapi import HTTPException, Request

from manzai.errors import ScriptError

# Methods answered with 405 on POST-only endpoints
OTHER_METHODS = ["GET", "PUT", "PATCH", "DELETE"]


def http_error(err: ScriptError, request: Request) -> HTTPException:
    """Convert a pipeline error; provider detail only outside production."""
    include_provider = not request.app.state.settings.production
    return HTTPException(err.status_code, err.to_detail(include_provider))


def method_not_allowed() -> HTTPException:
    return HTTPException(405, {"error": "method_not_allowed", "message": "Method Not Allowed"})


async def read_json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise HTTPException(400, {"error": "invalid_request", "message": "Body must be JSON"})
