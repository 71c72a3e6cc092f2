"""Script generation endpoint."""

import logging

from fastapi import APIRouter, Request

from manzai.errors import ScriptError
from manzai.models import parse_request

from .errors import OTHER_METHODS, http_error, method_not_allowed, read_json_body

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/generate")
async def generate(request: Request):
    """Generate one script. Usage is charged only when a script is returned."""
    orchestrator = request.app.state.orchestrator
    payload = await read_json_body(request)
    try:
        gen_request = parse_request(payload, orchestrator.settings)
        result = await orchestrator.run(gen_request)
    except ScriptError as e:
        if e.status_code >= 500:
            logger.error("generate failed: %s", e)
        raise http_error(e, request)
    return result.model_dump(by_alias=True)


@router.api_route("/generate", methods=OTHER_METHODS, include_in_schema=False)
async def generate_wrong_method():
    raise method_not_allowed()
