"""Paid credit top-up endpoint."""

from fastapi import APIRouter, Request

from manzai.errors import InvalidRequestError, ScriptError
from manzai.ledger import parse_credit_delta

from .errors import OTHER_METHODS, http_error, method_not_allowed, read_json_body

router = APIRouter()


@router.post("/credit/add")
async def add_credit(request: Request):
    """Add paid credits: delta is a number, numeric string or credit_1/10/100."""
    ledger = request.app.state.orchestrator.ledger
    body = await read_json_body(request)
    try:
        if not isinstance(body, dict):
            raise InvalidRequestError("bad params")
        user_key = body.get("userKey")
        if not isinstance(user_key, str) or not user_key.strip():
            raise InvalidRequestError("bad params")
        snapshot = ledger.add_credits(user_key.strip(), parse_credit_delta(body.get("delta")))
    except ScriptError as e:
        raise http_error(e, request)
    return {"ok": True, "paidCredits": snapshot.paid_credits}


@router.api_route("/credit/add", methods=OTHER_METHODS, include_in_schema=False)
async def add_credit_wrong_method():
    raise method_not_allowed()
