"""LLM client — HTTP connection to a text-generation backend.

The pipeline injects an LLM callable matching the protocol:

    async def __call__(self, stage: str, payload: InstructionPayload) -> str: ...

`stage` identifies which pipeline step is calling ("script" or
"continuation"). The implementation may use it for logging or routing;
the simplest implementation ignores it.

Two implementations are provided:

    HttpLLM   — real HTTP client, supports OpenAI-compatible chat and
                 KoboldCpp backends. Selected by provider_format.
    EchoLLM   — returns the user instruction back unchanged. Useful for
                 smoke-testing the pipeline wiring without a running model.

Production code constructs an HttpLLM from Settings and passes it to the
orchestrator. Tests use StubLLM (defined in conftest.py) instead.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from manzai.config import ProviderFormat, Settings
from manzai.errors import GenerationBackendError
from manzai.models import InstructionPayload

logger = logging.getLogger(__name__)

_DETAIL_LIMIT = 2000


def _first(items: object) -> dict | None:
    """First element of a JSON list when it is an object."""
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return None


# ---------------------------------------------------------------------------
# Protocol — every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(self, stage: str, payload: InstructionPayload) -> str: ...


# ---------------------------------------------------------------------------
# LLMError — raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(GenerationBackendError):
    """Raised when the LLM backend cannot be reached or returns an error."""


# ---------------------------------------------------------------------------
# HttpLLM — connects to a real backend
# ---------------------------------------------------------------------------

class HttpLLM:
    """Async HTTP client for text-generation backends.

    Supported formats:
      "openai"     — POST /v1/chat/completions
                     {"model", "messages": [system, user], "max_tokens", "temperature"}
                     Response: {"choices": [{"message": {"content": "..."}}]}
      "koboldcpp"  — POST /api/v1/generate  {"prompt": system + user}
                     Response: {"results": [{"text": "..."}]}

    Args:
        provider_url:    Base URL of the backend, e.g. "https://api.openai.com".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "openai".
        model:           Default model; a payload's own model wins.
        temperature:     Sampling temperature, openai format only.
        timeout:         HTTP timeout in seconds. Defaults to 60.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "openai",
        model: str = "",
        temperature: float = 0.8,
        timeout: float = 60.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._temperature = temperature
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpLLM:
        return cls(
            provider_url=settings.provider_url,
            api_key=settings.api_key,
            provider_format=settings.provider_format,
            model=settings.model,
            temperature=settings.temperature,
            timeout=settings.timeout,
        )

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, payload: InstructionPayload) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            body: dict = {
                "messages": [
                    {"role": "system", "content": payload.system},
                    {"role": "user", "content": payload.user},
                ],
                "temperature": self._temperature,
            }
            model = payload.model or self._model
            if model:
                body["model"] = model
            if payload.max_tokens:
                body["max_tokens"] = payload.max_tokens
            return url, body

        # koboldcpp
        url = f"{self._base_url}/api/v1/generate"
        body = {"prompt": f"{payload.system}\n\n{payload.user}"}
        if payload.max_tokens:
            body["max_length"] = payload.max_tokens
        return url, body

    def _parse_response(self, data: dict) -> str:
        """Extract the completion text from the response body."""
        if not isinstance(data, dict):
            raise LLMError("Unexpected response format: body is not a JSON object")
        if self._format == "openai":
            choice = _first(data.get("choices"))
            message = choice.get("message") if choice else None
            if not isinstance(message, dict) or not isinstance(message.get("content"), str):
                raise LLMError("Unexpected response format from OpenAI-compatible backend")
            return message["content"]

        result = _first(data.get("results"))
        if not result or not isinstance(result.get("text"), str):
            raise LLMError("Unexpected response format from KoboldCpp backend")
        return result["text"]

    async def __call__(self, stage: str, payload: InstructionPayload) -> str:
        url, body = self._build_request(payload)
        logger.debug(
            "llm call stage=%s url=%s prompt_len=%d", stage, url, len(payload.user)
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}",
                provider_detail=e.response.text[:_DETAIL_LIMIT],
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise LLMError(f"LLM backend request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned a non-JSON body") from e
        text = self._parse_response(data).strip()
        if not text:
            raise LLMError("LLM backend returned empty output")
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


# ---------------------------------------------------------------------------
# EchoLLM — returns the instruction unchanged; useful for pipeline smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the user instruction as-is. No network calls.

    Lets you verify that the pipeline wiring (prompt planning, normalisation,
    ledger commits) works end-to-end without a running model.
    """

    async def __call__(self, stage: str, payload: InstructionPayload) -> str:
        logger.debug("EchoLLM stage=%s prompt_len=%d", stage, len(payload.user))
        return payload.user
