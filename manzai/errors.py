"""Error taxonomy shared by the pipeline and the HTTP shell.

Every error carries a machine-readable `kind` and the HTTP status the shell
should answer with. Only the generation error carries upstream detail, and
that detail is rendered only outside production.
"""

from __future__ import annotations

from typing import Any


class ScriptError(Exception):
    """Base class for every failure the request pipeline reports."""

    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_detail(self, include_provider: bool = False) -> dict[str, Any]:
        return {"error": self.kind, "message": self.message}


class InvalidRequestError(ScriptError):
    """Missing or malformed request fields. Never touches the ledger."""

    kind = "invalid_request"
    status_code = 400


class QuotaExhaustedError(ScriptError):
    """The ledger gate denied the request. Never touches generation."""

    kind = "quota_exhausted"
    status_code = 403

    def __init__(self, message: str, usage: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.usage = usage

    def to_detail(self, include_provider: bool = False) -> dict[str, Any]:
        detail = super().to_detail(include_provider)
        detail["usage"] = self.usage
        return detail


class GenerationBackendError(ScriptError):
    """The text-generation backend failed or produced nothing usable."""

    kind = "generation_failed"

    def __init__(
        self,
        message: str,
        status_hint: int = 502,
        provider_detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_hint
        self.provider_detail = provider_detail

    @property
    def status_hint(self) -> int:
        return self.status_code

    def to_detail(self, include_provider: bool = False) -> dict[str, Any]:
        detail = super().to_detail(include_provider)
        if include_provider:
            detail["detail"] = {
                "statusHint": self.status_code,
                "message": self.message,
                "providerDetail": self.provider_detail,
            }
        return detail


class EmptyScriptError(ScriptError):
    """Post-processing left nothing but the closing line."""

    kind = "empty_script"
    status_code = 500


class LedgerError(ScriptError):
    """The usage store could not be read or written."""

    kind = "ledger_error"
    status_code = 500
