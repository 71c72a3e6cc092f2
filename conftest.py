import random

import pytest

from manzai.config import Settings
from manzai.errors import GenerationBackendError
from manzai.ledger import JsonUsageStore
from manzai.models import InstructionPayload


class StubLLM:
    """Return canned responses in order and record every call.

    A response that is an exception instance is raised instead of returned.
    Calls past the end of the list return "".
    """

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.calls: list[tuple[str, InstructionPayload]] = []

    async def __call__(self, stage: str, payload: InstructionPayload) -> str:
        self.calls.append((stage, payload))
        idx = len(self.calls) - 1
        if idx >= len(self.responses):
            return ""
        response = self.responses[idx]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def stages(self) -> list[str]:
        return [stage for stage, _ in self.calls]


class FailingStore:
    """Usage store whose reads and/or writes blow up."""

    def __init__(self, inner=None, fail_get=False, fail_upsert=False):
        self.inner = inner
        self.fail_get = fail_get
        self.fail_upsert = fail_upsert

    def get(self, user_key):
        if self.fail_get:
            raise OSError("store offline")
        return self.inner.get(user_key) if self.inner else None

    def upsert(self, user_key, record):
        if self.fail_upsert:
            raise OSError("store offline")
        if self.inner:
            self.inner.upsert(user_key, record)


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path, api_key="test-key")


@pytest.fixture
def store(tmp_path):
    return JsonUsageStore(tmp_path)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def backend_error():
    return GenerationBackendError("upstream down", status_hint=502, provider_detail="boom")


@pytest.fixture
def make_llm():
    """Factory for StubLLM: `make_llm(["response", LLMError(...)])`."""
    return StubLLM


@pytest.fixture
def make_failing_store():
    return FailingStore
