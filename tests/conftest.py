from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from drivepipe.ai.oracle import Priority
from drivepipe.config import PipelineConfig
from drivepipe.store.blobs import LocalBlobStore
from drivepipe.store.memory import InMemoryDocumentStore

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
SIGNING_SECRET = "test-signing-secret"


def fixed_clock() -> datetime:
    return FIXED_NOW


class FakeOracle:
    """Records prompts and replies with queued or default responses."""

    def __init__(self, *responses: dict[str, Any], default: dict[str, Any] | None = None) -> None:
        self._responses = list(responses)
        self._default = default if default is not None else {}
        self.calls: list[tuple[str, Priority | None]] = []
        self.light_calls: list[tuple[str, int]] = []

    async def invoke(self, prompt: str, priority: Priority = Priority.LOW) -> dict[str, Any]:
        self.calls.append((prompt, priority))
        if self._responses:
            return self._responses.pop(0)
        return dict(self._default)

    async def invoke_light(self, prompt: str, *, max_output_tokens: int = 2048) -> dict[str, Any]:
        self.light_calls.append((prompt, max_output_tokens))
        if self._responses:
            return self._responses.pop(0)
        return dict(self._default)


class FailingOracle:
    def __init__(self, message: str = "oracle unavailable") -> None:
        self.message = message
        self.calls = 0

    async def invoke(self, prompt: str, priority: Priority = Priority.LOW) -> dict[str, Any]:
        self.calls += 1
        raise RuntimeError(self.message)

    async def invoke_light(self, prompt: str, *, max_output_tokens: int = 2048) -> dict[str, Any]:
        self.calls += 1
        raise RuntimeError(self.message)


class FakeResponse:
    def __init__(self, status: int, text: str) -> None:
        self.status = status
        self._text = text

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> FakeResponse:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


class FakeHttpSession:
    """Stands in for ``aiohttp.ClientSession``; answers every GET alike."""

    def __init__(self, status: int = 200, body: Any = None, *, error: Exception | None = None) -> None:
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self._status = status
        self._text = body if isinstance(body, str) else json.dumps(body)
        self._error = error

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append((url, kwargs))
        if self._error is not None:
            raise self._error
        return FakeResponse(self._status, self._text)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(clock=fixed_clock)


@pytest.fixture
def blobs(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs", signing_secret=SIGNING_SECRET)


@pytest.fixture
def config(tmp_path: Path) -> PipelineConfig:
    return PipelineConfig(
        oracle_api_key="test-key",
        blob_root=str(tmp_path / "blobs"),
        signing_secret=SIGNING_SECRET,
    )
