"""Shared fixtures and helpers for tests."""

import dataclasses
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from detective_d.cache import InMemoryCacheBackend, ResultCache
from detective_d.config import Settings
from detective_d.core.pipeline import Analyzer
from detective_d.core.ports.model import InvocationResult, TokenUsage
from detective_d.llm.invoker import ChatCompletionsInvoker

_REPO_ROOT = Path(__file__).parent.parent

TEST_BASE_URL = "https://llm.test/openai/v1"


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# Shared unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(llm_api_key="test-key", llm_base_url=TEST_BASE_URL)


@pytest.fixture
def memory_backend() -> InMemoryCacheBackend:
    return InMemoryCacheBackend()


@pytest.fixture
def result_cache(memory_backend: InMemoryCacheBackend) -> ResultCache:
    return ResultCache(memory_backend, model_version="test-model-v1", rag_version="1.0.0")


@pytest.fixture
def completion() -> Callable[[str], httpx.Response]:
    """Build a non-streaming chat completion response carrying ``text``."""

    def _build(text: str) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "choices": [{"message": {"role": "assistant", "content": text}}],
                "usage": {"prompt_tokens": 120, "completion_tokens": 30, "total_tokens": 150},
            },
        )

    return _build


@pytest.fixture
def make_invoker(settings: Settings) -> Callable[..., ChatCompletionsInvoker]:
    """Build an invoker whose HTTP traffic goes to ``handler`` and whose backoff does not sleep."""

    def _build(handler: Callable[[httpx.Request], httpx.Response], **overrides: Any) -> ChatCompletionsInvoker:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=TEST_BASE_URL)

        async def _no_sleep(_delay: float) -> None:
            return None

        effective = dataclasses.replace(settings, **overrides)
        return ChatCompletionsInvoker(effective, client=client, sleep=_no_sleep)

    return _build


def sse_body(fragments: list[str], *, done: bool = True) -> bytes:
    lines = [f"data: {json.dumps({'choices': [{'delta': {'content': fragment}}]})}\n\n" for fragment in fragments]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


@pytest.fixture
def stream_response() -> Callable[..., httpx.Response]:
    def _build(fragments: list[str], *, done: bool = True) -> httpx.Response:
        return httpx.Response(
            200, content=sse_body(fragments, done=done), headers={"content-type": "text/event-stream"}
        )

    return _build


class FakeModel:
    """``ModelClient`` that replays queued results and records every prompt."""

    provider = "fake"
    model = "fake-model"

    def __init__(self) -> None:
        self.results: list[InvocationResult] = []
        self.prompts: list[str] = []
        self.configured = True
        self.closed = False

    def reply(self, text: str) -> None:
        self.results.append(InvocationResult(success=True, text=text, usage=TokenUsage(total_tokens=42), latency_ms=5))

    def fail(self, error: str = "Model API error 500: boom") -> None:
        self.results.append(InvocationResult(success=False, error=error, retries=1, status_code=500))

    async def complete(self, prompt: str, *, max_tokens: int, stream: bool = False) -> InvocationResult:
        self.prompts.append(prompt)
        return self.results.pop(0)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_model() -> FakeModel:
    return FakeModel()


@pytest.fixture
def analyzer(fake_model: FakeModel, result_cache: ResultCache) -> Analyzer:
    return Analyzer(fake_model, result_cache)
