from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from detective_d.config import Settings
from detective_d.core.errors import ModelTransportError
from detective_d.core.ports.model import InvocationResult, TokenUsage
from detective_d.core.prompt import ModelParameters

logger = logging.getLogger(__name__)

COMPLETIONS_PATH = "/chat/completions"


def _usage_from(data: Any) -> TokenUsage | None:
    if not isinstance(data, dict):
        return None
    return TokenUsage(
        prompt_tokens=int(data.get("prompt_tokens") or 0),
        completion_tokens=int(data.get("completion_tokens") or 0),
        total_tokens=int(data.get("total_tokens") or 0),
    )


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    status = response.status_code
    raise ModelTransportError(
        f"Model API error {status}: {response.text[:200]}",
        status_code=status,
        retryable=status == 429 or status >= 500,
    )


def retry_delay(attempt: int, base: float = 0.5, ceiling: float = 1.5) -> float:
    return min(base * 2**attempt, ceiling)


class ChatCompletionsInvoker:
    """Call an OpenAI-compatible chat completions endpoint with timeout and retry.

    Implements the ``ModelClient`` protocol. Failures never propagate: they come
    back as an unsuccessful ``InvocationResult``.
    """

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=settings.llm_base_url, timeout=settings.request_timeout)
        self._sleep = sleep

    @property
    def provider(self) -> str:
        return self._settings.llm_provider

    @property
    def model(self) -> str:
        return self._settings.llm_model

    @property
    def configured(self) -> bool:
        return bool(self._settings.llm_api_key)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def complete(self, prompt: str, *, max_tokens: int, stream: bool = False) -> InvocationResult:
        started = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        if not self.configured:
            return InvocationResult(success=False, error="Model API key is not configured")

        params = ModelParameters(max_tokens=max_tokens)
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
            "top_p": params.top_p,
            "stream": stream,
        }
        timeout = self._settings.request_timeout
        attempt = 0
        while True:
            try:
                text, usage = await asyncio.wait_for(self._send(payload, stream), timeout=timeout)
            except TimeoutError:
                error = ModelTransportError(f"Request timed out after {timeout:g}s", retryable=True)
            except ModelTransportError as exc:
                error = exc
            else:
                logger.debug("Model call succeeded (retries=%d)", attempt)
                return InvocationResult(success=True, text=text, usage=usage, retries=attempt, latency_ms=elapsed_ms())

            if not error.retryable or attempt >= self._settings.max_retries:
                logger.warning("Model call failed after %d retries: %s", attempt, error)
                return InvocationResult(
                    success=False,
                    error=str(error),
                    retries=attempt,
                    latency_ms=elapsed_ms(),
                    status_code=error.status_code,
                )
            delay = retry_delay(attempt, self._settings.retry_base_delay, self._settings.retry_max_delay)
            logger.warning("Model call failed (%s); retrying in %.2fs", error, delay)
            await self._sleep(delay)
            attempt += 1

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._settings.llm_api_key}", "Content-Type": "application/json"}

    async def _send(self, payload: dict[str, Any], stream: bool) -> tuple[str, TokenUsage | None]:
        try:
            if stream:
                return await self._send_streaming(payload)
            return await self._send_buffered(payload)
        except httpx.TimeoutException as exc:
            raise ModelTransportError(f"Request timed out: {exc}", retryable=True) from exc
        except httpx.TransportError as exc:
            raise ModelTransportError(f"Network error: {exc}", retryable=True) from exc

    async def _send_buffered(self, payload: dict[str, Any]) -> tuple[str, TokenUsage | None]:
        response = await self._client.post(COMPLETIONS_PATH, json=payload, headers=self._headers())
        _raise_for_status(response)
        try:
            data = response.json()
            text = data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ModelTransportError(f"Unexpected completion body: {exc}") from exc
        return text, _usage_from(data.get("usage"))

    async def _send_streaming(self, payload: dict[str, Any]) -> tuple[str, TokenUsage | None]:
        fragments: list[str] = []
        usage: TokenUsage | None = None
        async with self._client.stream("POST", COMPLETIONS_PATH, json=payload, headers=self._headers()) as response:
            if not response.is_success:
                await response.aread()
                _raise_for_status(response)
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[len("data:") :].strip()
                if data == "[DONE]":
                    break
                try:
                    chunk = json.loads(data)
                except ValueError:
                    logger.debug("Skipping malformed stream chunk: %.80s", data)
                    continue
                if not isinstance(chunk, dict):
                    continue
                choices = chunk.get("choices") or [{}]
                delta = choices[0].get("delta") if isinstance(choices[0], dict) else None
                fragment = delta.get("content") if isinstance(delta, dict) else None
                if fragment:
                    fragments.append(fragment)
                usage = _usage_from(chunk.get("usage") or (chunk.get("x_groq") or {}).get("usage")) or usage
        return "".join(fragments), usage
