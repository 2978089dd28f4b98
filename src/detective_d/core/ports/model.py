from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of one model call, including retries. Never raised, always returned."""

    success: bool
    text: str = ""
    error: str | None = None
    retries: int = 0
    latency_ms: int = 0
    usage: TokenUsage | None = None
    status_code: int | None = None


class ModelClient(Protocol):
    @property
    def provider(self) -> str: ...

    @property
    def model(self) -> str: ...

    @property
    def configured(self) -> bool: ...

    async def complete(self, prompt: str, *, max_tokens: int, stream: bool = False) -> InvocationResult: ...

    async def aclose(self) -> None: ...
