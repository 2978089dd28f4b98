from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends

from detective_d.cache.result_cache import ResultCache
from detective_d.config import Settings, get_settings
from detective_d.core.pipeline import Analyzer
from detective_d.llm.invoker import ChatCompletionsInvoker

_analyzer: Analyzer | None = None


def build_analyzer(settings: Settings | None = None) -> Analyzer:
    settings = settings or get_settings()
    return Analyzer(ChatCompletionsInvoker(settings), ResultCache.from_settings(settings))


async def start_analyzer() -> Analyzer:
    global _analyzer  # noqa: PLW0603
    if _analyzer is None:
        _analyzer = build_analyzer()
        await _analyzer.cache.start()
    return _analyzer


async def get_analyzer() -> AsyncIterator[Analyzer]:
    """Yield the shared ``Analyzer``, creating it lazily on first call."""
    yield await start_analyzer()


async def get_cache(analyzer: Analyzer = Depends(get_analyzer)) -> ResultCache:
    return analyzer.cache


def get_app_settings() -> Settings:
    return get_settings()


async def shutdown_analyzer() -> None:
    global _analyzer  # noqa: PLW0603
    if _analyzer is not None:
        await _analyzer.cache.stop()
        await _analyzer.model.aclose()
        _analyzer = None
