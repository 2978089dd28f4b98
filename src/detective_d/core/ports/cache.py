from typing import Protocol


class CacheBackend(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set_ex(self, key: str, ttl_seconds: int, value: str) -> None: ...

    async def delete(self, *keys: str) -> int: ...

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int: ...

    async def hgetall(self, key: str) -> dict[str, str]: ...

    async def keys(self, prefix: str) -> list[str]: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...
