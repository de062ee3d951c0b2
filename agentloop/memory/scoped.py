from __future__ import annotations

from typing import Any
from urllib.parse import quote

from agentloop.memory.drivers import StorageDriver


def _part(value: str) -> str:
    # Percent-encode so an id containing ":" cannot spill into another segment.
    return quote(str(value), safe="")


def private_key(thread_id: str, agent_id: str, key: str) -> str:
    return f"private:{_part(thread_id)}:{_part(agent_id)}:{_part(key)}"


def shared_key(thread_id: str, key: str) -> str:
    return f"shared:{_part(thread_id)}:{_part(key)}"


def global_key(key: str) -> str:
    return f"global:{_part(key)}"


def thread_key(thread_id: str) -> str:
    return f"thread:{_part(thread_id)}"


class ScopedMemory:
    """Memory handle bound to one agent inside one thread.

    ``get``/``set``/``delete`` address the agent-private scope, the
    ``*_shared`` variants the scope every agent of the thread sees, and the
    ``*_global`` variants the scope shared by all threads. Each scope maps to
    its own physical keys in the driver, so identical key text never collides.
    """

    def __init__(self, driver: StorageDriver, thread_id: str, agent_id: str) -> None:
        self._driver = driver
        self.thread_id = thread_id
        self.agent_id = agent_id

    async def get(self, key: str, default: Any = None) -> Any:
        return await self._driver.get(private_key(self.thread_id, self.agent_id, key), default)

    async def set(self, key: str, value: Any) -> None:
        await self._driver.set(private_key(self.thread_id, self.agent_id, key), value)

    async def delete(self, key: str) -> None:
        await self._driver.delete(private_key(self.thread_id, self.agent_id, key))

    async def get_shared(self, key: str, default: Any = None) -> Any:
        return await self._driver.get(shared_key(self.thread_id, key), default)

    async def set_shared(self, key: str, value: Any) -> None:
        await self._driver.set(shared_key(self.thread_id, key), value)

    async def delete_shared(self, key: str) -> None:
        await self._driver.delete(shared_key(self.thread_id, key))

    async def get_global(self, key: str, default: Any = None) -> Any:
        return await self._driver.get(global_key(key), default)

    async def set_global(self, key: str, value: Any) -> None:
        await self._driver.set(global_key(key), value)

    async def delete_global(self, key: str) -> None:
        await self._driver.delete(global_key(key))

    def __repr__(self) -> str:
        return f"ScopedMemory(thread_id={self.thread_id!r}, agent_id={self.agent_id!r})"
