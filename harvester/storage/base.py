from abc import ABC, abstractmethod
from typing import Any, List, Optional


class BaseStorage(ABC):
    """
    Durable key-value store used for job persistence and the cache mirror.
    Values are JSON-compatible structures.
    """

    async def initialize(self) -> None:
        """Prepare the backend (directories, connections). Optional."""

    async def close(self) -> None:
        """Release backend resources. Optional."""

    @abstractmethod
    async def save(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def list_keys(self, prefix: Optional[str] = None) -> List[str]:
        pass

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

    async def clear(self, prefix: Optional[str] = None) -> None:
        for key in await self.list_keys(prefix):
            await self.delete(key)
