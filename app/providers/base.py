from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: int = 10

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client

    def _http(self) -> httpx.AsyncClient:
        """Shared async client, created on first use."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is configured to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass
