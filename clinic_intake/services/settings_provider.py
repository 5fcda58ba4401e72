"""
Settings Provider.

Process-scoped cache of the portal-managed chatbot settings. Holds the last
good value with its fetch time; serves it while fresh, refetches after the
TTL and falls back to the last good value (or the defaults) on any error.
Injected into the chat service rather than read as ambient global state.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import httpx

from ..config import settings
from ..schemas.settings import DEFAULT_SETTINGS, ChatbotSettings

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[ChatbotSettings]]


class PortalSettingsClient:
    """Fetches settings from the portal API."""

    def __init__(
        self,
        url: str = settings.SETTINGS_URL,
        timeout: float = settings.SETTINGS_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def __call__(self) -> ChatbotSettings:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(self.url, headers={"Accept": "application/json"})
            response.raise_for_status()
            raw = response.json()

        # Empty values fall back to the defaults field by field
        merged = DEFAULT_SETTINGS.model_dump(by_alias=True)
        merged.update({key: value for key, value in raw.items() if key in merged and value})
        return ChatbotSettings.model_validate(merged)


class SettingsCache:
    def __init__(
        self,
        fetcher: Fetcher,
        ttl: float = settings.SETTINGS_TTL_SECONDS,
        retry_ttl: float = settings.SETTINGS_RETRY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.fetcher = fetcher
        self.ttl = ttl
        self.retry_ttl = retry_ttl
        self.clock = clock
        self.value: ChatbotSettings = DEFAULT_SETTINGS
        self.fetched_at: Optional[float] = None
        self.failed_at: Optional[float] = None

    def is_fresh(self) -> bool:
        now = self.clock()
        # Within retry_ttl of a failed fetch the cached value is served as is
        if self.failed_at is not None and now - self.failed_at < self.retry_ttl:
            return True
        return self.fetched_at is not None and now - self.fetched_at < self.ttl

    async def get(self) -> ChatbotSettings:
        if self.is_fresh():
            return self.value
        return await self.refresh()

    async def refresh(self) -> ChatbotSettings:
        try:
            value = await self.fetcher()
        except Exception as e:
            logger.warning(f"Failed to fetch chatbot settings, using cached/defaults: {e}")
            self.failed_at = self.clock()
            return self.value

        self.value = value
        self.fetched_at = self.clock()
        self.failed_at = None
        logger.info(f"Chatbot settings loaded (bot: {value.bot_display_name})")
        return value

    async def refresh_periodically(self) -> None:
        """Background loop; cancel the task to stop it."""
        while True:
            await asyncio.sleep(self.ttl)
            await self.refresh()
