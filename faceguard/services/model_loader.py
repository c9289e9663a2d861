"""
Resilient, multi-source model loader.

The loader acquires a critical model tier (required for any recognition) and
an optional tier (demographics) from a priority-ordered list of sources.

Key Features:
    - Idempotent: once the critical tier is ready, calls return immediately
    - In-flight deduplication: concurrent callers share one acquisition task
    - Per-source timeout: a slow or failing source moves on to the next one
    - Tiered degradation: the optional tier loads in the background and its
      failure only clears the ``optional_available`` flag
    - Retryable: exhausting every source resets the loader to UNLOADED

Example:
    ```python
    loader = ModelLoader(engine, urls=["https://a/models", "https://b/models"])
    if not await loader.ensure_loaded():
        show_degraded_state()
    ```
"""
import asyncio
from enum import Enum
from typing import List, Optional, Sequence

from faceguard.core.config import settings
from faceguard.core.exceptions import ModelAcquisitionFailure
from faceguard.core.logging import get_logger
from faceguard.domain.interfaces.models.model_source import ModelSource

logger = get_logger(__name__)


class LoaderState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    CRITICAL_READY = "critical_ready"


class ModelLoader:
    """Acquires vision models from an ordered list of sources."""

    def __init__(
        self,
        source: ModelSource,
        urls: Optional[Sequence[str]] = None,
        timeout_ms: Optional[int] = None,
    ) -> None:
        """
        Args:
            source: Capability that loads models from one address
            urls: Priority-ordered source addresses (defaults to ``settings.model_urls``)
            timeout_ms: Upper bound for one source attempt (defaults to ``settings.MODEL_LOAD_TIMEOUT_MS``)
        """
        self.source = source
        self.urls: List[str] = list(urls if urls is not None else settings.model_urls)
        self.timeout_ms = int(timeout_ms if timeout_ms is not None else settings.MODEL_LOAD_TIMEOUT_MS)

        self._state = LoaderState.UNLOADED
        self._pending: Optional[asyncio.Task] = None
        self._optional_task: Optional[asyncio.Task] = None
        self.optional_available = False
        self.active_source: Optional[str] = None

    @property
    def state(self) -> LoaderState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is LoaderState.CRITICAL_READY

    async def ensure_loaded(self) -> bool:
        """Make sure the critical tier is loaded.

        Safe to call repeatedly and concurrently: while an acquisition is in
        flight every caller awaits the same task, and cancelling one caller
        does not cancel the shared acquisition.

        Returns:
            True if the critical tier is ready, False if every source failed
        """
        if self.is_ready:
            return True

        if self._pending is None:
            self._state = LoaderState.LOADING
            self._pending = asyncio.ensure_future(self._acquire())

        return await asyncio.shield(self._pending)

    async def require_ready(self) -> None:
        """Ensure the critical tier is loaded or raise.

        Raises:
            ModelAcquisitionFailure: If every source failed
        """
        if not await self.ensure_loaded():
            raise ModelAcquisitionFailure(
                "All model sources failed",
                details={"sources": list(self.urls)},
            )

    async def _acquire(self) -> bool:
        timeout = self.timeout_ms / 1000.0
        for url in self.urls:
            try:
                logger.info("Attempting to load models", source=url, timeout_ms=self.timeout_ms)
                await asyncio.wait_for(self.source.load_critical(url), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Model source timed out", source=url, timeout_ms=self.timeout_ms)
                continue
            except Exception as e:
                logger.warning("Failed to load models from source", source=url, error=str(e))
                continue

            logger.info("Critical models loaded", source=url)
            self._state = LoaderState.CRITICAL_READY
            self.active_source = url
            self._optional_task = asyncio.ensure_future(self._acquire_optional(url))
            return True

        logger.error("All model sources failed", sources=len(self.urls))
        self._state = LoaderState.UNLOADED
        self._pending = None
        return False

    async def _acquire_optional(self, url: str) -> None:
        try:
            await self.source.load_optional(url)
        except Exception as e:
            self.optional_available = False
            logger.warning("Demographics models skipped (non-fatal)", source=url, error=str(e))
            return
        self.optional_available = True
        logger.info("Demographics models loaded", source=url)

    async def wait_optional(self) -> bool:
        """Wait for the background optional-tier acquisition, if any.

        Returns:
            Whether the optional tier is available
        """
        if self._optional_task is not None:
            await asyncio.shield(self._optional_task)
        return self.optional_available

    async def close(self) -> None:
        """Cancel background work still pending."""
        for task in (self._optional_task, self._pending):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._optional_task = None
        if not self.is_ready:
            self._pending = None
            self._state = LoaderState.UNLOADED
