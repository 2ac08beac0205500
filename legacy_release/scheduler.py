"""Periodic trigger for deployments without an external cron."""

import asyncio
import logging
from typing import Optional

from .engine import ReleaseEngine
from .errors import RateLimitExceededError, ReleaseEngineError
from .schemas import ProcessRequest, ProcessResponse

logger = logging.getLogger(__name__)

SCHEDULER_CALLER_KEY = "scheduler"


class PeriodicReleaseRunner:
    """Invoke the engine on a fixed interval until stopped.

    A failed tick is logged and the loop carries on with the next one.
    """

    def __init__(self, engine: ReleaseEngine, interval_seconds: float = 30):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.engine = engine
        self.interval_seconds = interval_seconds
        self._stop_event = asyncio.Event()
        self.ticks = 0

    async def run_once(self, emergency: bool = False, credential: Optional[str] = None) -> ProcessResponse:
        """Run a single release pass through the normal admission path."""
        return await self.engine.process(
            ProcessRequest(emergency_release=emergency),
            caller_key=SCHEDULER_CALLER_KEY,
            credential=credential,
        )

    async def run_forever(self):
        logger.info(f"Periodic release runner started (interval={self.interval_seconds}s)")
        self._stop_event.clear()
        while not self._stop_event.is_set():
            self.ticks += 1
            try:
                response = await self.run_once()
                logger.info(f"Tick {self.ticks}: {response.message}")
            except RateLimitExceededError as e:
                logger.warning(f"Tick {self.ticks} throttled: {e}")
            except ReleaseEngineError as e:
                logger.error(f"Tick {self.ticks} failed: {e}")
            except Exception as e:
                logger.exception(f"Tick {self.ticks} raised unexpectedly: {e}")
            await self._wait_for_next_tick()
        logger.info("Periodic release runner stopped")

    async def _wait_for_next_tick(self):
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            pass

    def stop(self):
        self._stop_event.set()
