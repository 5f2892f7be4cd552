import asyncio
import logging
import threading
from typing import Any, Callable

from cephbeat.api_types import FetchResult
from cephbeat.connection import Sleep
from cephbeat.data_collector import StatsCollector

logger = logging.getLogger(__name__)


class CollectorStopped(Exception):
    """Raised from a backoff sleep once the fetcher has been stopped."""


class PeriodicFetcher:
    """Runs a stats collector's fetch on a fixed period.

    Collector construction and fetches block on the cluster, so both run in
    a worker thread. Fetches are strictly serial, and the collector is only
    closed once no worker is using it.
    """

    def __init__(
        self,
        name: str,
        factory: Callable[[Sleep], StatsCollector],
        period_seconds: float,
        publish: Callable[[str, FetchResult], None],
    ):
        self.name = name
        self.factory = factory
        self.period_seconds = period_seconds
        self.publish = publish
        self.running = False
        self.collector: StatsCollector | None = None
        self._stopped = threading.Event()

    def sleep(self, seconds: float) -> None:
        """Backoff sleep handed to the collector, interrupted by stop()."""
        if self._stopped.wait(seconds):
            raise CollectorStopped(f"{self.name} fetcher stopped")

    async def _in_worker(self, func: Callable[[], Any]) -> Any:
        """Run func in a worker thread.

        If the calling task is cancelled, the worker is stopped at its next
        backoff and awaited, even through repeated cancellation, before the
        cancellation propagates.
        """
        worker = asyncio.get_running_loop().run_in_executor(None, func)
        try:
            return await asyncio.shield(worker)
        except asyncio.CancelledError:
            self.stop()
            while not worker.done():
                try:
                    await asyncio.wait([worker])
                except asyncio.CancelledError:
                    logger.info(f"{self.name} fetcher still waiting for its worker")
            raise

    def _connect(self) -> StatsCollector:
        # Assigned from the worker so a collector built after cancellation is still closed
        self.collector = self.factory(self.sleep)
        return self.collector

    async def collect(self, collector: StatsCollector) -> None:
        """Run one fetch cycle and publish its result."""
        result = await self._in_worker(collector.fetch)
        if result.warnings:
            logger.warning(
                f"{self.name} fetch completed with {len(result.warnings)} warnings"
            )
        self.publish(self.name, result)

    async def run(self) -> None:
        """Connect, then fetch every period until stopped."""
        self.running = True
        logger.info(
            f"{self.name} fetcher started with a period of {self.period_seconds} seconds"
        )

        try:
            collector = await self._in_worker(self._connect)
            while self.running:
                try:
                    await self.collect(collector)
                except CollectorStopped:
                    raise
                except Exception as e:
                    logger.exception(f"Error in {self.name} fetcher: {e}")

                if self.running:
                    logger.debug(
                        f"Waiting {self.period_seconds} seconds until next {self.name} fetch"
                    )
                    await asyncio.sleep(self.period_seconds)
        except CollectorStopped:
            logger.info(f"{self.name} fetcher interrupted while waiting on the cluster")
        finally:
            if self.collector is not None:
                self.collector.close()
                self.collector = None
            self.running = False
            logger.info(f"{self.name} fetcher stopped")

    def stop(self) -> None:
        """Stop the fetcher."""
        logger.info(f"Stopping {self.name} fetcher")
        self.running = False
        self._stopped.set()
