import asyncio
import logging
import signal
import sys

from cephbeat.cluster_client import ClusterClient
from cephbeat.cluster_collector import ClusterStatsCollector
from cephbeat.config import AppConfig, load_config
from cephbeat.connection import Sleep
from cephbeat.data_collector import DataCollector
from cephbeat.metrics import StatsMetrics
from cephbeat.pool_collector import PoolStatsCollector
from cephbeat.rados_client import RadosClient
from cephbeat.scheduler import PeriodicFetcher

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def setup_logging(config: AppConfig) -> logging.Logger:
    """Configure root logging from the config; unknown level names are rejected."""
    level = logging.getLevelName(config.logging.level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown logging level: {config.logging.level}")

    logging.basicConfig(level=level, format=config.logging.format)
    logger = logging.getLogger(__name__)
    logger.info(f"Starting Ceph stats collector (log level {logging.getLevelName(level)})")
    return logger


def install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    collectors: tuple[DataCollector, ...],
    shutdown_event: asyncio.Event,
    logger: logging.Logger,
) -> None:
    """Stop every collector and request shutdown on SIGINT or SIGTERM."""

    def request_shutdown(sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, stopping {len(collectors)} collectors")
        for collector in collectors:
            collector.stop()
        shutdown_event.set()

    for sig in SHUTDOWN_SIGNALS:
        loop.add_signal_handler(sig, request_shutdown, sig)


def build_fetchers(
    config: AppConfig, client: ClusterClient, metrics: StatsMetrics
) -> tuple[PeriodicFetcher, ...]:
    """Create one periodic fetcher per enabled collector."""
    cluster = config.cluster

    def cluster_factory(sleep: Sleep) -> ClusterStatsCollector:
        return ClusterStatsCollector(
            client,
            cluster.conf_path,
            retry_interval=cluster.connect_retry_interval_seconds,
            sleep=sleep,
        )

    def pool_factory(sleep: Sleep) -> PoolStatsCollector:
        return PoolStatsCollector(
            client,
            cluster.conf_path,
            retry_interval=cluster.connect_retry_interval_seconds,
            consistency_retry_interval=cluster.consistency_retry_interval_seconds,
            sleep=sleep,
        )

    fetchers = []
    if config.collectors.cluster.enabled:
        fetchers.append(
            PeriodicFetcher(
                ClusterStatsCollector.name,
                cluster_factory,
                config.collectors.cluster.period_seconds,
                metrics.publish,
            )
        )
    if config.collectors.pools.enabled:
        fetchers.append(
            PeriodicFetcher(
                PoolStatsCollector.name,
                pool_factory,
                config.collectors.pools.period_seconds,
                metrics.publish,
            )
        )
    return tuple(fetchers)


async def run_collectors_with_shutdown(
    collectors: tuple[DataCollector, ...],
    shutdown_event: asyncio.Event,
    logger: logging.Logger,
) -> None:
    """Run collectors and handle graceful shutdown."""
    tasks = [asyncio.create_task(collector.run()) for collector in collectors]
    shutdown_task = asyncio.create_task(shutdown_event.wait())

    try:
        # Wait for either all tasks to complete or shutdown signal
        done, pending = await asyncio.wait(
            tasks + [shutdown_task],
            return_when=asyncio.FIRST_COMPLETED,
        )

        for task in done:
            if task is not shutdown_task and task.exception() is not None:
                logger.error(f"Collector failed: {task.exception()!r}")

        if shutdown_event.is_set():
            logger.info("Shutdown requested, cancelling tasks...")
            for task in pending:
                if not task.done():
                    task.cancel()

            if pending:
                await asyncio.wait(pending, timeout=5.0)

    except asyncio.CancelledError:
        logger.info("Tasks were cancelled")
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        if not shutdown_task.done():
            shutdown_task.cancel()
        logger.info("Ceph stats collector stopped")


async def run_exporter() -> None:
    """Main entry point for the Ceph stats collector."""
    try:
        config = load_config()
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    logger = setup_logging(config)

    metrics = StatsMetrics(config)
    metrics.start_metrics_server()

    fetchers = build_fetchers(config, RadosClient(), metrics)
    if not fetchers:
        logger.warning("No collector enabled, nothing to do")
        return

    shutdown_event = asyncio.Event()
    install_signal_handlers(
        asyncio.get_running_loop(), fetchers, shutdown_event, logger
    )

    await run_collectors_with_shutdown(fetchers, shutdown_event, logger)


def run() -> None:
    asyncio.run(run_exporter())
