import logging
import time

from cephbeat.api_types import FetchResult, PoolEvent, PoolStats
from cephbeat.cluster_client import ClusterClient, ClusterError
from cephbeat.connection import (
    DEFAULT_RETRY_INTERVAL_SECONDS,
    Sleep,
    connect_with_retry,
    wait_for_consistent_map,
)

logger = logging.getLogger(__name__)


class PoolStatsCollector:
    """Collects usage statistics for every pool of the cluster.

    Pools created shortly before a fetch are missing from the pool list
    until the connection has seen the latest OSD map, so each fetch first
    waits for the map to be current and only then enumerates pools.
    """

    name = "pools"

    def __init__(
        self,
        client: ClusterClient,
        conf_path: str,
        retry_interval: float = DEFAULT_RETRY_INTERVAL_SECONDS,
        consistency_retry_interval: float = DEFAULT_RETRY_INTERVAL_SECONDS,
        sleep: Sleep = time.sleep,
    ):
        self.conf_path = conf_path
        self.consistency_retry_interval = consistency_retry_interval
        self.sleep = sleep
        self.connection = connect_with_retry(client, conf_path, retry_interval, sleep)

    def fetch_pool(self, pool_name: str) -> PoolEvent:
        """Open a context on one pool and read its stats.

        Raises ClusterError if the pool cannot be opened or read.
        """
        pool = self.connection.open_pool(pool_name)
        try:
            raw_stats = pool.stats()
        finally:
            pool.close()
        return PoolEvent(pool_name=pool_name, stats=PoolStats.from_dict(raw_stats))

    def fetch(self) -> FetchResult:
        """Collect one event per pool; failing pools are skipped."""
        result = FetchResult()

        wait_for_consistent_map(
            self.connection, self.consistency_retry_interval, self.sleep
        )

        try:
            pool_names = self.connection.list_pools()
            result.enumerated_pools = list(pool_names)
        except ClusterError as e:
            logger.error(f"Unable to get pools: {e}")
            result.warnings.append(f"pools: {e}")
            pool_names = []

        logger.debug(f"Found {len(pool_names)} pools")
        for pool_name in pool_names:
            try:
                event = self.fetch_pool(pool_name)
            except (ClusterError, TypeError, ValueError) as e:
                logger.error(f"Unable to get stats of pool {pool_name}: {e}")
                result.warnings.append(f"{pool_name}: {e}")
                continue
            result.events.append(event)

        logger.info(
            f"Successfully collected stats for {len(result.events)} of {len(pool_names)} pools"
        )
        return result

    def close(self) -> None:
        """Release the cluster connection."""
        logger.info("Closing pool stats connection")
        try:
            self.connection.close()
        except ClusterError as e:
            logger.error(f"Unable to close cluster connection: {e}")
