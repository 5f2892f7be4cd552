import logging
import time

from cephbeat.api_types import ClusterEvent, ClusterStats, FetchResult
from cephbeat.cluster_client import ClusterClient, ClusterError
from cephbeat.connection import DEFAULT_RETRY_INTERVAL_SECONDS, Sleep, connect_with_retry

logger = logging.getLogger(__name__)


class ClusterStatsCollector:
    """Collects cluster-wide usage, FSID and pool names."""

    name = "cluster"

    def __init__(
        self,
        client: ClusterClient,
        conf_path: str,
        retry_interval: float = DEFAULT_RETRY_INTERVAL_SECONDS,
        sleep: Sleep = time.sleep,
    ):
        self.conf_path = conf_path
        self.connection = connect_with_retry(client, conf_path, retry_interval, sleep)

    def fetch(self) -> FetchResult:
        """Read stats, FSID and pool list independently.

        A failed read is logged and left out of the event; the other reads
        still happen and exactly one event is returned.
        """
        result = FetchResult()

        stats: ClusterStats | None = None
        try:
            stats = ClusterStats.from_dict(self.connection.stats())
        except (ClusterError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Unable to get stats: {e}")
            result.warnings.append(f"stats: {e}")

        fsid: str | None = None
        try:
            fsid = self.connection.identity()
        except ClusterError as e:
            logger.error(f"Unable to get fsid: {e}")
            result.warnings.append(f"fsid: {e}")

        pools: list[str] = []
        try:
            pools = self.connection.list_pools()
        except ClusterError as e:
            logger.error(f"Unable to get pools: {e}")
            result.warnings.append(f"pools: {e}")

        result.events.append(ClusterEvent(stats=stats, fsid=fsid, pools=pools))
        logger.debug(
            f"Fetched cluster event (fsid: {fsid}, pools: {len(pools)}, "
            f"warnings: {len(result.warnings)})"
        )
        return result

    def close(self) -> None:
        """Release the cluster connection."""
        logger.info("Closing cluster stats connection")
        try:
            self.connection.close()
        except ClusterError as e:
            logger.error(f"Unable to close cluster connection: {e}")
