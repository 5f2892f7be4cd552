import logging
from dataclasses import asdict

from prometheus_client import Gauge, start_http_server

from cephbeat.api_types import ClusterEvent, FetchResult, PoolEvent
from cephbeat.config import AppConfig

logger = logging.getLogger(__name__)

POOL_GAUGES = {
    "num_bytes": "Bytes stored in the pool",
    "num_objects": "Number of objects in the pool",
    "num_object_clones": "Number of object clones in the pool",
    "num_object_copies": "Number of object copies in the pool",
    "num_objects_missing_on_primary": "Objects missing on the primary OSD",
    "num_objects_unfound": "Objects that cannot be found",
    "num_objects_degraded": "Objects with fewer replicas than configured",
    "num_rd": "Read operations on the pool",
    "num_rd_kb": "KB read from the pool",
    "num_wr": "Write operations on the pool",
    "num_wr_kb": "KB written to the pool",
}


class StatsMetrics:
    """Prometheus metrics for cluster and pool statistics."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.namespace = config.metrics.namespace

        self.cluster_kb = Gauge(
            f"{self.namespace}_cluster_kb",
            "Total raw capacity of the cluster in KB",
            ["fsid"],
        )

        self.cluster_kb_used = Gauge(
            f"{self.namespace}_cluster_kb_used",
            "Raw capacity in use in KB",
            ["fsid"],
        )

        self.cluster_kb_avail = Gauge(
            f"{self.namespace}_cluster_kb_avail",
            "Raw capacity available in KB",
            ["fsid"],
        )

        self.cluster_num_objects = Gauge(
            f"{self.namespace}_cluster_num_objects",
            "Number of objects stored in the cluster",
            ["fsid"],
        )

        self.cluster_pools = Gauge(
            f"{self.namespace}_cluster_pools",
            "Number of pools in the cluster",
            ["fsid"],
        )

        self.pool_stats = {
            stat: Gauge(f"{self.namespace}_pool_{stat}", doc, ["pool_name"])
            for stat, doc in POOL_GAUGES.items()
        }

        self.fetch_warnings = Gauge(
            f"{self.namespace}_fetch_warnings",
            "Number of fields or pools left out of the last fetch",
            ["collector"],
        )

        # Label values currently exported, so vanished series can be removed
        self.pool_names: set[str] = set()
        self.unknown_fsid_gauges: set[Gauge] = set()

    def start_metrics_server(self) -> None:
        """Start Prometheus metrics HTTP server."""
        start_http_server(self.config.metrics.port)
        logger.info(
            f"Metrics server started at http://localhost:{self.config.metrics.port}{self.config.metrics.endpoint}"
        )

    def update_cluster_metrics(self, event: ClusterEvent) -> None:
        """Update cluster metrics from a cluster event."""
        fsid = event.fsid or "unknown"
        if event.fsid and self.unknown_fsid_gauges:
            self.remove_unknown_fsid()

        updated = {self.cluster_pools: len(event.pools)}
        if event.stats is not None:
            updated[self.cluster_kb] = event.stats.kb
            updated[self.cluster_kb_used] = event.stats.kb_used
            updated[self.cluster_kb_avail] = event.stats.kb_avail
            updated[self.cluster_num_objects] = event.stats.num_objects

        for gauge, value in updated.items():
            gauge.labels(fsid=fsid).set(value)
        if not event.fsid:
            self.unknown_fsid_gauges.update(updated)

        if event.stats is None:
            logger.debug("Cluster event carries no stats, keeping previous values")
            return

        logger.debug(
            f"Updated cluster metrics (fsid: {fsid}): used: {event.stats.kb_used} KB, "
            f"avail: {event.stats.kb_avail} KB, objects: {event.stats.num_objects}"
        )

    def update_pool_metrics(self, event: PoolEvent) -> None:
        """Update metrics for a single pool."""
        values = asdict(event.stats)
        for stat, gauge in self.pool_stats.items():
            gauge.labels(pool_name=event.pool_name).set(values[stat])
        self.pool_names.add(event.pool_name)

        logger.debug(
            f"Updated metrics for pool {event.pool_name}: "
            f"bytes: {event.stats.num_bytes}, objects: {event.stats.num_objects}"
        )

    def publish(self, collector: str, result: FetchResult) -> None:
        """Forward all events of a fetch result to the gauges."""
        self.fetch_warnings.labels(collector=collector).set(len(result.warnings))
        for event in result.events:
            if isinstance(event, ClusterEvent):
                self.update_cluster_metrics(event)
            else:
                self.update_pool_metrics(event)

        if result.enumerated_pools is not None:
            self.remove_deleted_pools(result.enumerated_pools)

    def remove_deleted_pools(self, existing: list[str]) -> None:
        """Drop the series of pools the cluster no longer lists."""
        for pool_name in sorted(self.pool_names - set(existing)):
            for gauge in self.pool_stats.values():
                gauge.remove(pool_name)
            self.pool_names.discard(pool_name)
            logger.info(f"Removed metrics of deleted pool {pool_name}")

    def remove_unknown_fsid(self) -> None:
        """Drop series recorded before the cluster FSID could be read."""
        for gauge in self.unknown_fsid_gauges:
            gauge.remove("unknown")
        self.unknown_fsid_gauges.clear()
