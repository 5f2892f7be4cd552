import logging
import time
from typing import Callable

from cephbeat.cluster_client import ClusterClient, ClusterConnection, ClusterError

logger = logging.getLogger(__name__)

DEFAULT_RETRY_INTERVAL_SECONDS = 30

Sleep = Callable[[float], None]


def connect_with_retry(
    client: ClusterClient,
    conf_path: str,
    retry_interval: float = DEFAULT_RETRY_INTERVAL_SECONDS,
    sleep: Sleep = time.sleep,
) -> ClusterConnection:
    """Connect to the cluster, retrying until it succeeds.

    Every attempt builds a new connection through the client, since some
    failures leave the previous handle unusable. There is no attempt limit
    and no timeout; the only way out besides success is an exception raised
    by ``sleep``.
    """
    logger.info(f"Cluster configuration path: {conf_path}")
    attempt = 1
    while True:
        logger.info("Connecting to Ceph cluster...")
        try:
            connection = client.connect(conf_path)
        except ClusterError as e:
            logger.error(f"Unable to connect cluster (attempt {attempt}): {e}")
            logger.info(f"Retrying in {retry_interval} seconds...")
            sleep(retry_interval)
            attempt += 1
            continue

        logger.info("Successfully connected to Ceph cluster")
        return connection


def wait_for_consistent_map(
    connection: ClusterConnection,
    retry_interval: float = DEFAULT_RETRY_INTERVAL_SECONDS,
    sleep: Sleep = time.sleep,
) -> None:
    """Block until the connection's OSD map is current."""
    while True:
        try:
            connection.wait_for_consistent_map()
        except ClusterError as e:
            logger.error(f"Unable to wait for the latest OSD map: {e}")
            logger.info(f"Retrying in {retry_interval} seconds...")
            sleep(retry_interval)
            continue
        return
