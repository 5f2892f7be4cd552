import importlib
import logging
from types import ModuleType
from typing import Any

from cephbeat.cluster_client import ClusterError

logger = logging.getLogger(__name__)


class RadosPoolContext:
    """Pool context backed by a rados.Ioctx."""

    def __init__(self, rados: ModuleType, ioctx: Any):
        self._rados = rados
        self._ioctx = ioctx

    def stats(self) -> dict[str, Any]:
        try:
            return dict(self._ioctx.get_stats())
        except self._rados.Error as e:
            raise ClusterError(f"Unable to get pool stats: {e}") from e

    def close(self) -> None:
        try:
            self._ioctx.close()
        except self._rados.Error as e:
            raise ClusterError(f"Unable to close pool context: {e}") from e


class RadosConnection:
    """Cluster connection backed by a connected rados.Rados handle."""

    def __init__(self, rados: ModuleType, cluster: Any):
        self._rados = rados
        self._cluster = cluster

    def stats(self) -> dict[str, Any]:
        try:
            return dict(self._cluster.get_cluster_stats())
        except self._rados.Error as e:
            raise ClusterError(f"Unable to get cluster stats: {e}") from e

    def identity(self) -> str:
        try:
            return str(self._cluster.get_fsid())
        except self._rados.Error as e:
            raise ClusterError(f"Unable to get fsid: {e}") from e

    def list_pools(self) -> list[str]:
        try:
            return list(self._cluster.list_pools())
        except self._rados.Error as e:
            raise ClusterError(f"Unable to list pools: {e}") from e

    def wait_for_consistent_map(self) -> None:
        try:
            self._cluster.wait_for_latest_osdmap()
        except self._rados.Error as e:
            raise ClusterError(f"Unable to wait for latest OSD map: {e}") from e

    def open_pool(self, name: str) -> RadosPoolContext:
        try:
            ioctx = self._cluster.open_ioctx(name)
        except self._rados.Error as e:
            raise ClusterError(f"Unable to open IOContext of pool {name}: {e}") from e
        return RadosPoolContext(self._rados, ioctx)

    def close(self) -> None:
        try:
            self._cluster.shutdown()
        except self._rados.Error as e:
            raise ClusterError(f"Unable to shut down cluster connection: {e}") from e


class RadosClient:
    """Builds connections with the Ceph rados binding.

    The binding ships with Ceph itself (python3-rados) and is imported on the
    first connect attempt unless a module is injected.
    """

    def __init__(self, rados: ModuleType | None = None):
        self._rados = rados

    def _module(self) -> ModuleType:
        if self._rados is None:
            self._rados = importlib.import_module("rados")
        return self._rados

    def connect(self, conf_path: str) -> RadosConnection:
        rados = self._module()
        try:
            cluster = rados.Rados(conffile=conf_path)
        except rados.Error as e:
            raise ClusterError(f"Unable to read configuration {conf_path}: {e}") from e

        try:
            cluster.connect()
        except rados.Error as e:
            # Never hand out a half-initialized handle
            cluster.shutdown()
            raise ClusterError(f"Unable to connect cluster: {e}") from e

        logger.debug(f"Connected to cluster using {conf_path}")
        return RadosConnection(rados, cluster)
