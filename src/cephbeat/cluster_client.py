from typing import Any, Protocol


class ClusterError(Exception):
    """Raised by the cluster client when a cluster operation fails."""


class PoolContext(Protocol):
    """I/O context opened against a single pool."""

    def stats(self) -> dict[str, Any]:
        """Return the raw pool statistics."""
        ...

    def close(self) -> None: ...


class ClusterConnection(Protocol):
    """Protocol defining an established connection to the cluster.

    Every method raises ClusterError on failure.
    """

    def stats(self) -> dict[str, Any]:
        """Return aggregate cluster statistics (kb, kb_used, kb_avail, num_objects)."""
        ...

    def identity(self) -> str:
        """Return the cluster FSID."""
        ...

    def list_pools(self) -> list[str]: ...

    def wait_for_consistent_map(self) -> None:
        """Block until the connection sees the latest OSD map."""
        ...

    def open_pool(self, name: str) -> PoolContext: ...

    def close(self) -> None: ...


class ClusterClient(Protocol):
    """Factory for cluster connections.

    Each call to connect must build a brand new handle. A connection is
    returned only once fully established.
    """

    def connect(self, conf_path: str) -> ClusterConnection: ...
