import asyncio
import threading
from unittest.mock import MagicMock

import pytest
from fakes import FakeClusterClient, FakeConnection

from cephbeat.api_types import FetchResult
from cephbeat.cluster_collector import ClusterStatsCollector
from cephbeat.connection import Sleep
from cephbeat.pool_collector import PoolStatsCollector
from cephbeat.scheduler import CollectorStopped, PeriodicFetcher


def make_fake_collector() -> MagicMock:
    collector = MagicMock()
    collector.fetch.return_value = FetchResult()
    return collector


@pytest.mark.asyncio
async def test_run_fetches_and_publishes() -> None:
    """Test that run publishes each fetch result until stopped."""
    collector = make_fake_collector()
    published: list[tuple[str, FetchResult]] = []

    def publish(name: str, result: FetchResult) -> None:
        published.append((name, result))
        if len(published) == 3:
            fetcher.stop()

    fetcher = PeriodicFetcher("cluster", lambda sleep: collector, 0, publish)

    await fetcher.run()

    assert len(published) == 3
    assert all(name == "cluster" for name, _ in published)
    assert collector.fetch.call_count == 3
    collector.close.assert_called_once()
    assert not fetcher.running
    assert fetcher.collector is None


@pytest.mark.asyncio
async def test_run_continues_after_publish_error() -> None:
    """Test that an exception while publishing does not end the loop."""
    collector = make_fake_collector()
    calls = 0

    def publish(name: str, result: FetchResult) -> None:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("exporter broken")
        fetcher.stop()

    fetcher = PeriodicFetcher("pools", lambda sleep: collector, 0, publish)

    await fetcher.run()

    assert calls == 2


@pytest.mark.asyncio
async def test_stop_interrupts_connect_retry() -> None:
    """Test that stop ends a collector blocked in its connect retry loop."""
    client = FakeClusterClient(FakeConnection(), failures=10**6)
    publish = MagicMock()

    def factory(sleep: Sleep) -> ClusterStatsCollector:
        return ClusterStatsCollector(client, "/etc/ceph/cluster.conf", 30, sleep)

    fetcher = PeriodicFetcher("cluster", factory, 10, publish)
    task = asyncio.create_task(fetcher.run())

    while not client.connect_calls:
        await asyncio.sleep(0.01)
    fetcher.stop()
    await asyncio.wait_for(task, timeout=5)

    publish.assert_not_called()
    assert len(client.connect_calls) == 1
    assert not fetcher.running


@pytest.mark.asyncio
async def test_stop_interrupts_consistency_wait() -> None:
    """Test that stop ends a fetch blocked waiting for the OSD map."""
    connection = FakeConnection(pools=["rbd"], wait_failures=10**6)
    client = FakeClusterClient(connection)

    def factory(sleep: Sleep) -> PoolStatsCollector:
        return PoolStatsCollector(
            client, "/etc/ceph/cluster.conf", consistency_retry_interval=30, sleep=sleep
        )

    fetcher = PeriodicFetcher("pools", factory, 10, MagicMock())
    task = asyncio.create_task(fetcher.run())

    while ("wait_for_consistent_map",) not in connection.calls:
        await asyncio.sleep(0.01)
    fetcher.stop()
    await asyncio.wait_for(task, timeout=5)

    assert ("list_pools",) not in connection.calls
    assert connection.closed


def test_sleep_raises_once_stopped() -> None:
    """Test that the backoff sleep raises after stop."""
    fetcher = PeriodicFetcher("cluster", MagicMock(), 10, MagicMock())
    fetcher.sleep(0)

    fetcher.stop()

    with pytest.raises(CollectorStopped):
        fetcher.sleep(30)


class BlockingListConnection(FakeConnection):
    """Connection whose pool listing blocks until released."""

    def __init__(self) -> None:
        super().__init__(pools=["rbd"], pool_stats={"rbd": {"num_bytes": 1}})
        self.listing = threading.Event()
        self.release = threading.Event()
        self.closed_during_listing: list[bool] = []

    def list_pools(self) -> list[str]:
        self.listing.set()
        self.release.wait(5)
        self.closed_during_listing.append(self.closed)
        return super().list_pools()


@pytest.mark.asyncio
async def test_cancel_waits_for_fetch_in_progress() -> None:
    """Test that cancelling mid-fetch closes the connection only after the fetch ends."""
    connection = BlockingListConnection()
    client = FakeClusterClient(connection)

    def factory(sleep: Sleep) -> PoolStatsCollector:
        return PoolStatsCollector(client, "/etc/ceph/cluster.conf", sleep=sleep)

    fetcher = PeriodicFetcher("pools", factory, 10, MagicMock())
    task = asyncio.create_task(fetcher.run())

    while not connection.listing.is_set():
        await asyncio.sleep(0.01)
    fetcher.stop()
    task.cancel()
    await asyncio.sleep(0.05)

    assert not connection.closed

    connection.release.set()
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=5)

    assert connection.closed_during_listing == [False]
    assert all(pool.closed for pool in connection.opened)
    assert connection.closed


@pytest.mark.asyncio
async def test_cancel_during_connect_closes_late_connection() -> None:
    """Test that a connection established after cancellation is still closed."""
    connection = FakeConnection()
    connecting = threading.Event()
    release = threading.Event()

    class SlowClient:
        def connect(self, conf_path: str) -> FakeConnection:
            connecting.set()
            release.wait(5)
            return connection

    def factory(sleep: Sleep) -> ClusterStatsCollector:
        return ClusterStatsCollector(SlowClient(), "/etc/ceph/cluster.conf", sleep=sleep)

    publish = MagicMock()
    fetcher = PeriodicFetcher("cluster", factory, 10, publish)
    task = asyncio.create_task(fetcher.run())

    while not connecting.is_set():
        await asyncio.sleep(0.01)
    task.cancel()
    await asyncio.sleep(0.05)
    release.set()

    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=5)

    assert connection.closed
    assert fetcher.collector is None
    publish.assert_not_called()


@pytest.mark.asyncio
async def test_repeated_cancel_still_waits_for_worker() -> None:
    """Test that a second cancellation does not close the collector under a running fetch."""
    connection = BlockingListConnection()
    client = FakeClusterClient(connection)

    def factory(sleep: Sleep) -> PoolStatsCollector:
        return PoolStatsCollector(client, "/etc/ceph/cluster.conf", sleep=sleep)

    fetcher = PeriodicFetcher("pools", factory, 10, MagicMock())
    task = asyncio.create_task(fetcher.run())

    while not connection.listing.is_set():
        await asyncio.sleep(0.01)
    task.cancel()
    await asyncio.sleep(0.02)
    task.cancel()
    await asyncio.sleep(0.02)

    assert not connection.closed

    connection.release.set()
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=5)

    assert connection.closed_during_listing == [False]
    assert connection.closed
