from typing import Protocol

from cephbeat.api_types import FetchResult


class StatsCollector(Protocol):
    """Protocol for collectors owning one cluster connection."""

    name: str

    def fetch(self) -> FetchResult:
        """Run one fetch cycle. Never raises for cluster read failures."""
        ...

    def close(self) -> None:
        """Release the cluster connection."""
        ...


class DataCollector(Protocol):
    """Protocol defining the interface for scheduled collectors."""

    running: bool

    async def run(self) -> None:
        """Run the collection loop.

        This method should:
        - Set running=True
        - Start the main collection loop
        - Handle errors gracefully
        - Continue until running=False
        - Log start/stop events
        """
        ...

    def stop(self) -> None:
        """Stop the collector.

        This method should:
        - Set running=False
        - Interrupt any blocking retry loop at its next backoff
        - Log the stop event
        """
        ...
