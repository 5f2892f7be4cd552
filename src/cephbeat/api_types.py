from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class ClusterStats:
    """Aggregate cluster usage with proper types."""

    kb: int
    kb_used: int
    kb_avail: int
    num_objects: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClusterStats":
        """Create ClusterStats from raw client data with type conversion."""
        return cls(
            kb=int(data["kb"]),
            kb_used=int(data["kb_used"]),
            kb_avail=int(data["kb_avail"]),
            num_objects=int(data["num_objects"]),
        )


@dataclass(frozen=True)
class PoolStats:
    num_bytes: int = 0
    num_kb: int = 0
    num_objects: int = 0
    num_object_clones: int = 0
    num_object_copies: int = 0
    num_objects_missing_on_primary: int = 0
    num_objects_unfound: int = 0
    num_objects_degraded: int = 0
    num_rd: int = 0
    num_rd_kb: int = 0
    num_wr: int = 0
    num_wr_kb: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PoolStats":
        """Create PoolStats from raw client data, missing counters read as 0."""
        return cls(
            **{name: int(data.get(name, 0)) for name in cls.__dataclass_fields__}
        )


@dataclass(frozen=True)
class ClusterEvent:
    """One cluster-level event. Fields that could not be read are None or empty."""

    stats: ClusterStats | None
    fsid: str | None
    pools: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stats": asdict(self.stats) if self.stats is not None else None,
            "fsid": self.fsid,
            "pools": list(self.pools),
        }


@dataclass(frozen=True)
class PoolEvent:
    pool_name: str
    stats: PoolStats

    def to_dict(self) -> dict[str, Any]:
        return {"pool_name": self.pool_name, "stats": asdict(self.stats)}


StatsEvent = ClusterEvent | PoolEvent


@dataclass
class FetchResult:
    """Outcome of one fetch cycle.

    A fetch always succeeds from the caller's point of view. Every field or
    pool left out because of an error is listed in ``warnings``.
    """

    events: list[StatsEvent] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    # Pool names listed by the cluster this cycle, None when no listing succeeded
    enumerated_pools: list[str] | None = None

    def to_dicts(self) -> list[dict[str, Any]]:
        return [event.to_dict() for event in self.events]
