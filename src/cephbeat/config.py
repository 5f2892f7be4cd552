import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


@dataclass
class ClusterConfig:
    conf_path: str = "/etc/ceph/cluster.conf"
    connect_retry_interval_seconds: float = 30
    consistency_retry_interval_seconds: float = 30


@dataclass
class FetcherConfig:
    enabled: bool = True
    period_seconds: float = 10


@dataclass
class CollectorsConfig:
    cluster: FetcherConfig = field(default_factory=FetcherConfig)
    pools: FetcherConfig = field(default_factory=FetcherConfig)


@dataclass
class MetricsConfig:
    port: int = 9128
    endpoint: str = "/metrics"
    namespace: str = "ceph"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class AppConfig:
    cluster: ClusterConfig
    collectors: CollectorsConfig
    metrics: MetricsConfig
    logging: LoggingConfig


def _cluster_config(data: dict) -> ClusterConfig:
    data = dict(data)
    pool_name = data.pop("pool_name", None)
    if pool_name is not None:
        logger.warning(
            f"cluster.pool_name ({pool_name}) is deprecated and ignored, all pools are collected"
        )
    return ClusterConfig(**data)


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from YAML file."""
    if config_path is None:
        config_path = Path("config.yml")

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        config_data = yaml.safe_load(f) or {}

    collectors_data = config_data.get("collectors") or {}
    return AppConfig(
        cluster=_cluster_config(config_data.get("cluster") or {}),
        collectors=CollectorsConfig(
            cluster=FetcherConfig(**(collectors_data.get("cluster") or {})),
            pools=FetcherConfig(**(collectors_data.get("pools") or {})),
        ),
        metrics=MetricsConfig(**(config_data.get("metrics") or {})),
        logging=LoggingConfig(**(config_data.get("logging") or {})),
    )
