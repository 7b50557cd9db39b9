"""
Configuration management for the nomad resource collector.
"""

import os
import re
import yaml
from dataclasses import dataclass
from typing import List, Dict, Any, Optional, Tuple
from pathlib import Path

from nomad_resource_collector.common.model import ClusterEndpoints
from nomad_resource_collector.common.exception import ConfigError
from nomad_resource_collector.common.logging import get_logger
from nomad_resource_collector.collector.connection.http_client import normalize_address

logger = get_logger(__name__)


REQUEST_SOURCES = ("spec", "allocated")

# Default configuration
DEFAULT_CONFIG = {
    "poll_interval": 60.0,  # seconds
    "request_timeout": 10.0,  # seconds, applied to every HTTP call
    "max_cluster_workers": 8,
    "job_workers": 4,
    "request_source": "spec",
}

DEFAULT_METRICS_ADDRESS = "http://localhost:8428"
DEFAULT_ORCHESTRATOR_ADDRESS = "http://localhost:4646"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> float:
    """Parse "1m", "30s", "1h30m" or a plain number of seconds."""
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        try:
            seconds = float(text)
        except ValueError:
            parts = _DURATION_PART.findall(text)
            if not parts or "".join(n + u for n, u in parts) != text:
                raise ConfigError(f"Invalid duration: {value!r}")
            seconds = sum(float(n) * _DURATION_UNITS[u] for n, u in parts)
    if seconds <= 0:
        raise ConfigError(f"Duration must be positive: {value!r}")
    return seconds


@dataclass(frozen=True)
class CollectorConfig:
    """Immutable collector configuration, passed down to every component."""
    metrics_address: str
    clusters: Tuple[ClusterEndpoints, ...]
    poll_interval: float = DEFAULT_CONFIG["poll_interval"]
    request_timeout: float = DEFAULT_CONFIG["request_timeout"]
    max_cluster_workers: int = DEFAULT_CONFIG["max_cluster_workers"]
    job_workers: int = DEFAULT_CONFIG["job_workers"]
    request_source: str = DEFAULT_CONFIG["request_source"]

    def __post_init__(self):
        if self.request_source not in REQUEST_SOURCES:
            raise ConfigError(f"request_source must be one of {REQUEST_SOURCES}, got {self.request_source!r}")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")
        if self.max_cluster_workers < 1 or self.job_workers < 1:
            raise ConfigError("worker counts must be at least 1")


def _get(entry: Dict[str, Any], *keys: str, default=None):
    """Read the first present key; the legacy file layout capitalises keys."""
    for key in keys:
        if key in entry and entry[key] is not None:
            return entry[key]
    return default


def _server_address(entry: Any, what: str) -> str:
    if isinstance(entry, str):
        return normalize_address(entry)
    if not isinstance(entry, dict):
        raise ConfigError(f"{what} entry must be a mapping or an address string")
    url = _get(entry, "url", "URL", "address")
    if not url:
        raise ConfigError(f"{what} entry is missing 'url'")
    port = _get(entry, "port", "Port")
    address = f"{url}:{port}" if port not in (None, "") else str(url)
    return normalize_address(address)


class ConfigManager:
    """Loads collector configuration from a YAML (or JSON) file plus environment overrides."""

    def __init__(self, config_file_path: Optional[str] = None):
        """
        Initialize the configuration manager.

        Args:
            config_file_path (str, optional): Path to the collector configuration file.
                If not provided, the COLLECTOR_CONFIG_FILE environment variable and a
                few standard locations are searched.
        """
        self.config_file_path = config_file_path

    def _find_config_file(self) -> Optional[str]:
        """Find the collector configuration file."""
        if self.config_file_path:
            return self.config_file_path

        config_file = os.environ.get("COLLECTOR_CONFIG_FILE")
        if config_file:
            return config_file

        possible_paths = [
            Path.cwd() / "collector.yaml",
            Path.home() / ".nomad_resource_collector" / "collector.yaml",
            Path("/etc/nomad_resource_collector/collector.yaml"),
        ]
        for path in possible_paths:
            if path.exists():
                return str(path)
        return None

    def _read_file(self, config_file: str) -> Dict[str, Any]:
        try:
            with open(config_file, 'r') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Error loading configuration from {config_file}: {e}")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration in {config_file} must be a mapping")
        return data

    def _load_from_env(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Apply COLLECTOR_* environment overrides."""
        for key in DEFAULT_CONFIG:
            env_value = os.environ.get(f"COLLECTOR_{key.upper()}")
            if env_value is not None:
                settings[key] = env_value
        return settings

    def _parse_clusters(self, data: Dict[str, Any], metrics_address: str) -> List[ClusterEndpoints]:
        entries = _get(data, "clusters", "Nomad", default=[])
        if not isinstance(entries, list):
            raise ConfigError("'clusters' must be a list")

        clusters = []
        for index, entry in enumerate(entries):
            address = _server_address(entry, f"clusters[{index}]")
            name, token, cluster_metrics = "", None, metrics_address
            if isinstance(entry, dict):
                name = str(_get(entry, "name", "Name", default=""))
                token = _get(entry, "token", "Token")
                # 单个集群可以覆盖全局的 metrics 地址
                if _get(entry, "metrics") is not None:
                    cluster_metrics = _server_address(entry["metrics"], f"clusters[{index}].metrics")
            clusters.append(ClusterEndpoints(
                orchestrator_address=address,
                metrics_address=cluster_metrics,
                name=name,
                token=token,
            ))
        return clusters

    def build(self, data: Dict[str, Any]) -> CollectorConfig:
        """Build a CollectorConfig from already-parsed file content."""
        metrics_entry = _get(data, "metrics", "VictoriaMetrics")
        metrics_address = (_server_address(metrics_entry, "metrics")
                           if metrics_entry is not None else DEFAULT_METRICS_ADDRESS)

        clusters = self._parse_clusters(data, metrics_address)
        if not clusters:
            raise ConfigError("At least one cluster must be configured")

        settings = {key: data.get(key, default) for key, default in DEFAULT_CONFIG.items()}
        settings = self._load_from_env(settings)

        try:
            return CollectorConfig(
                metrics_address=metrics_address,
                clusters=tuple(clusters),
                poll_interval=parse_duration(settings["poll_interval"]),
                request_timeout=parse_duration(settings["request_timeout"]),
                max_cluster_workers=int(settings["max_cluster_workers"]),
                job_workers=int(settings["job_workers"]),
                request_source=str(settings["request_source"]),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}")

    def load(self) -> CollectorConfig:
        """Locate, read and validate the configuration."""
        config_file = self._find_config_file()

        if self.config_file_path and not os.path.exists(self.config_file_path):
            raise ConfigError(f"Config file {self.config_file_path} not found")

        if config_file is None or not os.path.exists(config_file):
            logger.warning(f"Config file {config_file or 'collector.yaml'} not found, using default configuration")
            return self.build({
                "metrics": DEFAULT_METRICS_ADDRESS,
                "clusters": [DEFAULT_ORCHESTRATOR_ADDRESS],
            })

        config = self.build(self._read_file(config_file))
        logger.info(f"Loaded configuration from {config_file}: "
                    f"{len(config.clusters)} cluster(s), poll interval {config.poll_interval:.0f}s")
        return config


def default_config(orchestrator_address: str, metrics_address: str) -> CollectorConfig:
    """Single-cluster configuration with default settings."""
    cluster = ClusterEndpoints(
        orchestrator_address=normalize_address(orchestrator_address),
        metrics_address=normalize_address(metrics_address),
    )
    return CollectorConfig(metrics_address=cluster.metrics_address, clusters=(cluster,))
