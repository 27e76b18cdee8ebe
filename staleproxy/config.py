"""Configuration models using Pydantic for validation."""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
import os


class StalenessConfig(BaseModel):
    """How series are classified as stale."""
    threshold: int = Field(default=240, ge=0)  # unchanged scrapes before a series is suppressed
    start_stale: bool = True
    evict_after: Optional[int] = Field(default=None, ge=0)  # scrapes of absence before a record is dropped


class UpstreamConfig(BaseModel):
    """Where and how upstream metrics are fetched."""
    host: str = "localhost"
    path: str = "/metrics"
    timeout_s: float = Field(default=10.0, gt=0)


class ServerConfig(BaseModel):
    """Downstream listener settings."""
    bind_address: str = "0.0.0.0"


class TargetConfig(BaseModel):
    """One upstream port re-exposed on one listen port."""
    upstream_port: int = Field(ge=1, le=65535)
    listen_port: int = Field(ge=1, le=65535)


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    log_level: str = "INFO"

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError(f"Invalid log level: {v}")
        return level


class Config(BaseModel):
    """Root configuration model."""
    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    staleness: StalenessConfig = Field(default_factory=StalenessConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    targets: List[TargetConfig] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    @field_validator('targets')
    @classmethod
    def validate_targets(cls, v):
        """Validate target configurations."""
        listen_ports = [t.listen_port for t in v]
        if len(listen_ports) != len(set(listen_ports)):
            raise ValueError("Listen ports must be unique")

        return v


def unpaired_port(ports: List[int]) -> Optional[int]:
    """The leftover port of an odd-length port list, if any."""
    if len(ports) % 2:
        return ports[-1]
    return None


def pair_ports(ports: List[int]) -> List[TargetConfig]:
    """
    Turn a flat port list into (upstream_port, listen_port) pairs.

    An odd leftover port is dropped; see unpaired_port.
    """
    return [
        TargetConfig(upstream_port=ports[i], listen_port=ports[i + 1])
        for i in range(0, len(ports) - 1, 2)
    ]


def load_config(
    config_path: Optional[str] = None,
    ports: Optional[List[int]] = None,
    overrides: Optional[Dict[str, Dict[str, Any]]] = None
) -> Config:
    """
    Load and validate configuration.

    Precedence is file, then environment, then overrides.

    Args:
        config_path: Optional YAML file
        ports: Flat port list from the command line, appended to the file's targets
        overrides: Per-section values, e.g. {"staleness": {"threshold": 10}}

    Returns:
        Validated configuration with at least one target
    """
    import yaml

    raw_config = {}
    if config_path:
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

    # Apply environment variable overrides
    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config.setdefault('global', {})['log_level'] = env_log_level

    if env_threshold := os.getenv('STALE_THRESHOLD'):
        raw_config.setdefault('staleness', {})['threshold'] = env_threshold

    for section, values in (overrides or {}).items():
        raw_config.setdefault(section, {}).update(values)

    try:
        targets = list(raw_config.get('targets') or [])
        targets.extend(t.model_dump() for t in pair_ports(ports or []))
        raw_config['targets'] = targets

        config = Config(**raw_config)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")

    if not config.targets:
        raise ValueError("At least one port pair must be configured")

    return config
