"""Pydantic configuration models for the vaults exporter."""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Literal, Optional

from eth_utils import is_address


def _normalize_address(v: str) -> str:
    """Validate a hex address and return it lowercased."""
    if not isinstance(v, str) or not v.startswith("0x") or not is_address(v):
        raise ValueError(f"Invalid contract address: {v!r}")
    return v.lower()


class StrictModel(BaseModel):
    """Base model rejecting unknown keys and mutation after load."""
    model_config = ConfigDict(extra="forbid", frozen=True)


class VaultEntryConfig(StrictModel):
    """A vault contract to read on a network."""
    address: str
    group: Optional[str] = None  # Token group label
    symbol: Optional[str] = None  # Overrides on-chain symbol in labels

    @field_validator('address')
    @classmethod
    def validate_address(cls, v: str) -> str:
        return _normalize_address(v)


class NetworkConfig(StrictModel):
    """One network: RPC endpoint plus the contracts read through it."""
    endpoint: str
    name: Optional[str] = None
    chain_id: Optional[int] = Field(default=None, ge=0)
    max_concurrency: int = Field(default=4, ge=1, le=256)
    bridge: Optional[str] = None
    vaults: List[VaultEntryConfig] = Field(default_factory=list)

    @field_validator('endpoint')
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Validate endpoint URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('RPC endpoint must start with http:// or https://')
        return v

    @field_validator('bridge')
    @classmethod
    def validate_bridge(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        return _normalize_address(v)

    @model_validator(mode='after')
    def unique_vaults(self) -> "NetworkConfig":
        """Reject the same vault listed twice on one network."""
        seen = set()
        for vault in self.vaults:
            if vault.address in seen:
                raise ValueError(f"Duplicate vault address: {vault.address}")
            seen.add(vault.address)
        return self


class MetricsSettingsConfig(StrictModel):
    """Exposition endpoint and collection schedule."""
    listen_address: str = "0.0.0.0:10000"
    metrics_path: str = "/"
    collection_interval_sec: float = Field(default=10, gt=0)

    @field_validator('listen_address')
    @classmethod
    def validate_listen_address(cls, v: str) -> str:
        """Validate host:port format."""
        host, sep, port = v.rpartition(':')
        if not sep or not port.isdigit() or not 0 <= int(port) <= 65535:
            raise ValueError('listen_address must look like host:port')
        return v

    @field_validator('metrics_path')
    @classmethod
    def validate_metrics_path(cls, v: str) -> str:
        if not v.startswith('/'):
            raise ValueError('metrics_path must start with /')
        return v

    @property
    def host(self) -> str:
        return self.listen_address.rpartition(':')[0]

    @property
    def port(self) -> int:
        return int(self.listen_address.rpartition(':')[2])


class CollectionConfig(StrictModel):
    """Timeouts, retry policy and publish policy of collection cycles."""
    request_timeout_sec: float = Field(default=10, gt=0)
    cycle_timeout_sec: Optional[float] = Field(default=None, gt=0)  # Defaults to the interval
    retry_attempts: int = Field(default=3, ge=1, le=10)
    retry_base_delay_sec: float = Field(default=0.5, ge=0)
    retry_max_delay_sec: float = Field(default=5.0, ge=0)
    withdraw_period_duration_sec: int = Field(default=86400, gt=0)
    publish_empty: bool = False


class LoggingConfig(StrictModel):
    """Log output configuration."""
    level: str = "INFO"
    format: Literal["json", "text"] = "json"

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f'Unknown log level: {v}')
        return v


class ExporterConfig(StrictModel):
    """Root configuration model for the exporter."""
    networks: List[NetworkConfig]
    metrics_settings: MetricsSettingsConfig = Field(default_factory=MetricsSettingsConfig)
    collection: CollectionConfig = Field(default_factory=CollectionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode='after')
    def unique_network_names(self) -> "ExporterConfig":
        """Network ids are used as target keys and must not collide."""
        names = self.network_ids()
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate network names: {', '.join(sorted(duplicates))}")
        return self

    def network_ids(self) -> List[str]:
        """Return the id of each network, in configuration order."""
        return [n.name or f"network{i}" for i, n in enumerate(self.networks)]

    @property
    def cycle_deadline_sec(self) -> float:
        """Overall cycle deadline, never longer than the interval."""
        interval = self.metrics_settings.collection_interval_sec
        if self.collection.cycle_timeout_sec is None:
            return interval
        return min(self.collection.cycle_timeout_sec, interval)
