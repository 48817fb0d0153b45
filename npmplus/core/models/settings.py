"""
Settings model — gateway configuration loaded from npmplus.yml.

Every section has working defaults, so an absent file is a valid
configuration.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ExecutorSettings(BaseModel):
    """Subprocess timeouts and the stale-tracker recovery loop."""

    timeout_ms: int = Field(default=60_000, gt=0)
    version_timeout_ms: int = Field(default=5_000, gt=0)
    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_seconds: float = Field(default=1.0, ge=0)
    probe_versions: bool = True


class CacheSettings(BaseModel):
    """Response cache bounds and TTL classes, in seconds."""

    default_ttl: int = Field(default=600, ge=0)
    check_period: int = Field(default=120, ge=0)     # 0 disables the sweeper
    max_keys: int = Field(default=1000, ge=1)

    search_ttl: int = Field(default=900, ge=0)
    metadata_ttl: int = Field(default=3600, ge=0)
    bundle_ttl: int = Field(default=3600, ge=0)
    vulnerability_ttl: int = Field(default=3600, ge=0)
    downloads_ttl: int = Field(default=300, ge=0)


class RegistrySettings(BaseModel):
    """Upstream HTTP endpoints."""

    registry_url: str = "https://registry.npmjs.org"
    api_url: str = "https://api.npmjs.org"
    bundlephobia_url: str = "https://bundlephobia.com/api"
    github_advisory_url: str = "https://api.github.com/advisories"
    osv_url: str = "https://api.osv.dev/v1"
    timeout_seconds: float = Field(default=15.0, gt=0)
    user_agent: str = "npmplus/0.1"


class GatewaySettings(BaseModel):
    """How many subprocess-backed calls may run at once."""

    max_concurrency: int = Field(default=4, ge=1)


class Settings(BaseModel):
    """Root configuration."""

    executor: ExecutorSettings = Field(default_factory=ExecutorSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
