"""
Package models — registry, download, bundle and advisory payloads.

These are what the registry-bound operations return and what the
response cache stores.  All of them are frozen: a cached instance is
shared by every caller, so enrichment goes through ``model_copy``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

Severity = Literal["info", "low", "moderate", "high", "critical"]
DownloadPeriod = Literal["last-day", "last-week", "last-month", "last-year"]

# Worst first.
SEVERITY_ORDER: tuple[Severity, ...] = ("critical", "high", "moderate", "low", "info")


class Author(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    email: str | None = None
    url: str | None = None


class SearchScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    final: float = 0.0
    quality: float = 0.0
    popularity: float = 0.0
    maintenance: float = 0.0


class PackageSearchResult(BaseModel):
    """One hit from the registry search API."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str = ""
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    author: Author | None = None
    published_at: str | None = None
    score: SearchScore = Field(default_factory=SearchScore)
    search_score: float | None = None


class DownloadStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    downloads: int = 0
    period: DownloadPeriod = "last-week"
    start: str = ""
    end: str = ""


class BundleSize(BaseModel):
    """Package size, from bundlephobia or the registry tarball metadata.

    Bundlephobia reports the minified and gzipped bundle.  The registry
    fallback only knows the unpacked tarball, so ``size`` is the unpacked
    byte count and ``gzip`` stays None.
    """

    model_config = ConfigDict(frozen=True)

    size: int = 0
    gzip: int | None = 0
    dependency_count: int | None = 0
    version: str | None = None
    file_count: int | None = None
    source: Literal["bundlephobia", "registry"] = "bundlephobia"


class Vulnerability(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    aliases: list[str] = Field(default_factory=list)
    title: str = ""
    severity: Severity = "info"
    url: str = ""
    overview: str = ""
    recommendation: str = ""
    versions: list[str] = Field(default_factory=list)
    published: str | None = None
    updated: str | None = None
    source: str = ""        # github | osv


class SecurityInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    vulnerabilities: list[Vulnerability] = Field(default_factory=list)
    severity: Severity = "info"

    @computed_field
    @property
    def has_vulnerabilities(self) -> bool:
        return bool(self.vulnerabilities)


class PackageInfo(BaseModel):
    """A single published version's manifest, optionally enriched."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    homepage: str | None = None
    repository: str | None = None
    license: str | None = None
    author: Author | None = None
    maintainers: list[Author] = Field(default_factory=list)
    dependencies: dict[str, str] = Field(default_factory=dict)
    dev_dependencies: dict[str, str] = Field(default_factory=dict)
    peer_dependencies: dict[str, str] = Field(default_factory=dict)
    engines: dict[str, str] = Field(default_factory=dict)
    published_at: str | None = None

    download_stats: DownloadStats | None = None
    bundle_size: BundleSize | None = None
    security: SecurityInfo | None = None


class LicenseEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    version: str = ""
    license: str = "Unknown"


class LicenseReport(BaseModel):
    """Licenses of a project's installed direct dependencies."""

    model_config = ConfigDict(frozen=True)

    packages: list[LicenseEntry] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)    # declared but not installed

    @computed_field
    @property
    def by_license(self) -> dict[str, list[str]]:
        """Group ``name@version`` strings by license."""
        groups: dict[str, list[str]] = {}
        for entry in self.packages:
            groups.setdefault(entry.license, []).append(f"{entry.name}@{entry.version}")
        return groups
