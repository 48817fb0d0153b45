"""
npm registry client — search, manifests, download counts, bundle size.

Talks to three public services:

    registry.npmjs.org   search and package documents
    api.npmjs.org        download counts
    bundlephobia.com     minified / gzipped bundle size

When bundlephobia has no answer, the registry packument still carries
the unpacked tarball size for every version.

Results are mapped into the package models; every failure is a
``RegistryError``.
"""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import quote, urlencode

from npmplus.adapters.registry.http import RegistryError, fetch_json
from npmplus.core.models.package import (
    Author,
    BundleSize,
    DownloadPeriod,
    DownloadStats,
    PackageInfo,
    PackageSearchResult,
    SearchScore,
)
from npmplus.core.models.settings import RegistrySettings
from npmplus.core.services.licenses import manifest_license

logger = logging.getLogger(__name__)

# Search ranking weights
_SEARCH_WEIGHTS = {"quality": "0.9", "popularity": "0.8", "maintenance": "0.7"}

# "Name <email> (url)"
_AUTHOR_STRING = re.compile(r"^([^<(]+?)(?:\s*<([^>]+)>)?(?:\s*\(([^)]+)\))?$")


class NpmRegistryClient:
    """HTTP client for the npm registry and its satellite APIs."""

    def __init__(self, settings: RegistrySettings | None = None):
        self._settings = settings or RegistrySettings()

    def search(self, query: str, limit: int = 25, offset: int = 0) -> list[PackageSearchResult]:
        params = urlencode({
            "text": query, "size": limit, "from": offset, **_SEARCH_WEIGHTS,
        })
        data = self._get(f"{self._settings.registry_url}/-/v1/search?{params}")
        objects = data.get("objects") if isinstance(data, dict) else None
        return [_search_result(item) for item in objects or [] if isinstance(item, dict)]

    def package_manifest(self, name: str, version: str | None = None) -> PackageInfo:
        """One version's manifest (``latest`` when no version is given)."""
        url = f"{self._settings.registry_url}/{_registry_path(name)}/{quote(version or 'latest')}"
        data = self._get(url)
        if not isinstance(data, dict) or "name" not in data:
            raise RegistryError(f"Unexpected manifest for {name}", url=url)
        return _package_info(data)

    def package_metadata(self, name: str) -> dict[str, Any]:
        """The full packument: every version, dist-tags and publish times."""
        url = f"{self._settings.registry_url}/{_registry_path(name)}"
        data = self._get(url)
        if not isinstance(data, dict):
            raise RegistryError(f"Unexpected metadata for {name}", url=url)
        return data

    def download_stats(self, name: str, period: DownloadPeriod = "last-week") -> DownloadStats:
        url = f"{self._settings.api_url}/downloads/point/{period}/{quote(name, safe='@/')}"
        data = self._get(url)
        if not isinstance(data, dict):
            raise RegistryError(f"Unexpected download stats for {name}", url=url)
        return DownloadStats(
            downloads=int(data.get("downloads") or 0),
            period=period,
            start=str(data.get("start") or ""),
            end=str(data.get("end") or ""),
        )

    def bundle_size(self, name: str, version: str | None = None) -> BundleSize:
        spec = f"{name}@{version}" if version else name
        url = f"{self._settings.bundlephobia_url}/size?{urlencode({'package': spec})}"
        data = self._get(url)
        if not isinstance(data, dict):
            raise RegistryError(f"Unexpected bundle size for {spec}", url=url)
        return BundleSize(
            size=int(data.get("size") or 0),
            gzip=int(data.get("gzip") or 0),
            dependency_count=int(data.get("dependencyCount") or 0),
            version=data.get("version") or version,
        )

    def registry_bundle_size(self, name: str, version: str | None = None) -> BundleSize:
        """Unpacked tarball size from the packument's ``dist`` block.

        Used when bundlephobia cannot answer.  ``version`` defaults to
        the ``latest`` dist-tag.
        """
        meta = self.package_metadata(name)
        resolved = version or (meta.get("dist-tags") or {}).get("latest")
        versions = meta.get("versions") or {}
        manifest = versions.get(resolved) if resolved else None
        if not isinstance(manifest, dict):
            raise RegistryError(f"Version {resolved or 'latest'} of {name} not found")

        dist = manifest.get("dist") or {}
        file_count = dist.get("fileCount")
        return BundleSize(
            size=int(dist.get("unpackedSize") or 0),
            gzip=None,
            dependency_count=len(manifest.get("dependencies") or {}),
            version=resolved,
            file_count=int(file_count) if file_count is not None else None,
            source="registry",
        )

    def _get(self, url: str) -> Any:
        return fetch_json(
            url,
            timeout=self._settings.timeout_seconds,
            user_agent=self._settings.user_agent,
        )


# ── Mapping ─────────────────────────────────────────────────────


def _registry_path(name: str) -> str:
    # Scoped names keep the "@" but escape the slash: @types%2Fnode
    return quote(name, safe="@")


def parse_author(raw: Any) -> Author | None:
    if isinstance(raw, str):
        match = _AUTHOR_STRING.match(raw.strip())
        if not match:
            return Author(name=raw.strip()) if raw.strip() else None
        name, email, url = match.groups()
        return Author(name=name.strip(), email=email, url=url)
    if isinstance(raw, dict) and raw.get("name"):
        return Author(name=str(raw["name"]), email=raw.get("email"), url=raw.get("url"))
    return None


def _search_result(item: dict[str, Any]) -> PackageSearchResult:
    pkg = item.get("package") or {}
    score = item.get("score") or {}
    detail = score.get("detail") or {}
    return PackageSearchResult(
        name=pkg.get("name", ""),
        version=pkg.get("version", ""),
        description=pkg.get("description") or "",
        keywords=list(pkg.get("keywords") or []),
        author=parse_author(pkg.get("author")),
        published_at=pkg.get("date"),
        score=SearchScore(
            final=float(score.get("final") or 0),
            quality=float(detail.get("quality") or 0),
            popularity=float(detail.get("popularity") or 0),
            maintenance=float(detail.get("maintenance") or 0),
        ),
        search_score=item.get("searchScore"),
    )


def _repository_url(raw: Any) -> str | None:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict) and isinstance(raw.get("url"), str):
        return raw["url"]
    return None


def _string_map(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    return {str(k): str(v) for k, v in raw.items()}


def _package_info(manifest: dict[str, Any]) -> PackageInfo:
    homepage = manifest.get("homepage")
    maintainers = [a for a in (parse_author(m) for m in manifest.get("maintainers") or []) if a]
    return PackageInfo(
        name=manifest["name"],
        version=str(manifest.get("version", "")),
        description=manifest.get("description") or "",
        keywords=[k for k in manifest.get("keywords") or [] if isinstance(k, str)],
        homepage=homepage if isinstance(homepage, str) else None,
        repository=_repository_url(manifest.get("repository")),
        license=manifest_license(manifest),
        author=parse_author(manifest.get("author")),
        maintainers=maintainers,
        dependencies=_string_map(manifest.get("dependencies")),
        dev_dependencies=_string_map(manifest.get("devDependencies")),
        peer_dependencies=_string_map(manifest.get("peerDependencies")),
        engines=_string_map(manifest.get("engines")),
    )
