"""
Registry-bound operations — cached lookups against npm and advisory APIs.

Every lookup goes through the response cache: build a ``create_key``
key, return the cached value on a hit, otherwise call the client and
store the answer with the TTL class for that kind of data.  Client
failures propagate as ``RegistryError`` and are never cached.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from npmplus.adapters.registry.advisories import AdvisoryClient
from npmplus.adapters.registry.http import RegistryError
from npmplus.adapters.registry.npm import NpmRegistryClient
from npmplus.core.models.package import (
    BundleSize,
    DownloadPeriod,
    DownloadStats,
    LicenseEntry,
    PackageInfo,
    PackageSearchResult,
    SecurityInfo,
)
from npmplus.core.models.settings import CacheSettings
from npmplus.core.services.cache import ResponseCache, create_key
from npmplus.core.services.licenses import UNKNOWN_LICENSE

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RegistryOperations:
    """Search, metadata, size, download and security lookups with caching."""

    def __init__(
        self,
        cache: ResponseCache,
        registry: NpmRegistryClient,
        advisories: AdvisoryClient,
        ttls: CacheSettings | None = None,
    ):
        self._cache = cache
        self._registry = registry
        self._advisories = advisories
        self._ttls = ttls or CacheSettings()

    def search(self, query: str, limit: int = 25, offset: int = 0) -> list[PackageSearchResult]:
        if not query.strip():
            raise ValueError("search query must not be empty")
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if offset < 0:
            raise ValueError("offset must not be negative")
        results = self._cached(
            create_key("search", query, limit, offset),
            self._ttls.search_ttl,
            lambda: self._registry.search(query, limit, offset),
        )
        return list(results)

    def package_info(
        self,
        name: str,
        version: str | None = None,
        *,
        include_downloads: bool = True,
        include_bundle: bool = True,
        include_security: bool = True,
    ) -> PackageInfo:
        """Manifest for ``name`` enriched with optional extras.

        Each enrichment is best effort: if its upstream fails the field
        stays None and the rest of the answer is still returned.
        """
        info = self._cached(
            create_key("packageInfo", name, version),
            self._ttls.metadata_ttl,
            lambda: self._registry.package_manifest(name, version),
        )

        extras: dict[str, Any] = {}
        if include_downloads:
            extras["download_stats"] = self._optional(
                "downloads", name, lambda: self.download_stats(name, "last-week"),
            )
        if include_bundle:
            extras["bundle_size"] = self._optional(
                "bundle size", name, lambda: self.bundle_size(name, info.version),
            )
        if include_security:
            extras["security"] = self._optional(
                "security", name, lambda: self.check_vulnerability(name, info.version),
            )
        return info.model_copy(update=extras)

    def bundle_size(self, name: str, version: str | None = None) -> BundleSize:
        """Bundlephobia size, or the registry's unpacked size when it fails.

        Raises ``RegistryError`` only when both sources fail.
        """
        def fetch() -> BundleSize:
            try:
                return self._registry.bundle_size(name, version)
            except RegistryError as e:
                logger.warning("Bundlephobia failed for %s, using registry size: %s", name, e)
                return self._registry.registry_bundle_size(name, version)

        return self._cached(
            create_key("bundleSize", name, version),
            self._ttls.bundle_ttl,
            fetch,
        )

    def download_stats(self, name: str, period: DownloadPeriod = "last-week") -> DownloadStats:
        return self._cached(
            create_key("downloadStats", name, period),
            self._ttls.downloads_ttl,
            lambda: self._registry.download_stats(name, period),
        )

    def check_vulnerability(self, name: str, version: str | None = None) -> SecurityInfo:
        return self._cached(
            create_key("checkVulnerability", name, version),
            self._ttls.vulnerability_ttl,
            lambda: self._advisories.check(name, version),
        )

    def check_license(self, name: str, version: str | None = None) -> LicenseEntry:
        """License declared by one published version of ``name``."""
        def fetch() -> LicenseEntry:
            manifest = self._registry.package_manifest(name, version)
            return LicenseEntry(
                name=manifest.name,
                version=manifest.version,
                license=manifest.license or UNKNOWN_LICENSE,
            )

        return self._cached(
            create_key("checkLicense", name, version),
            self._ttls.metadata_ttl,
            fetch,
        )

    # ── Internals ───────────────────────────────────────────────

    def _cached(self, key: str, ttl: int, fetch: Callable[[], T]) -> T:
        hit = self._cache.get(key)
        if hit is not None:
            logger.debug("Cache hit: %s", key)
            return hit

        value = fetch()
        self._cache.set(key, value, ttl)
        return value

    @staticmethod
    def _optional(what: str, name: str, fetch: Callable[[], T]) -> T | None:
        try:
            return fetch()
        except RegistryError as e:
            logger.info("Skipping %s for %s: %s", what, name, e)
            return None
