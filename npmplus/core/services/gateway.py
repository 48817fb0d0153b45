"""
Gateway — the inbound boundary a tool-invocation layer calls into.

``build_gateway`` wires one cache, one metrics registry, one executor
and the services on top of them.  ``PackageGateway.call`` dispatches a
logical operation name plus a parameter mapping to the right service
method and returns its model.

Subprocess-backed calls share a bounded semaphore so a burst of tool
calls cannot fork an unbounded number of package-manager processes.
Registry lookups are answered from the cache and are not gated.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from npmplus.adapters.registry.advisories import AdvisoryClient
from npmplus.adapters.registry.npm import NpmRegistryClient
from npmplus.adapters.shell.process import ProcessExecutor
from npmplus.core.models.operation import (
    DetectionResult,
    LogicalOperation,
    ManagerIdentity,
    OperationFlags,
    OperationRequest,
)
from npmplus.core.models.package import DownloadPeriod
from npmplus.core.models.settings import Settings
from npmplus.core.observability.metrics import MetricsRegistry
from npmplus.core.reliability.recovery import RecoveryPolicy
from npmplus.core.services.cache import ResponseCache
from npmplus.core.services.detection import ManagerDetector
from npmplus.core.services.licenses import list_licenses
from npmplus.core.services.package_ops import PackageOperationService
from npmplus.core.services.registry_ops import RegistryOperations

logger = logging.getLogger(__name__)


# ── Call parameters ─────────────────────────────────────────────


class _Params(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class PackageCallParams(_Params):
    packages: list[str] = Field(default_factory=list)
    cwd: Path = Field(default_factory=Path.cwd)
    dev: bool = False
    global_: bool = Field(default=False, alias="global")
    production: bool = False
    force: bool = False
    fix: bool = False
    exact: bool = False
    manager: ManagerIdentity | None = None
    timeout_ms: int | None = Field(default=None, alias="timeoutMs", gt=0)
    depth: int = Field(default=3, ge=0)

    def to_request(self, operation: LogicalOperation) -> OperationRequest:
        return OperationRequest(
            operation=operation,
            packages=self.packages,
            cwd=self.cwd,
            flags=OperationFlags(
                dev=self.dev,
                global_=self.global_,
                production=self.production,
                force=self.force,
                fix=self.fix,
                exact=self.exact,
                depth=self.depth,
            ),
            manager=self.manager,
            timeout_ms=self.timeout_ms,
        )


class SearchParams(_Params):
    query: str
    limit: int = Field(default=25, ge=1, le=250)
    offset: int = Field(default=0, ge=0)


class PackageRefParams(_Params):
    name: str = Field(min_length=1)
    version: str | None = None


class PackageInfoParams(PackageRefParams):
    include_downloads: bool = Field(default=True, alias="includeDownloads")
    include_bundle: bool = Field(default=True, alias="includeBundle")
    include_security: bool = Field(default=True, alias="includeSecurity")


class DownloadParams(_Params):
    name: str = Field(min_length=1)
    period: DownloadPeriod = "last-week"


class ProjectParams(_Params):
    cwd: Path = Field(default_factory=Path.cwd)
    production: bool = False


_PACKAGE_CALLS: dict[str, LogicalOperation] = {
    "install": LogicalOperation.INSTALL,
    "update": LogicalOperation.UPDATE,
    "remove": LogicalOperation.REMOVE,
    "audit": LogicalOperation.AUDIT,
    "outdated": LogicalOperation.OUTDATED,
    "cleanCache": LogicalOperation.CLEAN_CACHE,
    "dependencyTree": LogicalOperation.DEPENDENCY_TREE,
}


# ── Gateway ─────────────────────────────────────────────────────


class PackageGateway:
    """Dispatches named calls to the package and registry services."""

    def __init__(
        self,
        packages: PackageOperationService,
        registry: RegistryOperations,
        detector: ManagerDetector,
        cache: ResponseCache,
        metrics: MetricsRegistry,
        max_concurrency: int = 4,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.packages = packages
        self.registry = registry
        self.detector = detector
        self.cache = cache
        self._metrics = metrics
        self._gate = threading.BoundedSemaphore(max_concurrency)

        self._handlers: dict[str, Callable[[dict[str, Any]], Any]] = {
            "search": self._search,
            "packageInfo": self._package_info,
            "bundleSize": self._bundle_size,
            "downloadStats": self._download_stats,
            "checkVulnerability": self._check_vulnerability,
            "checkLicense": self._check_license,
            "listLicenses": self._list_licenses,
            "detect": self._detect,
        }

    @property
    def operations(self) -> list[str]:
        """Every name ``call`` accepts."""
        return sorted([*_PACKAGE_CALLS, *self._handlers])

    def call(self, operation: str, params: dict[str, Any] | None = None) -> Any:
        """Run the named operation.

        Raises:
            ValueError: Unknown operation name or invalid parameters.
            RegistryError: A registry-bound lookup failed upstream.
        """
        params = params or {}
        logger.debug("Gateway call %s %s", operation, params)
        self._metrics.counter("gateway_calls", operation=operation).inc()

        if operation in _PACKAGE_CALLS:
            request = PackageCallParams.model_validate(params).to_request(_PACKAGE_CALLS[operation])
            with self._gate:
                return self.packages.run(request)

        handler = self._handlers.get(operation)
        if handler is None:
            raise ValueError(
                f"Unknown operation: {operation!r} (expected one of {', '.join(self.operations)})"
            )
        return handler(params)

    def metrics(self) -> dict[str, Any]:
        """Snapshot of every counter plus the cache summary."""
        snapshot: dict[str, Any] = self._metrics.to_dict()
        snapshot["cache"] = self.cache.get_metrics().model_dump()
        return snapshot

    def close(self) -> None:
        self.cache.close()

    def __enter__(self) -> PackageGateway:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ── Handlers ────────────────────────────────────────────────

    def _search(self, params: dict[str, Any]) -> Any:
        p = SearchParams.model_validate(params)
        return self.registry.search(p.query, p.limit, p.offset)

    def _package_info(self, params: dict[str, Any]) -> Any:
        p = PackageInfoParams.model_validate(params)
        return self.registry.package_info(
            p.name,
            p.version,
            include_downloads=p.include_downloads,
            include_bundle=p.include_bundle,
            include_security=p.include_security,
        )

    def _bundle_size(self, params: dict[str, Any]) -> Any:
        p = PackageRefParams.model_validate(params)
        return self.registry.bundle_size(p.name, p.version)

    def _download_stats(self, params: dict[str, Any]) -> Any:
        p = DownloadParams.model_validate(params)
        return self.registry.download_stats(p.name, p.period)

    def _check_vulnerability(self, params: dict[str, Any]) -> Any:
        p = PackageRefParams.model_validate(params)
        return self.registry.check_vulnerability(p.name, p.version)

    def _check_license(self, params: dict[str, Any]) -> Any:
        p = PackageRefParams.model_validate(params)
        return self.registry.check_license(p.name, p.version)

    def _list_licenses(self, params: dict[str, Any]) -> Any:
        p = ProjectParams.model_validate(params)
        return list_licenses(p.cwd, production=p.production)

    def _detect(self, params: dict[str, Any]) -> DetectionResult:
        p = ProjectParams.model_validate(params)
        with self._gate:
            return self.detector.detect(p.cwd)


def build_gateway(
    settings: Settings | None = None,
    start_sweeper: bool = True,
) -> PackageGateway:
    """Wire a gateway from settings. One cache and one metrics registry per call."""
    settings = settings or Settings()
    metrics = MetricsRegistry()

    cache = ResponseCache(
        default_ttl=settings.cache.default_ttl,
        check_period=settings.cache.check_period,
        max_keys=settings.cache.max_keys,
        metrics=metrics,
    )
    if start_sweeper:
        cache.start()

    executor = ProcessExecutor(
        timeout_ms=settings.executor.timeout_ms,
        recovery=RecoveryPolicy(
            max_attempts=settings.executor.max_attempts,
            backoff_seconds=settings.executor.backoff_seconds,
        ),
        metrics=metrics,
    )
    detector = ManagerDetector(
        executor,
        probe_version=settings.executor.probe_versions,
        version_timeout_ms=settings.executor.version_timeout_ms,
    )

    return PackageGateway(
        packages=PackageOperationService(detector, executor, metrics),
        registry=RegistryOperations(
            cache,
            NpmRegistryClient(settings.registry),
            AdvisoryClient(settings.registry),
            settings.cache,
        ),
        detector=detector,
        cache=cache,
        metrics=metrics,
        max_concurrency=settings.gateway.max_concurrency,
    )
