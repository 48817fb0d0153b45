"""
Test doubles shared across test modules.
"""

from collections import Counter

from npmplus.adapters.shell.process import ProcessExecutor
from npmplus.core.models.operation import ExecutionOutcome
from npmplus.core.models.package import (
    BundleSize,
    DownloadStats,
    PackageInfo,
    PackageSearchResult,
    SecurityInfo,
)
from npmplus.core.observability.metrics import MetricsRegistry
from npmplus.core.services.cache import ResponseCache
from npmplus.core.services.detection import ManagerDetector
from npmplus.core.services.gateway import PackageGateway
from npmplus.core.services.package_ops import PackageOperationService
from npmplus.core.services.registry_ops import RegistryOperations

TRACKER_STDERR = 'npm ERR! Tracker "idealTree" already exists\n'


def ok(stdout: str = "") -> ExecutionOutcome:
    return ExecutionOutcome(exit_code=0, stdout=stdout)


def failed(exit_code: int = 1, stdout: str = "", stderr: str = "") -> ExecutionOutcome:
    return ExecutionOutcome(exit_code=exit_code, stdout=stdout, stderr=stderr)


class ScriptedExecutor(ProcessExecutor):
    """ProcessExecutor whose ``execute`` replays canned outcomes.

    Responses are consumed in call order; once exhausted every call
    succeeds with empty output.  A response may also be a callable
    taking the argv.  ``calls`` records every argv, ``sleeps`` every
    backoff pause.
    """

    def __init__(self, responses=None, **kwargs):
        self.calls: list[list[str]] = []
        self.sleeps: list[float] = []
        self._responses = list(responses or [])
        kwargs.setdefault("metrics", MetricsRegistry())
        super().__init__(sleep=self.sleeps.append, **kwargs)

    def execute(self, argv, cwd, timeout_ms=None):
        self.calls.append(list(argv))
        response = self._responses.pop(0) if self._responses else ok()
        if callable(response):
            response = response(argv)
        return response.model_copy(update={"argv": list(argv)})


class FakeRegistryClient:
    """Stands in for NpmRegistryClient; counts calls per method.

    ``bundle_error`` fails only the bundlephobia lookup so the registry
    size fallback can be exercised.
    """

    def __init__(self, manifests=None, error=None, bundle_error=None):
        self.calls = Counter()
        self._manifests = manifests or {}
        self._error = error
        self._bundle_error = bundle_error

    def _maybe_fail(self):
        if self._error is not None:
            raise self._error

    def search(self, query, limit=25, offset=0):
        self.calls["search"] += 1
        self._maybe_fail()
        return [PackageSearchResult(name=f"{query}-{i}", version="1.0.0") for i in range(2)]

    def package_manifest(self, name, version=None):
        self.calls["package_manifest"] += 1
        self._maybe_fail()
        if name in self._manifests:
            return self._manifests[name]
        return PackageInfo(name=name, version=version or "2.0.0", license="MIT")

    def download_stats(self, name, period="last-week"):
        self.calls["download_stats"] += 1
        self._maybe_fail()
        return DownloadStats(downloads=1234, period=period, start="2026-10-01", end="2026-10-07")

    def bundle_size(self, name, version=None):
        self.calls["bundle_size"] += 1
        self._maybe_fail()
        if self._bundle_error is not None:
            raise self._bundle_error
        return BundleSize(size=10240, gzip=4096, dependency_count=1)

    def registry_bundle_size(self, name, version=None):
        self.calls["registry_bundle_size"] += 1
        self._maybe_fail()
        return BundleSize(
            size=53248, gzip=None, dependency_count=0,
            version=version or "2.0.0", file_count=12, source="registry",
        )


class FakeAdvisoryClient:
    def __init__(self, info=None):
        self.calls = 0
        self._info = info or SecurityInfo()

    def check(self, name, version=None):
        self.calls += 1
        return self._info


def make_gateway(responses=None, registry=None, advisories=None, executor=None, max_concurrency=4):
    """A gateway over ScriptedExecutor and the fake upstreams; returns (gateway, executor)."""
    metrics = MetricsRegistry()
    executor = executor or ScriptedExecutor(responses, metrics=metrics)
    detector = ManagerDetector(executor, probe_version=False)
    cache = ResponseCache(metrics=metrics)
    gateway = PackageGateway(
        packages=PackageOperationService(detector, executor, metrics),
        registry=RegistryOperations(
            cache,
            registry or FakeRegistryClient(),
            advisories or FakeAdvisoryClient(),
        ),
        detector=detector,
        cache=cache,
        metrics=metrics,
        max_concurrency=max_concurrency,
    )
    return gateway, executor
