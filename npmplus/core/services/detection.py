"""
Manager detection — decide which package manager governs a directory.

Looks at the filesystem only, in a fixed order (first match wins):

    1. Lock files        pnpm-lock.yaml > yarn.lock > package-lock.json
    2. Config files      .npmrc, .yarnrc.yml, .yarnrc, pnpm-workspace.yaml
    3. package.json      "packageManager": "pnpm@8.6.0"
    4. Default           npm

A project with several lock files resolves to pnpm, then yarn, then npm.
Nothing is written and nothing is cached: every call re-detects.

The installed version is probed with ``<manager> --version`` on a best
effort basis; any failure just leaves ``version`` unset.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from npmplus.core.models.operation import DetectionResult, ManagerIdentity

if TYPE_CHECKING:
    from npmplus.adapters.shell.process import ProcessExecutor

logger = logging.getLogger(__name__)


_LOCK_FILES: tuple[tuple[str, ManagerIdentity], ...] = (
    ("pnpm-lock.yaml", ManagerIdentity.PNPM),
    ("yarn.lock", ManagerIdentity.YARN),
    ("package-lock.json", ManagerIdentity.NPM),
)

_CONFIG_FILES: tuple[tuple[str, ManagerIdentity], ...] = (
    (".npmrc", ManagerIdentity.NPM),
    (".yarnrc.yml", ManagerIdentity.YARN),
    (".yarnrc", ManagerIdentity.YARN),
    ("pnpm-workspace.yaml", ManagerIdentity.PNPM),
)


class ManagerDetector:
    """Filesystem-based package-manager detection.

    Args:
        executor: Used for the ``--version`` probe.  None skips probing.
        probe_version: Set False to never spawn a process.
        version_timeout_ms: Timeout for the version probe.
    """

    def __init__(
        self,
        executor: ProcessExecutor | None = None,
        probe_version: bool = True,
        version_timeout_ms: int = 5_000,
    ):
        self._executor = executor
        self._probe_version = probe_version
        self._version_timeout_ms = version_timeout_ms

    def detect(self, directory: Path) -> DetectionResult:
        directory = Path(directory)
        manager, lock_file, source = _match(directory)
        version = self._version_of(manager, directory)

        logger.debug(
            "Detected %s in %s (source=%s, lock=%s, version=%s)",
            manager, directory, source, lock_file.name if lock_file else None, version,
        )
        return DetectionResult(
            manager=manager,
            lock_file=lock_file,
            version=version,
            source=source,
        )

    def _version_of(self, manager: ManagerIdentity, directory: Path) -> str | None:
        if not self._probe_version or self._executor is None:
            return None

        cwd = directory if directory.is_dir() else Path.cwd()
        outcome = self._executor.execute(
            [manager.value, "--version"], cwd=cwd, timeout_ms=self._version_timeout_ms,
        )
        if not outcome.ok:
            logger.debug("Version probe for %s failed: %s", manager, outcome.diagnostic)
            return None

        lines = outcome.stdout.strip().splitlines()
        return lines[-1].strip() if lines else None


def _match(directory: Path) -> tuple[ManagerIdentity, Path | None, str]:
    for filename, manager in _LOCK_FILES:
        path = directory / filename
        if path.is_file():
            return manager, path, "lockfile"

    for filename, manager in _CONFIG_FILES:
        if (directory / filename).is_file():
            return manager, None, "config"

    declared = _declared_manager(directory / "package.json")
    if declared is not None:
        return declared, None, "manifest"

    return ManagerIdentity.NPM, None, "default"


def _declared_manager(manifest: Path) -> ManagerIdentity | None:
    """Read the ``packageManager`` field, ignoring unreadable manifests."""
    if not manifest.is_file():
        return None
    try:
        data = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug("Ignoring unreadable %s: %s", manifest, e)
        return None

    if not isinstance(data, dict):
        return None
    field_value = data.get("packageManager")
    if not isinstance(field_value, str):
        return None

    name = field_value.split("@", 1)[0].strip().lower()
    try:
        return ManagerIdentity(name)
    except ValueError:
        logger.debug("Unknown packageManager %r in %s", field_value, manifest)
        return None
