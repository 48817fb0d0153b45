"""
License inspection — what licenses a project's dependencies carry.

Reads ``package.json`` and each direct dependency's installed manifest
under ``node_modules``.  Purely local and never cached: the answer
changes whenever something is installed.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from npmplus.core.models.package import LicenseEntry, LicenseReport

logger = logging.getLogger(__name__)

UNKNOWN_LICENSE = "Unknown"


def license_name(raw: Any) -> str | None:
    """Normalise a manifest's ``license``/``licenses`` value to one string.

    Accepts the SPDX string form, the legacy ``{"type": ...}`` object, or
    a list of either (joined with `` OR ``).
    """
    if isinstance(raw, str):
        return raw.strip() or None
    if isinstance(raw, dict):
        value = raw.get("type") or raw.get("name")
        return value.strip() if isinstance(value, str) and value.strip() else None
    if isinstance(raw, list):
        names = [n for n in (license_name(item) for item in raw) if n]
        return " OR ".join(names) if names else None
    return None


def manifest_license(manifest: dict[str, Any]) -> str | None:
    return license_name(manifest.get("license")) or license_name(manifest.get("licenses"))


def list_licenses(cwd: Path, production: bool = False) -> LicenseReport:
    """Collect licenses of the direct dependencies installed under ``cwd``.

    Args:
        cwd: Project directory containing package.json.
        production: Skip devDependencies.

    Raises:
        FileNotFoundError: No package.json in ``cwd``.
        ValueError: package.json is not valid JSON.
    """
    manifest_path = Path(cwd) / "package.json"
    if not manifest_path.is_file():
        raise FileNotFoundError(f"No package.json in {cwd}")

    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid package.json in {cwd}: {e}") from e

    declared = dict(manifest.get("dependencies") or {})
    if not production:
        declared.update(manifest.get("devDependencies") or {})

    entries: list[LicenseEntry] = []
    missing: list[str] = []
    for name in sorted(declared):
        installed = _read_installed(Path(cwd) / "node_modules" / name / "package.json")
        if installed is None:
            missing.append(name)
            continue
        entries.append(LicenseEntry(
            name=name,
            version=str(installed.get("version", "")),
            license=manifest_license(installed) or UNKNOWN_LICENSE,
        ))

    logger.debug(
        "License scan of %s: %d installed, %d missing",
        cwd, len(entries), len(missing),
    )
    return LicenseReport(packages=entries, missing=missing)


def _read_installed(path: Path) -> dict[str, Any] | None:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug("Skipping unreadable %s: %s", path, e)
        return None
    return data if isinstance(data, dict) else None
