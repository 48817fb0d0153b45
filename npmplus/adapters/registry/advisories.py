"""
Advisory client — known vulnerabilities from GitHub and OSV.

Both databases are queried for every check.  A source that fails is
logged and contributes nothing; the other still answers.  Findings are
de-duplicated by advisory id (OSV aliases included, so a GHSA reported
by both sources appears once) and the overall severity is the worst
one found.

Version matching is deliberately simple: dotted numeric comparison, a
pre-release sorting before its release.  A version is affected when it
falls inside any ``[introduced, fixed)`` interval.
"""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import urlencode

from npmplus.adapters.registry.http import RegistryError, fetch_json
from npmplus.core.models.package import SEVERITY_ORDER, SecurityInfo, Severity, Vulnerability
from npmplus.core.models.settings import RegistrySettings

logger = logging.getLogger(__name__)

_GITHUB_SEVERITY: dict[str, Severity] = {
    "critical": "critical",
    "high": "high",
    "moderate": "moderate",
    "medium": "moderate",
    "low": "low",
}

# CVSS base score → severity, checked top down
_CVSS_THRESHOLDS: tuple[tuple[float, Severity], ...] = (
    (9.0, "critical"),
    (7.0, "high"),
    (4.0, "moderate"),
    (0.1, "low"),
)

_COMPARATOR = re.compile(r"^\s*(>=|<=|>|<|=)?\s*v?([0-9][^\s,]*)\s*$")


class AdvisoryClient:
    """Vulnerability lookups against GitHub Security Advisories and OSV."""

    def __init__(self, settings: RegistrySettings | None = None):
        self._settings = settings or RegistrySettings()

    def check(self, name: str, version: str | None = None) -> SecurityInfo:
        found: list[Vulnerability] = []
        for source, lookup in (("github", self._github), ("osv", self._osv)):
            try:
                found.extend(lookup(name, version))
            except RegistryError as e:
                logger.warning("%s advisory lookup for %s failed: %s", source, name, e)

        unique = deduplicate(found)
        return SecurityInfo(vulnerabilities=unique, severity=overall_severity(unique))

    # ── GitHub ──────────────────────────────────────────────────

    def _github(self, name: str, version: str | None) -> list[Vulnerability]:
        url = f"{self._settings.github_advisory_url}?{urlencode({'ecosystem': 'npm', 'affects': name})}"
        try:
            data = fetch_json(
                url,
                headers={"Accept": "application/vnd.github+json"},
                timeout=self._settings.timeout_seconds,
                user_agent=self._settings.user_agent,
            )
        except RegistryError as e:
            if e.status == 404:
                return []
            raise

        results = []
        for advisory in data if isinstance(data, list) else []:
            ranges = _github_ranges(advisory, name)
            if ranges is None:
                continue
            if version and ranges and not any(in_range_expr(version, r) for r in ranges):
                continue
            results.append(_from_github(advisory, name, ranges))
        return results

    # ── OSV ─────────────────────────────────────────────────────

    def _osv(self, name: str, version: str | None) -> list[Vulnerability]:
        query: dict[str, Any] = {"package": {"ecosystem": "npm", "name": name}}
        if version:
            query["version"] = version
        data = fetch_json(
            f"{self._settings.osv_url}/query",
            method="POST",
            body=query,
            timeout=self._settings.timeout_seconds,
            user_agent=self._settings.user_agent,
        )

        results = []
        for vuln in (data or {}).get("vulns") or []:
            if version and not _osv_affects(vuln, name, version):
                continue
            results.append(_from_osv(vuln, name))
        return results


# ═══════════════════════════════════════════════════════════════════
#  Aggregation
# ═══════════════════════════════════════════════════════════════════


def deduplicate(vulnerabilities: list[Vulnerability]) -> list[Vulnerability]:
    """Keep the first report of each advisory id, preserving order."""
    seen: set[str] = set()
    unique = []
    for vuln in vulnerabilities:
        ids = {vuln.id, *vuln.aliases}
        if ids & seen:
            continue
        seen.update(ids)
        unique.append(vuln)
    return unique


def overall_severity(vulnerabilities: list[Vulnerability]) -> Severity:
    present = {v.severity for v in vulnerabilities}
    for severity in SEVERITY_ORDER:
        if severity in present:
            return severity
    return "info"


def severity_from_cvss(score: float) -> Severity:
    for threshold, severity in _CVSS_THRESHOLDS:
        if score >= threshold:
            return severity
    return "info"


# ═══════════════════════════════════════════════════════════════════
#  Version ranges
# ═══════════════════════════════════════════════════════════════════


def version_key(version: str) -> tuple[tuple[int, ...], int]:
    """Sortable key: numeric core padded to three parts, release after pre-release."""
    core, _, pre = version.strip().lstrip("v").split("+", 1)[0].partition("-")
    parts = []
    for piece in core.split("."):
        digits = re.match(r"\d+", piece)
        parts.append(int(digits.group()) if digits else 0)
    while len(parts) < 3:
        parts.append(0)
    return tuple(parts), 0 if pre else 1


def in_interval(version: str, introduced: str | None, fixed: str | None) -> bool:
    """Whether ``version`` lies in ``[introduced, fixed)``."""
    key = version_key(version)
    if introduced and key < version_key(introduced):
        return False
    if fixed and key >= version_key(fixed):
        return False
    return True


def in_range_expr(version: str, expr: str) -> bool:
    """Match a GitHub-style range such as ``>= 4.0.0, < 4.17.21``.

    ``||`` separates alternatives; commas join comparators.  An
    unparseable comparator never matches.
    """
    key = version_key(version)
    for alternative in expr.split("||"):
        ok = True
        for comparator in alternative.split(","):
            if not comparator.strip():
                continue
            match = _COMPARATOR.match(comparator)
            if not match:
                ok = False
                break
            op, bound = match.group(1) or "=", version_key(match.group(2))
            ok = {
                ">=": key >= bound,
                ">": key > bound,
                "<=": key <= bound,
                "<": key < bound,
                "=": key == bound,
            }[op]
            if not ok:
                break
        if ok:
            return True
    return False


def _osv_affects(vuln: dict[str, Any], name: str, version: str) -> bool:
    relevant = [
        a for a in vuln.get("affected") or []
        if (a.get("package") or {}).get("name") == name
    ]
    if not relevant:
        # Nothing to check against; OSV already filtered by version
        return True

    for affected in relevant:
        if version in (affected.get("versions") or []):
            return True
        for r in affected.get("ranges") or []:
            if r.get("type") not in ("SEMVER", "ECOSYSTEM"):
                continue
            for introduced, fixed in _osv_intervals(r.get("events") or []):
                if in_interval(version, introduced, fixed):
                    return True
    return False


def _osv_intervals(events: list[dict[str, str]]) -> list[tuple[str | None, str | None]]:
    """Fold an OSV event list into ``(introduced, fixed)`` pairs."""
    intervals: list[tuple[str | None, str | None]] = []
    introduced: str | None = None
    open_interval = False
    for event in events:
        if "introduced" in event:
            introduced = None if event["introduced"] == "0" else event["introduced"]
            open_interval = True
        elif "fixed" in event and open_interval:
            intervals.append((introduced, event["fixed"]))
            open_interval = False
    if open_interval:
        intervals.append((introduced, None))
    return intervals


# ═══════════════════════════════════════════════════════════════════
#  Mapping
# ═══════════════════════════════════════════════════════════════════


def _github_ranges(advisory: dict[str, Any], name: str) -> list[str] | None:
    """Vulnerable ranges for ``name``, or None when it is not listed."""
    ranges = []
    listed = False
    for vuln in advisory.get("vulnerabilities") or []:
        pkg = vuln.get("package") or {}
        if pkg.get("ecosystem") != "npm" or pkg.get("name") != name:
            continue
        listed = True
        if vuln.get("vulnerable_version_range"):
            ranges.append(vuln["vulnerable_version_range"])
    return ranges if listed else None


def _from_github(advisory: dict[str, Any], name: str, ranges: list[str]) -> Vulnerability:
    ghsa = advisory.get("ghsa_id") or str(advisory.get("id", ""))
    patched = [
        v.get("first_patched_version")
        for v in advisory.get("vulnerabilities") or []
        if (v.get("package") or {}).get("name") == name and v.get("first_patched_version")
    ]
    cve = advisory.get("cve_id")
    return Vulnerability(
        id=ghsa,
        aliases=[cve] if cve else [],
        title=advisory.get("summary") or "",
        severity=_GITHUB_SEVERITY.get(str(advisory.get("severity", "")).lower(), "info"),
        url=advisory.get("html_url") or f"https://github.com/advisories/{ghsa}",
        overview=advisory.get("description") or advisory.get("summary") or "",
        recommendation=_upgrade_advice(patched),
        versions=ranges,
        published=advisory.get("published_at"),
        updated=advisory.get("updated_at"),
        source="github",
    )


def _from_osv(vuln: dict[str, Any], name: str) -> Vulnerability:
    details = vuln.get("details") or ""
    fixed: list[str] = []
    versions: list[str] = []
    for affected in vuln.get("affected") or []:
        if (affected.get("package") or {}).get("name") != name:
            continue
        for r in affected.get("ranges") or []:
            for introduced, fix in _osv_intervals(r.get("events") or []):
                lower = f">={introduced}" if introduced else ">=0"
                versions.append(f"{lower} <{fix}" if fix else lower)
                if fix:
                    fixed.append(fix)

    return Vulnerability(
        id=vuln.get("id", ""),
        aliases=list(vuln.get("aliases") or []),
        title=vuln.get("summary") or (details[:100] + "..." if len(details) > 100 else details),
        severity=_osv_severity(vuln),
        url=f"https://osv.dev/vulnerability/{vuln.get('id', '')}",
        overview=details or vuln.get("summary") or "",
        recommendation=_upgrade_advice(fixed),
        versions=versions,
        published=vuln.get("published"),
        updated=vuln.get("modified") or vuln.get("published"),
        source="osv",
    )


def _osv_severity(vuln: dict[str, Any]) -> Severity:
    # GHSA-sourced OSV entries carry a plain label
    label = str((vuln.get("database_specific") or {}).get("severity", "")).lower()
    if label in _GITHUB_SEVERITY:
        return _GITHUB_SEVERITY[label]

    for entry in vuln.get("severity") or []:
        if not str(entry.get("type", "")).startswith("CVSS"):
            continue
        try:
            return severity_from_cvss(float(entry.get("score")))
        except (TypeError, ValueError):
            # Vector strings ("CVSS:3.1/AV:N/...") carry no base score
            continue
    return "info"


def _upgrade_advice(fixed_versions: list[str]) -> str:
    if not fixed_versions:
        return "No fixed version is available yet; consider an alternative package"
    best = max(fixed_versions, key=version_key)
    return f"Upgrade to version {best} or later"
