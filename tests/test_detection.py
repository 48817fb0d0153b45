"""
Tests for package-manager detection.
"""

import itertools
import json
from pathlib import Path

import pytest

from npmplus.core.models.operation import ManagerIdentity
from npmplus.core.services.detection import ManagerDetector
from tests.fakes import ScriptedExecutor, failed, ok

LOCK_FILES = {
    ManagerIdentity.NPM: "package-lock.json",
    ManagerIdentity.YARN: "yarn.lock",
    ManagerIdentity.PNPM: "pnpm-lock.yaml",
}
PRIORITY = [ManagerIdentity.PNPM, ManagerIdentity.YARN, ManagerIdentity.NPM]


@pytest.fixture
def detector() -> ManagerDetector:
    return ManagerDetector(probe_version=False)


def _touch(directory: Path, *names: str) -> None:
    for name in names:
        (directory / name).write_text("")


class TestLockFiles:
    @pytest.mark.parametrize("manager", list(ManagerIdentity))
    def test_single_lock_file(self, detector, project, manager):
        _touch(project, LOCK_FILES[manager])
        result = detector.detect(project)
        assert result.manager == manager
        assert result.lock_file == project / LOCK_FILES[manager]
        assert result.source == "lockfile"

    @pytest.mark.parametrize(
        "managers",
        [combo for n in (2, 3) for combo in itertools.combinations(list(ManagerIdentity), n)],
    )
    def test_priority_decides_between_lock_files(self, detector, project, managers):
        _touch(project, *(LOCK_FILES[m] for m in managers))
        expected = next(m for m in PRIORITY if m in managers)
        assert detector.detect(project).manager == expected

    def test_lock_file_beats_config(self, detector, project):
        _touch(project, "yarn.lock", ".npmrc")
        assert detector.detect(project).manager == ManagerIdentity.YARN

    def test_lock_directory_is_ignored(self, detector, project):
        (project / "yarn.lock").mkdir()
        assert detector.detect(project).manager == ManagerIdentity.NPM


class TestConfigFiles:
    @pytest.mark.parametrize(
        "filename, expected",
        [
            (".npmrc", ManagerIdentity.NPM),
            (".yarnrc.yml", ManagerIdentity.YARN),
            (".yarnrc", ManagerIdentity.YARN),
            ("pnpm-workspace.yaml", ManagerIdentity.PNPM),
        ],
    )
    def test_config_file(self, detector, project, filename, expected):
        _touch(project, filename)
        result = detector.detect(project)
        assert result.manager == expected
        assert result.lock_file is None
        assert result.source == "config"

    def test_npmrc_checked_before_yarnrc(self, detector, project):
        _touch(project, ".yarnrc.yml", ".npmrc")
        assert detector.detect(project).manager == ManagerIdentity.NPM


class TestManifest:
    def test_package_manager_field(self, detector, project):
        (project / "package.json").write_text(json.dumps({"packageManager": "pnpm@8.6.0"}))
        result = detector.detect(project)
        assert result.manager == ManagerIdentity.PNPM
        assert result.source == "manifest"

    def test_unknown_package_manager_falls_back(self, detector, project):
        (project / "package.json").write_text(json.dumps({"packageManager": "bun@1.0.0"}))
        assert detector.detect(project).source == "default"

    def test_malformed_manifest_ignored(self, detector, project):
        (project / "package.json").write_text("{not json")
        result = detector.detect(project)
        assert result.manager == ManagerIdentity.NPM
        assert result.source == "default"


class TestDefault:
    def test_empty_directory_is_npm(self, detector, tmp_path):
        result = detector.detect(tmp_path)
        assert result.manager == ManagerIdentity.NPM
        assert result.lock_file is None
        assert result.version is None
        assert result.source == "default"

    def test_missing_directory_is_npm(self, detector, tmp_path):
        assert detector.detect(tmp_path / "nope").manager == ManagerIdentity.NPM

    def test_detection_writes_nothing(self, detector, project):
        before = sorted(p.name for p in project.iterdir())
        detector.detect(project)
        assert sorted(p.name for p in project.iterdir()) == before


class TestVersionProbe:
    def test_version_from_probe(self, project):
        _touch(project, "yarn.lock")
        executor = ScriptedExecutor([ok("1.22.19\n")])
        result = ManagerDetector(executor).detect(project)
        assert result.version == "1.22.19"
        assert executor.calls == [["yarn", "--version"]]

    def test_failed_probe_leaves_version_unset(self, project):
        executor = ScriptedExecutor([failed(127, stderr="not found")])
        result = ManagerDetector(executor).detect(project)
        assert result.manager == ManagerIdentity.NPM
        assert result.version is None

    def test_probe_disabled(self, project):
        executor = ScriptedExecutor()
        ManagerDetector(executor, probe_version=False).detect(project)
        assert executor.calls == []
