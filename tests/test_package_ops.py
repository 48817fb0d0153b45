"""
Tests for the package operation service — pipeline and classification.
"""

import pytest

from npmplus.core.models.operation import (
    LogicalOperation,
    ManagerIdentity,
    OperationFlags,
    OperationRequest,
)
from npmplus.core.observability.metrics import MetricsRegistry
from npmplus.core.services.detection import ManagerDetector
from npmplus.core.services.package_ops import PackageOperationService, parse_installed
from tests.fakes import TRACKER_STDERR, ScriptedExecutor, failed, ok

Op = LogicalOperation


def _service(executor: ScriptedExecutor, metrics: MetricsRegistry | None = None) -> PackageOperationService:
    return PackageOperationService(ManagerDetector(probe_version=False), executor, metrics)


def _request(project, operation, packages=(), manager=ManagerIdentity.NPM, **fl) -> OperationRequest:
    return OperationRequest(
        operation=operation,
        packages=list(packages),
        cwd=project,
        flags=OperationFlags(**fl),
        manager=manager,
    )


# ── End-to-end scenarios ─────────────────────────────────────────────


class TestScenarios:
    def test_yarn_dev_install(self, project):
        (project / "yarn.lock").write_text("")
        executor = ScriptedExecutor([ok("success Saved 2 new dependencies.\n")])
        request = OperationRequest(
            operation=Op.INSTALL,
            packages=["x", "y"],
            cwd=project,
            flags=OperationFlags(dev=True),
        )

        result = _service(executor).install(request)

        assert executor.calls == [["yarn", "add", "--dev", "x", "y"]]
        assert result.success is True
        assert result.packages == ["x", "y"]
        assert result.manager == ManagerIdentity.YARN
        assert result.errors is None

    def test_single_tracker_recovery(self, project):
        executor = ScriptedExecutor([
            failed(stderr=TRACKER_STDERR),
            ok(),
            ok("+ lodash@4.17.21\nadded 1 package"),
        ])
        result = _service(executor).install(_request(project, Op.INSTALL, ["lodash"]))

        assert result.success is True
        assert result.attempts == 2
        assert executor.calls.count(["npm", "cache", "clean", "--force"]) == 1
        assert result.installed == ["lodash@4.17.21"]


# ── Classification ───────────────────────────────────────────────────


class TestClassification:
    @pytest.mark.parametrize("operation", [Op.OUTDATED, Op.AUDIT])
    def test_reporting_nonzero_with_output_is_success(self, project, operation):
        executor = ScriptedExecutor([failed(1, stdout="lodash  4.0.0  4.17.21")])
        result = _service(executor).run(_request(project, operation))
        assert result.success is True
        assert result.exit_code == 1
        assert result.output == "lodash  4.0.0  4.17.21"
        assert len(executor.calls) == 1

    @pytest.mark.parametrize(
        "operation, packages",
        [
            (Op.INSTALL, ["x"]),
            (Op.UPDATE, []),
            (Op.REMOVE, ["x"]),
            (Op.CLEAN_CACHE, []),
        ],
    )
    def test_other_nonzero_with_output_is_failure(self, project, operation, packages):
        executor = ScriptedExecutor([failed(1, stdout="something printed")])
        result = _service(executor).run(_request(project, operation, packages))
        assert result.success is False
        assert result.errors == ["something printed"]

    def test_zero_exit_is_success(self, project):
        executor = ScriptedExecutor([ok("up to date")])
        result = _service(executor).update(_request(project, Op.UPDATE))
        assert result.success is True
        assert result.command == ["npm", "update"]

    def test_errors_prefer_stderr(self, project):
        executor = ScriptedExecutor([failed(1, stdout="out", stderr="npm ERR! 404")])
        result = _service(executor).remove(_request(project, Op.REMOVE, ["x"]))
        assert result.errors == ["npm ERR! 404"]
        assert result.output == "out"

    def test_empty_report_retries_with_json(self, project):
        executor = ScriptedExecutor([failed(1), failed(1, stdout='{"lodash": {}}')])
        result = _service(executor).outdated(_request(project, Op.OUTDATED))

        assert executor.calls == [["npm", "outdated"], ["npm", "outdated", "--json"]]
        assert result.success is True
        assert result.command == ["npm", "outdated", "--json"]
        assert result.attempts == 2

    def test_empty_alternate_with_zero_exit_is_success(self, project):
        executor = ScriptedExecutor([failed(1), ok("")])
        result = _service(executor).audit(_request(project, Op.AUDIT))
        assert result.success is True

    def test_empty_alternate_failure_reports_diagnostic(self, project):
        executor = ScriptedExecutor([failed(1), failed(2, stderr="audit endpoint down")])
        result = _service(executor).audit(_request(project, Op.AUDIT))
        assert result.success is False
        assert result.errors == ["audit endpoint down"]

    def test_missing_binary_is_failure_without_alternate(self, project):
        missing = failed(1).model_copy(update={"exit_code": None, "error": "Executable not found: pnpm"})
        executor = ScriptedExecutor([missing])
        result = _service(executor).outdated(
            _request(project, Op.OUTDATED, manager=ManagerIdentity.PNPM),
        )
        assert result.success is False
        assert result.errors == ["Executable not found: pnpm"]
        assert len(executor.calls) == 1

    def test_timeout_reports_message(self, project):
        timed_out = failed(1, stderr="partial").model_copy(update={
            "exit_code": None, "timed_out": True, "error": "Command timed out after 60s",
        })
        executor = ScriptedExecutor([timed_out])
        result = _service(executor).install(_request(project, Op.INSTALL, ["x"]))
        assert result.errors == ["Command timed out after 60s"]


# ── Dependency tree ──────────────────────────────────────────────────

NPM_TREE = """\
demo@1.0.0 /work/demo
├── express@4.18.2
│ ├── accepts@1.3.8
│ └── body-parser@1.20.1
└── lodash@4.17.21
"""


class TestDependencyTree:
    def test_full_tree_needs_no_fallback(self, project):
        executor = ScriptedExecutor([ok(NPM_TREE)])
        result = _service(executor).dependency_tree(_request(project, Op.DEPENDENCY_TREE, depth=2))

        assert executor.calls == [["npm", "list", "--depth=2"]]
        assert result.success is True
        assert result.output == NPM_TREE.strip()
        assert result.attempts == 1

    def test_near_empty_npm_tree_falls_back_to_ls_all(self, project):
        executor = ScriptedExecutor([ok("demo@1.0.0 /work/demo\n"), ok(NPM_TREE)])
        result = _service(executor).dependency_tree(_request(project, Op.DEPENDENCY_TREE))

        assert executor.calls == [["npm", "list", "--depth=3"], ["npm", "ls", "--all"]]
        assert result.success is True
        assert result.command == ["npm", "ls", "--all"]
        assert "lodash@4.17.21" in result.output
        assert result.attempts == 2

    def test_empty_fallback_keeps_first_output(self, project):
        executor = ScriptedExecutor([ok("demo@1.0.0 /work/demo\n└── (empty)\n"), ok("")])
        result = _service(executor).dependency_tree(_request(project, Op.DEPENDENCY_TREE))

        assert len(executor.calls) == 2
        assert result.success is True
        assert result.output == "demo@1.0.0 /work/demo\n└── (empty)"
        assert result.command == ["npm", "list", "--depth=3"]

    def test_no_fallback_for_pnpm(self, project):
        executor = ScriptedExecutor([ok("Legend: production dependency\n")])
        result = _service(executor).dependency_tree(
            _request(project, Op.DEPENDENCY_TREE, manager=ManagerIdentity.PNPM, production=True),
        )
        assert executor.calls == [["pnpm", "list", "--depth=3", "--prod"]]
        assert result.success is True

    def test_nonzero_exit_with_tree_is_success(self, project):
        # npm list exits 1 when something is missing or extraneous
        executor = ScriptedExecutor([failed(1, stdout=NPM_TREE, stderr="npm ERR! missing: left-pad@1")])
        result = _service(executor).dependency_tree(_request(project, Op.DEPENDENCY_TREE))
        assert result.success is True
        assert result.exit_code == 1
        assert result.errors is None

    def test_stderr_used_when_stdout_is_empty(self, project):
        executor = ScriptedExecutor([failed(1, stderr="error No lockfile found.")])
        result = _service(executor).dependency_tree(
            _request(project, Op.DEPENDENCY_TREE, manager=ManagerIdentity.YARN),
        )
        assert result.success is True
        assert result.output == "error No lockfile found."

    def test_missing_binary_is_failure(self, project):
        missing = failed(1).model_copy(update={"exit_code": None, "error": "Executable not found: npm"})
        executor = ScriptedExecutor([missing])
        result = _service(executor).dependency_tree(_request(project, Op.DEPENDENCY_TREE))
        assert result.success is False
        assert result.errors == ["Executable not found: npm"]
        assert len(executor.calls) == 1


# ── Contract ─────────────────────────────────────────────────────────


class TestContract:
    def test_unsupported_variant_runs_nothing(self, project):
        executor = ScriptedExecutor()
        result = _service(executor).audit(
            _request(project, Op.AUDIT, manager=ManagerIdentity.YARN, fix=True),
        )
        assert result.success is False
        assert "yarn" in result.errors[0]
        assert executor.calls == []

    def test_remove_without_packages_raises(self, project):
        with pytest.raises(ValueError):
            _service(ScriptedExecutor()).remove(_request(project, Op.REMOVE))

    def test_os_errors_become_failures(self, project):
        class Exploding(ScriptedExecutor):
            def execute(self, argv, cwd, timeout_ms=None):
                raise PermissionError("denied")

        result = _service(Exploding()).install(_request(project, Op.INSTALL, ["x"]))
        assert result.success is False
        assert "denied" in result.errors[0]

    def test_pinned_manager_skips_detection(self, project):
        (project / "yarn.lock").write_text("")
        executor = ScriptedExecutor()
        result = _service(executor).clean_cache(
            _request(project, Op.CLEAN_CACHE, manager=ManagerIdentity.PNPM),
        )
        assert result.manager == ManagerIdentity.PNPM
        assert executor.calls == [["pnpm", "store", "prune"]]

    def test_method_overrides_request_operation(self, project):
        executor = ScriptedExecutor()
        result = _service(executor).outdated(_request(project, Op.INSTALL))
        assert result.operation == Op.OUTDATED

    def test_metrics_recorded(self, project):
        metrics = MetricsRegistry()
        _service(ScriptedExecutor(), metrics).install(_request(project, Op.INSTALL))
        counter = metrics.counter("operations_total", operation="install", manager="npm", status="success")
        assert counter.value == 1


# ── Install output parsing ───────────────────────────────────────────


class TestParseInstalled:
    def test_npm_lines(self):
        assert parse_installed("+ lodash@4.17.21\n+ @types/node@20.1.0\n") == [
            "lodash@4.17.21",
            "@types/node@20.1.0",
        ]

    def test_pnpm_lines(self):
        out = "dependencies:\n+ lodash 4.17.21\n+ react 18.2.0\n"
        assert parse_installed(out) == ["lodash@4.17.21", "react@18.2.0"]

    def test_yarn_tree(self):
        out = "success Saved 2 new dependencies.\ninfo Direct dependencies\n├─ x@1.0.0\n└─ y@2.0.0\n"
        assert parse_installed(out) == ["x@1.0.0", "y@2.0.0"]

    def test_no_matches(self):
        assert parse_installed("added 3 packages in 1s") == []
