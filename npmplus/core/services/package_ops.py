"""
Package operations — install, update, remove, audit, outdated, clean cache,
dependency tree.

Channel-independent service: the gateway, the CLI and tests all call
the same methods.  Each call runs the same pipeline:

    detect manager (unless pinned) → map to argv → execute with
    recovery → classify the outcome

Callers always get an ``OperationResult`` back.  Process-level problems
(missing binary, timeout, OS errors) become failure results; only
contract violations such as ``remove`` without packages raise.
"""

from __future__ import annotations

import logging
import re
import subprocess
import time

from npmplus.adapters.shell.process import ProcessExecutor
from npmplus.core.models.operation import (
    REPORTING_OPERATIONS,
    ExecutionOutcome,
    LogicalOperation,
    ManagerIdentity,
    OperationRequest,
    OperationResult,
)
from npmplus.core.observability.metrics import MetricsRegistry
from npmplus.core.services.commands import (
    Unsupported,
    alternate_command,
    build_command,
    tree_fallback_command,
)
from npmplus.core.services.detection import ManagerDetector

logger = logging.getLogger(__name__)

# "+ lodash@4.17.21" (npm), "+ lodash 4.17.21" (pnpm), "└─ lodash@4.17.21" (yarn)
_INSTALLED_LINE = re.compile(
    r"^\s*(?:\+|├─|└─)\s+(@?[^\s@]+)(?:@|\s+)(\d[^\s]*)",
    re.MULTILINE,
)

# A depth-limited npm list this short is usually just the project header
_NEAR_EMPTY_TREE_LINES = 3


class PackageOperationService:
    """Runs logical package operations against the detected manager."""

    def __init__(
        self,
        detector: ManagerDetector,
        executor: ProcessExecutor,
        metrics: MetricsRegistry | None = None,
        max_attempts: int | None = None,
    ):
        self._detector = detector
        self._executor = executor
        self._metrics = metrics or MetricsRegistry()
        self._max_attempts = max_attempts

    # ── Public operations ───────────────────────────────────────

    def install(self, request: OperationRequest) -> OperationResult:
        return self.run(_with_operation(request, LogicalOperation.INSTALL))

    def update(self, request: OperationRequest) -> OperationResult:
        return self.run(_with_operation(request, LogicalOperation.UPDATE))

    def remove(self, request: OperationRequest) -> OperationResult:
        return self.run(_with_operation(request, LogicalOperation.REMOVE))

    def audit(self, request: OperationRequest) -> OperationResult:
        return self.run(_with_operation(request, LogicalOperation.AUDIT))

    def outdated(self, request: OperationRequest) -> OperationResult:
        return self.run(_with_operation(request, LogicalOperation.OUTDATED))

    def clean_cache(self, request: OperationRequest) -> OperationResult:
        return self.run(_with_operation(request, LogicalOperation.CLEAN_CACHE))

    def dependency_tree(self, request: OperationRequest) -> OperationResult:
        return self.run(_with_operation(request, LogicalOperation.DEPENDENCY_TREE))

    def run(self, request: OperationRequest) -> OperationResult:
        """Execute ``request`` end to end and classify the result.

        Raises:
            ValueError: The request violates the operation's contract.
        """
        start = time.monotonic()
        manager = request.manager or ManagerIdentity.NPM

        try:
            if request.manager is None:
                manager = self._detector.detect(request.cwd).manager

            mapped = build_command(request.operation, manager, request.flags, request.packages)
            if isinstance(mapped, Unsupported):
                logger.info("%s %s unsupported: %s", manager, request.operation, mapped.reason)
                return self._record(OperationResult(
                    success=False,
                    operation=request.operation,
                    manager=manager,
                    packages=list(request.packages),
                    errors=[mapped.reason],
                    duration_ms=_elapsed_ms(start),
                ))

            outcome = self._executor.execute_with_recovery(
                mapped,
                request.cwd,
                max_attempts=self._max_attempts,
                timeout_ms=request.timeout_ms,
            )
            result = self._classify(request, manager, outcome, start)

        except (OSError, subprocess.SubprocessError) as e:
            logger.error("%s %s failed to run: %s", manager, request.operation, e)
            result = OperationResult(
                success=False,
                operation=request.operation,
                manager=manager,
                packages=list(request.packages),
                errors=[f"Command execution error: {e}"],
                duration_ms=_elapsed_ms(start),
            )

        return self._record(result)

    # ── Classification ──────────────────────────────────────────

    def _classify(
        self,
        request: OperationRequest,
        manager: ManagerIdentity,
        outcome: ExecutionOutcome,
        start: float,
    ) -> OperationResult:
        operation = request.operation
        final = outcome
        attempts = outcome.attempts

        if operation is LogicalOperation.DEPENDENCY_TREE:
            return self._classify_tree(request, manager, outcome, start)

        if operation in REPORTING_OPERATIONS and not outcome.ok:
            # audit/outdated exit non-zero to say "found something"
            if outcome.stdout.strip():
                return self._result(request, manager, outcome, attempts, start, success=True)

            if outcome.ran:
                alternate = alternate_command(outcome.argv)
                logger.debug("Empty report from %s, retrying as %s", outcome.argv, alternate)
                final = self._executor.execute(alternate, request.cwd, request.timeout_ms)
                attempts += 1
                if final.stdout.strip() or final.ok:
                    return self._result(request, manager, final, attempts, start, success=True)

        return self._result(request, manager, final, attempts, start, success=final.ok)

    def _classify_tree(
        self,
        request: OperationRequest,
        manager: ManagerIdentity,
        outcome: ExecutionOutcome,
        start: float,
    ) -> OperationResult:
        # list exits non-zero on missing or extraneous packages but still prints the tree
        attempts = outcome.attempts
        output = _tree_text(outcome)

        fallback = tree_fallback_command(manager, request.flags)
        if outcome.ran and fallback and len(output.splitlines()) <= _NEAR_EMPTY_TREE_LINES:
            logger.debug("Near-empty tree from %s, retrying as %s", outcome.argv, fallback)
            full = self._executor.execute(fallback, request.cwd, request.timeout_ms)
            attempts += 1
            if full.stdout.strip():
                return self._result(
                    request, manager, full, attempts, start,
                    success=True, output=full.stdout.strip(),
                )

        if outcome.ran and not output:
            logger.info("Empty dependency tree in %s; the project may have no dependencies", request.cwd)
        return self._result(
            request, manager, outcome, attempts, start,
            success=outcome.ran and (outcome.ok or bool(output)),
            output=output,
        )

    def _result(
        self,
        request: OperationRequest,
        manager: ManagerIdentity,
        outcome: ExecutionOutcome,
        attempts: int,
        start: float,
        *,
        success: bool,
        output: str | None = None,
    ) -> OperationResult:
        errors = None
        if not success:
            errors = [outcome.error] if not outcome.ran and outcome.error else [outcome.diagnostic]

        installed: list[str] = []
        if success and request.operation is LogicalOperation.INSTALL:
            installed = parse_installed(outcome.stdout)

        return OperationResult(
            success=success,
            operation=request.operation,
            manager=manager,
            packages=list(request.packages),
            output=outcome.stdout.strip() if output is None else output,
            errors=errors,
            duration_ms=_elapsed_ms(start),
            command=list(outcome.argv),
            exit_code=outcome.exit_code,
            attempts=attempts,
            installed=installed,
        )

    def _record(self, result: OperationResult) -> OperationResult:
        status = "success" if result.success else "failure"
        self._metrics.counter(
            "operations_total",
            operation=result.operation.value,
            manager=result.manager.value,
            status=status,
        ).inc()
        self._metrics.histogram("operation_duration_ms").observe(result.duration_ms)

        if result.success:
            logger.info(
                "%s %s ok in %dms", result.manager, result.operation, result.duration_ms,
            )
        else:
            logger.warning(
                "%s %s failed: %s",
                result.manager, result.operation, "; ".join(result.errors or []),
            )
        return result


def parse_installed(output: str) -> list[str]:
    """Extract ``name@version`` entries from install output."""
    seen: dict[str, None] = {}
    for name, version in _INSTALLED_LINE.findall(output):
        seen.setdefault(f"{name}@{version}", None)
    return list(seen)


def _with_operation(request: OperationRequest, operation: LogicalOperation) -> OperationRequest:
    if request.operation is operation:
        return request
    return request.model_copy(update={"operation": operation})


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _tree_text(outcome: ExecutionOutcome) -> str:
    return outcome.stdout.strip() or outcome.stderr.strip()
