"""
Process executor — the single place package-manager binaries are run.

Runs an argv with ``subprocess.run`` and always returns an
``ExecutionOutcome``: a non-zero exit, a missing binary, or a timeout
are all reported in the outcome, never raised.

``execute_with_recovery`` wraps ``execute`` in the bounded stale-tracker
loop described by ``RecoveryPolicy``: on a matching failure it runs the
manager's cache-clean command, waits the fixed backoff, and tries again.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from pathlib import Path
from typing import Callable

from npmplus.core.models.operation import ExecutionOutcome, ManagerIdentity
from npmplus.core.observability.metrics import MetricsRegistry
from npmplus.core.reliability.recovery import RecoveryPolicy
from npmplus.core.services.commands import state_reset_command

logger = logging.getLogger(__name__)

# Keep managers non-interactive and quiet about telemetry, funding and updates.
_ENV_OVERRIDES: dict[str, str] = {
    "CI": "true",
    "NO_UPDATE_NOTIFIER": "1",
    "npm_config_update_notifier": "false",
    "npm_config_fund": "false",
    "YARN_ENABLE_TELEMETRY": "0",
    "YARN_ENABLE_PROGRESS_BARS": "false",
}


class ProcessExecutor:
    """Run package-manager commands and capture their output.

    Args:
        timeout_ms: Default per-attempt timeout.
        recovery: Retry policy for the stale-tracker failure.
        metrics: Shared registry for attempt/recovery counters.
        sleep: Injected for tests so the backoff costs nothing.
    """

    def __init__(
        self,
        timeout_ms: int = 60_000,
        recovery: RecoveryPolicy | None = None,
        metrics: MetricsRegistry | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._timeout_ms = timeout_ms
        self._recovery = recovery or RecoveryPolicy()
        self._metrics = metrics or MetricsRegistry()
        self._sleep = sleep

    @property
    def recovery(self) -> RecoveryPolicy:
        return self._recovery

    def execute(
        self,
        argv: list[str],
        cwd: Path,
        timeout_ms: int | None = None,
    ) -> ExecutionOutcome:
        """Run ``argv`` once in ``cwd``."""
        if not argv:
            raise ValueError("argv must not be empty")

        timeout_s = (timeout_ms or self._timeout_ms) / 1000
        env = os.environ.copy()
        env.update(_ENV_OVERRIDES)

        logger.debug("Executing: %s (cwd=%s, timeout=%.1fs)", " ".join(argv), cwd, timeout_s)
        start = time.monotonic()

        # subprocess reports a bad cwd as FileNotFoundError too
        if not Path(cwd).is_dir():
            return self._finish(ExecutionOutcome(
                argv=list(argv),
                error=f"Working directory does not exist: {cwd}",
                duration_ms=_elapsed_ms(start),
            ))

        try:
            result = subprocess.run(
                argv,
                cwd=str(cwd),
                capture_output=True,
                text=True,
                timeout=timeout_s,
                env=env,
            )
        except FileNotFoundError:
            return self._finish(ExecutionOutcome(
                argv=list(argv),
                error=f"Executable not found: {argv[0]}",
                duration_ms=_elapsed_ms(start),
            ))
        except subprocess.TimeoutExpired as e:
            logger.warning("Command timed out after %ss: %s", _fmt_seconds(timeout_s), argv[0])
            return self._finish(ExecutionOutcome(
                argv=list(argv),
                stdout=_as_text(e.stdout),
                stderr=_as_text(e.stderr),
                error=f"Command timed out after {_fmt_seconds(timeout_s)}s",
                timed_out=True,
                duration_ms=_elapsed_ms(start),
            ))
        except OSError as e:
            logger.error("Cannot run %s: %s", argv[0], e)
            return self._finish(ExecutionOutcome(
                argv=list(argv),
                error=f"Command execution error: {e}",
                duration_ms=_elapsed_ms(start),
            ))

        outcome = ExecutionOutcome(
            argv=list(argv),
            exit_code=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            duration_ms=_elapsed_ms(start),
        )
        if not outcome.ok:
            logger.debug("%s exited with code %d", argv[0], result.returncode)
        return self._finish(outcome)

    def execute_with_recovery(
        self,
        argv: list[str],
        cwd: Path,
        max_attempts: int | None = None,
        timeout_ms: int | None = None,
    ) -> ExecutionOutcome:
        """Run ``argv``, resetting manager state between stale-tracker failures.

        Attempts are strictly sequential.  The returned outcome is the
        last attempt's, with ``attempts`` and ``recoveries`` filled in.
        """
        policy = self._recovery
        if max_attempts is not None:
            policy = RecoveryPolicy(
                max_attempts=max_attempts,
                backoff_seconds=policy.backoff_seconds,
                signature=policy.signature,
            )

        attempt = 0
        recoveries = 0
        while True:
            attempt += 1
            logger.debug("Attempt %d/%d: %s", attempt, policy.max_attempts, " ".join(argv))
            outcome = self.execute(argv, cwd, timeout_ms)

            if not policy.should_retry(outcome, attempt):
                break

            logger.warning(
                "Stale tracker detected (attempt %d/%d), clearing %s state",
                attempt, policy.max_attempts, argv[0],
            )
            self._clear_state(argv[0], cwd, timeout_ms)
            recoveries += 1
            self._metrics.counter("executor_recoveries").inc()
            if policy.backoff_seconds:
                self._sleep(policy.backoff_seconds)

        outcome.attempts = attempt
        outcome.recoveries = recoveries
        return outcome

    def _clear_state(self, program: str, cwd: Path, timeout_ms: int | None) -> None:
        try:
            manager = ManagerIdentity(Path(program).name)
        except ValueError:
            logger.debug("No state reset known for %s", program)
            return

        reset = self.execute(state_reset_command(manager), cwd, timeout_ms)
        if not reset.ok:
            # The retry still goes ahead; the next attempt reports what happens.
            logger.warning("State reset for %s failed: %s", manager, reset.diagnostic)

    def _finish(self, outcome: ExecutionOutcome) -> ExecutionOutcome:
        self._metrics.counter("executor_attempts").inc()
        self._metrics.histogram("executor_duration_ms").observe(outcome.duration_ms)
        return outcome


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _fmt_seconds(seconds: float) -> str:
    return f"{seconds:g}"


def _as_text(data: str | bytes | None) -> str:
    # TimeoutExpired carries bytes even when text=True was requested
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
