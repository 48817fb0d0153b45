"""
Operation models — the execution contract for package-manager calls.

Requests describe what the caller wants done. Outcomes are the raw
subprocess result. Results are what the caller gets back: always a
structured record, never an exception, even when the command failed.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class ManagerIdentity(StrEnum):
    """The three supported JavaScript package managers."""

    NPM = "npm"
    YARN = "yarn"
    PNPM = "pnpm"


class LogicalOperation(StrEnum):
    """Manager-independent operations the service knows how to run."""

    INSTALL = "install"
    UPDATE = "update"
    REMOVE = "remove"
    AUDIT = "audit"
    OUTDATED = "outdated"
    CLEAN_CACHE = "clean_cache"
    DEPENDENCY_TREE = "dependency_tree"


# Operations whose tools exit non-zero to say "found something".
REPORTING_OPERATIONS = frozenset({LogicalOperation.AUDIT, LogicalOperation.OUTDATED})


class DetectionResult(BaseModel):
    """Which manager governs a directory, and how we decided."""

    model_config = ConfigDict(frozen=True)

    manager: ManagerIdentity
    lock_file: Path | None = None
    version: str | None = None
    source: str = "default"     # lockfile | config | manifest | default


class OperationFlags(BaseModel):
    """Switches for a logical operation, plus the tree depth."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    dev: bool = False
    global_: bool = Field(default=False, alias="global")
    production: bool = False
    force: bool = False
    fix: bool = False
    exact: bool = False
    depth: int = Field(default=3, ge=0)     # dependency_tree only


class OperationRequest(BaseModel):
    """A validated request for one logical operation."""

    model_config = ConfigDict(frozen=True)

    operation: LogicalOperation
    packages: list[str] = Field(default_factory=list)
    cwd: Path = Field(default_factory=Path.cwd)
    flags: OperationFlags = Field(default_factory=OperationFlags)
    manager: ManagerIdentity | None = None      # pinned by the caller
    timeout_ms: int | None = None


class ExecutionOutcome(BaseModel):
    """Captured result of running one argv (possibly several attempts)."""

    argv: list[str] = Field(default_factory=list)
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    error: str | None = None
    timed_out: bool = False
    attempts: int = 1
    recoveries: int = 0

    @property
    def ok(self) -> bool:
        """Whether the process ran and exited 0."""
        return self.exit_code == 0

    @property
    def ran(self) -> bool:
        """Whether the process ran to completion (any exit code)."""
        return self.exit_code is not None

    @property
    def diagnostic(self) -> str:
        """Best available failure text: stderr, then stdout, then error."""
        return (
            self.stderr.strip()
            or self.stdout.strip()
            or self.error
            or f"Command exited with code {self.exit_code}"
        )


class OperationResult(BaseModel):
    """Structured outcome of a logical operation. Never mutated."""

    model_config = ConfigDict(frozen=True)

    success: bool
    operation: LogicalOperation
    manager: ManagerIdentity
    packages: list[str] = Field(default_factory=list)
    output: str = ""
    errors: list[str] | None = None
    duration_ms: int = 0

    command: list[str] = Field(default_factory=list)
    exit_code: int | None = None
    attempts: int = 0
    installed: list[str] = Field(default_factory=list)
