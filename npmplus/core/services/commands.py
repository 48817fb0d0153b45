"""
Command mapping — logical operation + manager + flags → argv.

Pure functions, no I/O.  Every (operation, manager) pair is handled
explicitly; adding a member to either enum without a branch here is a
type error caught by ``assert_never``.

Where a manager has no equivalent of a variant (yarn v1 cannot fix
audit findings) the mapper returns ``Unsupported`` rather than guessing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import assert_never

from npmplus.core.models.operation import LogicalOperation, ManagerIdentity, OperationFlags


@dataclass(frozen=True)
class Unsupported:
    """A manager has no command for the requested variant."""

    manager: ManagerIdentity
    operation: LogicalOperation
    reason: str


def build_command(
    operation: LogicalOperation,
    manager: ManagerIdentity,
    flags: OperationFlags | None = None,
    packages: list[str] | None = None,
) -> list[str] | Unsupported:
    """Map a logical operation onto the manager's concrete argv.

    Raises:
        ValueError: ``remove`` without packages, or an unknown
            operation/manager name.
    """
    operation = LogicalOperation(operation)
    manager = ManagerIdentity(manager)
    flags = flags or OperationFlags()
    packages = list(packages or [])

    if operation is LogicalOperation.INSTALL:
        return _install(manager, flags, packages)
    if operation is LogicalOperation.UPDATE:
        return _update(manager, flags, packages)
    if operation is LogicalOperation.REMOVE:
        if not packages:
            raise ValueError("remove requires at least one package")
        return _remove(manager, flags, packages)
    if operation is LogicalOperation.AUDIT:
        return _audit(manager, flags)
    if operation is LogicalOperation.OUTDATED:
        return _outdated(manager, flags)
    if operation is LogicalOperation.CLEAN_CACHE:
        return state_reset_command(manager)
    if operation is LogicalOperation.DEPENDENCY_TREE:
        return _dependency_tree(manager, flags)
    assert_never(operation)


def alternate_command(argv: list[str]) -> list[str]:
    """The machine-readable variant of a reporting command.

    npm, yarn and pnpm all accept ``--json`` on ``outdated`` and ``audit``
    and print a report even when the plain-text form stays silent.
    """
    if "--json" in argv:
        return list(argv)
    return [*argv, "--json"]


def tree_fallback_command(
    manager: ManagerIdentity, flags: OperationFlags | None = None,
) -> list[str] | None:
    """Full-tree listing for when a depth-limited ``list`` prints next to nothing.

    Only npm has one: ``npm ls --all`` walks past the depth limit and
    shows deduped and extraneous packages.
    """
    manager = ManagerIdentity(manager)
    if manager is not ManagerIdentity.NPM:
        return None
    flags = flags or OperationFlags()
    return ["npm", "ls", "--all", *(["--omit=dev"] if flags.production else [])]


def state_reset_command(manager: ManagerIdentity) -> list[str]:
    """The command that clears a manager's cached state."""
    manager = ManagerIdentity(manager)
    if manager is ManagerIdentity.NPM:
        return ["npm", "cache", "clean", "--force"]
    if manager is ManagerIdentity.YARN:
        return ["yarn", "cache", "clean"]
    if manager is ManagerIdentity.PNPM:
        return ["pnpm", "store", "prune"]
    assert_never(manager)


# ── Per-operation tables ────────────────────────────────────────


def _install(
    manager: ManagerIdentity, flags: OperationFlags, packages: list[str],
) -> list[str]:
    if not packages:
        # Whole-project install from the manifest
        if manager is ManagerIdentity.NPM:
            return ["npm", "install", *(["--omit=dev"] if flags.production else [])]
        if manager is ManagerIdentity.YARN:
            return ["yarn", "install", *(["--production"] if flags.production else [])]
        if manager is ManagerIdentity.PNPM:
            return ["pnpm", "install", *(["--prod"] if flags.production else [])]
        assert_never(manager)

    if manager is ManagerIdentity.NPM:
        argv = ["npm", "install"]
        if flags.global_:
            argv.append("-g")
        if flags.dev:
            argv.append("--save-dev")
        if flags.exact:
            argv.append("--save-exact")
    elif manager is ManagerIdentity.YARN:
        argv = ["yarn", "global", "add"] if flags.global_ else ["yarn", "add"]
        if flags.dev:
            argv.append("--dev")
        if flags.exact:
            argv.append("--exact")
    elif manager is ManagerIdentity.PNPM:
        argv = ["pnpm", "add"]
        if flags.global_:
            argv.append("--global")
        if flags.dev:
            argv.append("--save-dev")
        if flags.exact:
            argv.append("--save-exact")
    else:
        assert_never(manager)

    if flags.force:
        argv.append("--force")
    return [*argv, *packages]


def _update(
    manager: ManagerIdentity, flags: OperationFlags, packages: list[str],
) -> list[str]:
    if manager is ManagerIdentity.NPM:
        argv = ["npm", "update", *(["-g"] if flags.global_ else [])]
    elif manager is ManagerIdentity.YARN:
        argv = ["yarn", "global", "upgrade"] if flags.global_ else ["yarn", "upgrade"]
    elif manager is ManagerIdentity.PNPM:
        argv = ["pnpm", "update", *(["--global"] if flags.global_ else [])]
    else:
        assert_never(manager)
    return [*argv, *packages]


def _remove(
    manager: ManagerIdentity, flags: OperationFlags, packages: list[str],
) -> list[str]:
    if manager is ManagerIdentity.NPM:
        argv = ["npm", "uninstall", *(["-g"] if flags.global_ else [])]
    elif manager is ManagerIdentity.YARN:
        argv = ["yarn", "global", "remove"] if flags.global_ else ["yarn", "remove"]
    elif manager is ManagerIdentity.PNPM:
        argv = ["pnpm", "remove", *(["--global"] if flags.global_ else [])]
    else:
        assert_never(manager)
    return [*argv, *packages]


def _audit(manager: ManagerIdentity, flags: OperationFlags) -> list[str] | Unsupported:
    if manager is ManagerIdentity.NPM:
        argv = ["npm", "audit"]
        if flags.fix:
            argv.append("fix")
            if flags.force:
                argv.append("--force")
        if flags.production:
            argv.append("--omit=dev")
        return argv
    if manager is ManagerIdentity.YARN:
        if flags.fix:
            return Unsupported(
                manager=manager,
                operation=LogicalOperation.AUDIT,
                reason="yarn audit cannot fix vulnerabilities; "
                       "upgrade the affected packages instead",
            )
        argv = ["yarn", "audit"]
        if flags.production:
            argv += ["--groups", "dependencies"]
        return argv
    if manager is ManagerIdentity.PNPM:
        argv = ["pnpm", "audit"]
        if flags.fix:
            argv.append("--fix")
        if flags.production:
            argv.append("--prod")
        return argv
    assert_never(manager)


def _outdated(manager: ManagerIdentity, flags: OperationFlags) -> list[str]:
    if manager is ManagerIdentity.NPM:
        return ["npm", "outdated", *(["-g"] if flags.global_ else [])]
    if manager is ManagerIdentity.YARN:
        return ["yarn", "outdated"]
    if manager is ManagerIdentity.PNPM:
        argv = ["pnpm", "outdated"]
        if flags.global_:
            argv.append("--global")
        if flags.production:
            argv.append("--prod")
        return argv
    assert_never(manager)


def _dependency_tree(manager: ManagerIdentity, flags: OperationFlags) -> list[str]:
    argv = [manager.value, "list", f"--depth={flags.depth}"]
    if flags.production:
        if manager is ManagerIdentity.NPM:
            argv.append("--omit=dev")
        elif manager is ManagerIdentity.YARN:
            argv.append("--production")
        elif manager is ManagerIdentity.PNPM:
            argv.append("--prod")
        else:
            assert_never(manager)
    return argv
