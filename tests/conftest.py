"""
Shared test fixtures and configuration.
"""

import logging
import os
from pathlib import Path

import pytest


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """An empty project directory with a minimal package.json."""
    root = tmp_path / "app"
    root.mkdir()
    (root / "package.json").write_text('{"name": "app", "version": "1.0.0"}')
    return root


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's NPMPLUS_* settings out of the tests."""
    for var in list(os.environ):
        if var.startswith("NPMPLUS_"):
            monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """setup_logging replaces root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
