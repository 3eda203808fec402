"""Tests that every top-level module imports cleanly on its own."""

import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.parent


@pytest.mark.parametrize("module", [
    "storage.images",
    "storage",
    "relay",
    "relay.errors",
    "relay.server.relay_server",
    "relay.operator.console",
    "web.app",
    "main",
])
def test_fresh_interpreter_import(module):
    """Test importing ``module`` first, in a new interpreter, succeeds."""
    result = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        cwd=ROOT, capture_output=True, text=True, timeout=60,
    )
    assert result.returncode == 0, result.stderr
