"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path (development checkout)
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from spawnkit.config import reload_config  # noqa: E402

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FAKE_CHILD = FIXTURES_DIR / "fake_child.py"


@pytest.fixture(autouse=True)
def clean_config(monkeypatch: pytest.MonkeyPatch):
    """Run every test against the default configuration."""
    for name in list(os.environ):
        if name.startswith("SPAWNKIT_"):
            monkeypatch.delenv(name)
    reload_config()
    yield
    reload_config()


@pytest.fixture
def project_root() -> Path:
    return PROJECT_ROOT


@pytest.fixture
def fake_child() -> list[str]:
    """argv prefix running the fake child script with this interpreter."""
    return [sys.executable, str(FAKE_CHILD)]
