"""Pytest configuration for test isolation.

The indexer client, CLI and logging setup read ``VESTING_TRACKER_*``
environment variables (possibly loaded from a developer's local ``.env``).
Leaking those into tests would point the client at a real indexer or change
timeouts and worker counts, so an autouse fixture clears them for every test.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir is on sys.path so `vesting_tracker` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
# Ensure `packages/` precedes the repo root on sys.path so local packages resolve first.
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

_ENV_VARS = (
    "VESTING_TRACKER_INDEXER_URL",
    "VESTING_TRACKER_TIMEOUT_SECONDS",
    "VESTING_TRACKER_SCORING_WORKERS",
    "VESTING_TRACKER_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear tracker settings and run from an empty directory (no stray ``.env``)."""

    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def _reset_package_logging() -> Iterator[None]:
    """Undo ``configure_logging`` (run by CLI tests) so ``caplog`` sees records."""

    from vesting_tracker.logging_setup import reset_logging

    yield
    reset_logging()
