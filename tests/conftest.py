"""Shared fixtures."""

from pathlib import Path

import pytest

from keepsake.logging import configure_logger


@pytest.fixture(autouse=True)
def log_dir(tmp_path: Path) -> Path:
    """Route the global JSONL logger to a temporary directory."""
    path = tmp_path / "logs"
    configure_logger(path)
    return path
