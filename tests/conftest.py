# File: tests/conftest.py
from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from html_scout.config import AuditOptions


def pytest_configure(config):
    """Register custom markers so that `--strict-markers` does not fail."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')",
    )


@pytest.fixture()
def site_root(tmp_path: Path) -> Path:
    root = tmp_path / "site"
    root.mkdir()
    return root


@pytest.fixture()
def make_options(tmp_path: Path, site_root: Path) -> Callable[..., AuditOptions]:
    """
    Factory for AuditOptions pointing at *site_root*.
    Network, doctype, cache and log file are off unless a test turns them on.
    """

    def _make(**overrides) -> AuditOptions:
        data = {
            "directory_path": site_root,
            "output_dir": tmp_path / "out",
            "check_external": False,
            "check_doctype": False,
            "enable_cache": False,
            "enable_log": False,
            "external_timeout": 2.0,
        }
        data.update(overrides)
        return AuditOptions(**data)

    return _make
