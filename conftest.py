"""Shared test configuration."""

from __future__ import annotations

import pytest

from deeperseeker.logging_utils import configure_logging


def pytest_configure(config: pytest.Config) -> None:
    """Route structlog through stdlib logging so stdout stays clean for CLI tests."""
    configure_logging("DEBUG")
