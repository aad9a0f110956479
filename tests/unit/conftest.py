"""Shared fixtures for unit tests."""

from __future__ import annotations

import secrets

import pytest

from tests.helpers.fakes import LogCapture


@pytest.fixture
def log_capture() -> LogCapture:
    """Collect log sink output."""
    return LogCapture()


@pytest.fixture
def dummy_token() -> str:
    """A non-literal bearer credential."""
    return f"token-{secrets.token_hex(8)}"
