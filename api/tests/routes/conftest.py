"""Shared fixtures for route tests."""

from collections.abc import Generator
from unittest.mock import patch

import pytest

from core.ratelimit import limiter


@pytest.fixture(autouse=True)
def limiter_disabled() -> Generator[None]:
    """Route tests fire bursts of requests; limits are tested in core."""
    with patch.object(limiter, "enabled", False):
        yield
