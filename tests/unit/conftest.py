from __future__ import annotations

import pytest
import structlog

from tests.fakes import FakeStore


@pytest.fixture(autouse=True)
def _quiet_logging() -> None:
    # Unit tests assert on return values, not log output.
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(40))


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()
