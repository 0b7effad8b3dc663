"""Fixtures compartidos."""

import pytest

from packtrack.core.cache_manager import ResultCache
from packtrack.core.config import Settings
from tests.fakes import FakeClock, make_settings


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def result_cache(settings, clock) -> ResultCache:
    return ResultCache(ttl_seconds=settings.ORDER_CACHE_TTL_SECONDS, clock=clock)
