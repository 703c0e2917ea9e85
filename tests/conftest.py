"""
Shared fixtures for the digital twin platform test suite.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from entity_store import EntityStore, seed_sample_data
from generation import GenerationService
from webapp import Settings


@pytest.fixture
def settings():
    """Settings with a broadcast interval long enough to never fire in tests."""
    settings = Settings()
    settings.realtime.broadcast_interval_s = 3600.0
    return settings


@pytest.fixture
def empty_store():
    """Unseeded entity store."""
    return EntityStore()


@pytest.fixture
def seeded_store():
    """Entity store loaded with the demonstration data set."""
    store = EntityStore()
    seed_sample_data(store)
    return store


@pytest.fixture
def generator():
    """Generation adapter double; async methods are AsyncMocks."""
    return AsyncMock(spec=GenerationService)


@pytest.fixture
def rng():
    """Deterministic random generator."""
    return np.random.default_rng(1234)
