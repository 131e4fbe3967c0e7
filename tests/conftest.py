"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from bangla10.delivery.catalog import ContentCatalog  # noqa: E402
from bangla10.delivery.prayer import PrayerTracker  # noqa: E402
from bangla10.delivery.scheduler import SessionPlanner  # noqa: E402
from bangla10.delivery.state_store import LocalStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-process API)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def sample_phrases():
    """Twenty phrases across two categories, in catalog order."""
    return [
        {
            "id": f"p{i:02d}",
            "english": f"English {i}",
            "bangla": f"Bangla {i}",
            "phonetic": f"phonetic {i}",
            "category": "greetings" if i <= 10 else "food",
        }
        for i in range(1, 21)
    ]


@pytest.fixture
def sample_recitation():
    """A recitation with three chunks."""
    return {
        "id": "fatiha",
        "title": "Al-Fatiha",
        "order": 1,
        "chunks": [
            {"id": "c1", "arabic": "...", "transliteration": "bismillah", "meaning": "In the name"},
            {"id": "c2", "arabic": "...", "transliteration": "alhamdu", "meaning": "Praise be"},
            {"id": "c3", "arabic": "...", "transliteration": "ar-rahman", "meaning": "The Merciful"},
        ],
    }


@pytest.fixture
def sample_drills():
    """Two greetings drills and one food drill."""
    return [
        {
            "id": "hello-neighbour",
            "title": "Hello, neighbour",
            "category": "greetings",
            "difficulty": 1,
            "lines": [
                {"speaker": "them", "bangla": "Bangla 1", "phonetic": "phonetic 1", "english": "English 1"},
                {"speaker": "you", "bangla": "Bangla 2", "phonetic": "phonetic 2", "english": "English 2"},
            ],
        },
        {
            "id": "at-the-shop",
            "title": "At the shop",
            "category": "food",
            "culturalNote": "Bargaining is expected.",
            "lines": [{"speaker": "you", "speakerLabel": "Customer", "bangla": "Bangla 11"}],
        },
        {"id": "meeting-elders", "title": "Meeting elders", "category": "greetings", "lines": []},
    ]


@pytest.fixture
def catalog(sample_phrases, sample_recitation, sample_drills):
    """Content catalog built from in-memory data."""
    return ContentCatalog.from_data(
        sample_phrases,
        categories=[
            {"id": "greetings", "title": "Greetings", "order": 1},
            {"id": "food", "title": "Food", "order": 2},
        ],
        recitations=[sample_recitation],
        drills=sample_drills,
    )


@pytest.fixture
def store(tmp_path):
    """Local store backed by a temporary SQLite file."""
    local = LocalStore(db_path=tmp_path / "state.db")
    yield local
    local.close()


@pytest.fixture
def planner(catalog, store):
    return SessionPlanner(catalog, store)


@pytest.fixture
def prayer(catalog, store):
    return PrayerTracker(catalog, store)
