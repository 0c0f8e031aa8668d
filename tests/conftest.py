"""Pytest configuration for update_server tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports, and tests/ for the shared helpers
_PROJECT_ROOT = Path(__file__).parent.parent
for _path in (_PROJECT_ROOT / 'src', Path(__file__).parent):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))

import pytest

from support import StepClock
from update_server.app.inmemory import InMemoryReleaseStore
from update_server.app.storage import LocalStorage


@pytest.fixture
def storage(tmp_path):
    """Local storage rooted in a temporary directory."""
    return LocalStorage(tmp_path / 'objects')


@pytest.fixture
def release_store():
    return InMemoryReleaseStore()


@pytest.fixture
def clock():
    return StepClock()
