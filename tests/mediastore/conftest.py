"""Shared pytest fixtures for mediastore tests."""

from __future__ import annotations

import sys
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

# Add src to sys.path for imports
src_path = Path(__file__).parent.parent.parent / "src"
if str(src_path.resolve()) not in sys.path:
    sys.path.insert(0, str(src_path.resolve()))

import pytest

from mediastore.models.config import StorageProvider
from tests.mediastore.mocks import FakeWeb

FIXED_NOW = datetime(2024, 3, 15, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    """Clock pinned to 2024-03-15 10:30 UTC."""
    return lambda: FIXED_NOW


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    return tmp_path / "storage"


@pytest.fixture
def local_provider(storage_root: Path) -> StorageProvider:
    """A LOCAL provider rooted in a temp directory."""
    return StorageProvider.model_validate(
        {
            "name": "local",
            "type": "LOCAL",
            "baseUrl": "https://cdn.example.com/media",
            "isDefault": True,
            "config": {"rootDir": str(storage_root)},
        }
    )


@pytest.fixture
def web() -> FakeWeb:
    """Fake internet with one public host."""
    return FakeWeb(dns={"cdn.example.com": ["93.184.216.34"]})
