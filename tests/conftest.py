"""
Shared test fixtures and constants for meteo-csv-ingest tests.

Data files are synthetic: every test writes the few lines it needs to
``tmp_path`` through the ``write_file`` fixture, so no input directory
is required.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Weissfluhjoch, used wherever a geolocation is mandatory (see ``position``)
POSITION = "latlon (46.8296, 9.8092, 2540)"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def write_file(tmp_path: Path) -> Callable[..., Path]:
    """Return a helper writing text (or bytes) to a file under ``tmp_path``."""

    def _write(name: str, content: str | bytes, encoding: str = "utf-8") -> Path:
        path = tmp_path / name
        if isinstance(content, str):
            content = content.encode(encoding)
        path.write_bytes(content)
        return path

    return _write


@pytest.fixture
def position() -> str:
    """A valid POSITION string."""
    return POSITION


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------
def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (end-to-end on synthetic station files)",
    )
