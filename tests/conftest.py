"""Pytest configuration and shared fixtures for ftpq tests."""

import pytest
from pathlib import Path
from typing import Generator


@pytest.fixture
def temp_settings_file(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide a temporary settings file path for testing."""
    settings_file = tmp_path / "settings.json"
    yield settings_file


@pytest.fixture
def sample_certificate(tmp_path: Path) -> Path:
    """Create a file that looks like a PEM certificate."""
    cert_file = tmp_path / "server.pem"
    cert_file.write_text(
        "-----BEGIN CERTIFICATE-----\nMIIBfake\n-----END CERTIFICATE-----\n"
    )
    return cert_file


@pytest.fixture
def local_files(tmp_path: Path) -> Path:
    """Create N.txt files holding "data N" for N in 1..3."""
    local_dir = tmp_path / "local"
    local_dir.mkdir()
    for number in range(1, 4):
        (local_dir / f"{number}.txt").write_text(f"data {number}")
    return local_dir
