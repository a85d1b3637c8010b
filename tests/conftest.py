"""Shared fixtures: a throwaway PKI directory with small keys."""

import pytest

from shared.config import Settings
from vpnca.services.ca_engine import CAEngine


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at tmp_path, with 2048-bit keys to keep tests fast."""
    return Settings(
        CA_DIR=str(tmp_path / "ca"),
        DATA_DIR=str(tmp_path / "data"),
        CA_KEY_ALGORITHM="RSA",
        CA_KEY_SIZE=2048,
    )


@pytest.fixture
def engine(test_settings) -> CAEngine:
    """An initialized CA engine."""
    return CAEngine.initialize(test_settings.CA_DIR, test_settings.DATA_DIR, test_settings)
