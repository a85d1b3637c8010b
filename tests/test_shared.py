import logging
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from main import app
from shared.config import Settings
from shared.logging import setup_logging
from shared.metrics import setup_metrics
from vpnca.api import certificates as certificates_api


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_settings_defaults(monkeypatch):
    """Defaults match the CA policy; env vars override them."""
    for name in ("CA_KEY_SIZE", "CA_VALIDITY_DAYS", "CA_COMMON_NAME", "SERVER_CERT_VALIDITY_DAYS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DATA_DIR", "/var/lib/vpn-ca")

    settings = Settings(_env_file=None)

    assert settings.CA_KEY_SIZE == 3072
    assert settings.CA_VALIDITY_DAYS == 1800
    assert settings.CA_COMMON_NAME == "VPN CA"
    assert settings.SERVER_CERT_VALIDITY_DAYS == 360
    assert settings.DATA_DIR == "/var/lib/vpn-ca"


def test_setup_logging(restore_root_logger):
    """Test that setup_logging configures OTel provider."""
    with patch("shared.logging.set_logger_provider") as mock_set_provider, \
         patch("shared.logging.LoggerProvider") as mock_provider_cls, \
         patch("shared.logging.BatchLogRecordProcessor"), \
         patch("shared.logging.ConsoleLogRecordExporter"):

        setup_logging("debug")

        mock_provider_cls.assert_called_once()
        mock_set_provider.assert_called_once()

    assert logging.getLogger().level == logging.DEBUG


def test_setup_metrics():
    """Test that setup_metrics configures OTel meter provider."""
    with patch("shared.metrics.MeterProvider") as mock_provider_cls, \
         patch("shared.metrics.metrics.set_meter_provider") as mock_set_provider, \
         patch("shared.metrics.PrometheusMetricReader"), \
         patch("shared.metrics.PeriodicExportingMetricReader"), \
         patch("shared.metrics.ConsoleMetricExporter"):

        setup_metrics("test-app")

        mock_provider_cls.assert_called_once()
        mock_set_provider.assert_called_once()


def test_app_startup_initializes_ca():
    """Lifespan startup initializes the CA engine and clears it on shutdown."""
    engine = MagicMock()
    engine.ca_cert.return_value = "-----BEGIN CERTIFICATE-----\n-----END CERTIFICATE-----"

    with patch("main.setup_logging"), \
         patch("main.setup_tracing"), \
         patch("main.setup_metrics"), \
         patch("main.LoggingInstrumentor"), \
         patch("main.CAEngine") as mock_engine_cls:
        mock_engine_cls.initialize.return_value = engine

        with TestClient(app) as local_client:
            assert local_client.get("/health").status_code == 200
            response = local_client.get("/api/ca/certificate")
            assert response.status_code == 200
            assert response.json()["certificate"] == engine.ca_cert.return_value

        mock_engine_cls.initialize.assert_called_once()

    assert certificates_api._engine is None
