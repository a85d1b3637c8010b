"""Tests for the CA metrics facade."""

from unittest.mock import patch

from vpnca import metrics as ca_metrics_module
from vpnca.metrics import CAMetrics


def test_ca_initialized_gauge_reports_state(monkeypatch):
    monkeypatch.setattr(ca_metrics_module, "_ca_root_state", None)
    assert [o.value for o in ca_metrics_module._get_ca_initialized(None)] == [0]

    CAMetrics().record_ca_initialized(created=False)

    [observation] = list(ca_metrics_module._get_ca_initialized(None))
    assert observation.value == 1
    assert observation.attributes == {"state": "loaded"}


def test_record_certificate_issued_labels_profile():
    with patch.object(ca_metrics_module, "certificates_issued_total") as counter, \
         patch.object(ca_metrics_module, "certificate_issuance_duration") as histogram:
        CAMetrics().record_certificate_issued("client", 0.25)

    counter.add.assert_called_once_with(1, {"profile": "client"})
    histogram.record.assert_called_once_with(0.25, {"profile": "client"})


def test_record_issuance_rejected_labels_reason():
    with patch.object(ca_metrics_module, "issuance_rejected_total") as counter:
        CAMetrics().record_issuance_rejected("server", "duplicate_subject")

    counter.add.assert_called_once_with(1, {"profile": "server", "reason": "duplicate_subject"})
