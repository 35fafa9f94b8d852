import pytest
from pydantic import ValidationError

from core.config import CertificateSettings, GrpcSettings, Settings


def test_defaults_match_endpoint_contract():
    cfg = GrpcSettings()
    assert cfg.bind_address == "0.0.0.0:4440"
    assert cfg.client_target() == "ipv4:127.0.0.1:4440"
    assert cfg.client_target(5555) == "ipv4:127.0.0.1:5555"
    assert cfg.max_reconnect_backoff_ms == 3_000
    assert cfg.ready_timeout_s == 5.0
    assert cfg.send_interval_s == 2.0
    assert cfg.shutdown_grace_s == 0.5


def test_backoff_ceiling_cannot_exceed_three_seconds():
    with pytest.raises(ValidationError):
        GrpcSettings(max_reconnect_backoff_ms=3_001)


def test_ready_timeout_must_outlast_backoff():
    with pytest.raises(ValidationError):
        GrpcSettings(max_reconnect_backoff_ms=3_000, ready_timeout_s=3.0)
    assert GrpcSettings(max_reconnect_backoff_ms=500, ready_timeout_s=1.0).ready_timeout_s == 1.0


def test_nested_env_overrides(monkeypatch):
    monkeypatch.setenv("GRPC__PORT", "5000")
    monkeypatch.setenv("GRPC__SEND_INTERVAL_S", "0.25")
    monkeypatch.setenv("CERTIFICATE__COMMON_NAME", "pair.local")

    cfg = Settings()
    assert cfg.grpc.port == 5000
    assert cfg.grpc.send_interval_s == 0.25
    assert cfg.certificate.common_name == "pair.local"


def test_subject_fields_are_ordered():
    names = [name for name, _ in CertificateSettings().subject_fields()]
    assert names == [
        "commonName",
        "countryName",
        "organizationName",
        "organizationalUnitName",
        "emailAddress",
    ]


def test_settings_declare_only_used_fields():
    assert set(Settings.model_fields) == {"DEBUG", "grpc", "certificate"}
