import pytest
from pydantic import ValidationError

from crm_gateway.config import BackendSettings, EdgeConfig


def test_edge_config_from_env(monkeypatch):
    monkeypatch.setenv("EDGE_BASE_DOMAIN", "CRM.Example.org")
    monkeypatch.setenv("EDGE_ORIGIN_HOST", "origin.internal")
    monkeypatch.setenv("EDGE_SHOW_TENANT_FIELD", "false")
    monkeypatch.setenv("EDGE_SPA_FALLBACK", "yes")
    monkeypatch.setenv("EDGE_TIMEOUT", "5")

    config = EdgeConfig.from_env()

    assert config.base_domain == "crm.example.org"
    assert config.app_host == "app.crm.example.org"
    assert config.api_host == "api.crm.example.org"
    assert config.show_tenant_field is False
    assert config.spa_fallback is True
    assert config.timeout == 5


def test_edge_config_is_immutable(edge_config):
    with pytest.raises(ValidationError):
        edge_config.base_domain = "other.com"


def test_backend_settings_from_env(monkeypatch):
    monkeypatch.setenv("CRM_BASE_DOMAIN", "crm.test")
    monkeypatch.setenv("CRM_ADMIN_API_KEY", "k")
    monkeypatch.setenv("CRM_SESSION_TTL_HOURS", "2")
    monkeypatch.delenv("CRM_SEED_DATA_PATH", raising=False)

    settings = BackendSettings.from_env()

    assert settings.base_domain == "crm.test"
    assert settings.admin_api_key == "k"
    assert settings.session_ttl_hours == 2
    assert settings.seed_data_path == "seed_data"
    assert "localhost" in settings.dev_hosts


def test_blank_admin_key_disables_admin_api(monkeypatch):
    monkeypatch.setenv("CRM_ADMIN_API_KEY", "")

    assert BackendSettings.from_env().admin_api_key is None
