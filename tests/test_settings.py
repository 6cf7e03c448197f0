import logging

from barriowatch.config.settings import get_logging_config, get_settings
from barriowatch.core.logging import configure_logging


def _fresh_settings():
    get_settings.cache_clear()
    return get_settings()


def test_packaged_defaults_encode_workflow_constants(monkeypatch):
    for name in ("BARRIOWATCH_CONFIG_PATH", "SUPABASE_URL", "BARRIOWATCH_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    settings = _fresh_settings()

    assert settings.verification.listing_radius_m == 5000
    assert settings.verification.verify_radius_m == 300
    assert settings.sos.emission_interval_seconds == 30
    assert settings.sos.audio_bucket == "sos-audio"
    assert settings.backend.reports_table == "reports"
    get_settings.cache_clear()


def test_env_overrides_are_applied(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://project.example.test")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setenv("BARRIOWATCH_LOG_LEVEL", "debug")

    settings = _fresh_settings()

    assert settings.backend.url == "https://project.example.test"
    assert settings.backend.anon_key == "anon-key"
    assert settings.app.log_level == "debug"
    get_settings.cache_clear()


def test_external_config_file_replaces_defaults(monkeypatch, tmp_path):
    path = tmp_path / "barriowatch.yaml"
    path.write_text("verification:\n  verify_radius_m: 150\nsos:\n  emission_interval_seconds: 10\n", encoding="utf-8")
    monkeypatch.setenv("BARRIOWATCH_CONFIG_PATH", str(path))

    settings = _fresh_settings()

    assert settings.verification.verify_radius_m == 150
    assert settings.verification.listing_radius_m == 5000
    assert settings.sos.emission_interval_seconds == 10
    get_settings.cache_clear()


def test_configure_logging_applies_settings_level(monkeypatch):
    monkeypatch.setenv("BARRIOWATCH_LOG_LEVEL", "warning")
    _fresh_settings()

    configure_logging()

    assert logging.getLogger().level == logging.WARNING
    # The cached YAML mapping must not be mutated by the override.
    assert get_logging_config()["root"]["level"] == "INFO"
    get_settings.cache_clear()
