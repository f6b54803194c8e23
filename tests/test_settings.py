from __future__ import annotations

from tax_appeal_comps.settings import Settings, get_settings, reset_settings_cache


def test_defaults_without_environment():
    settings = Settings.from_env()
    assert settings.registry_base_url == "https://datacatalog.cookcountyil.gov/resource"
    assert settings.provider_base_url == "https://app.realie.ai/api/public"
    assert settings.monthly_quota == 25
    assert settings.batch_size == 5
    assert settings.max_enrichment_lookups == 15
    assert settings.secondary_max_results == 25
    assert settings.provider_configured is False


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("TAC_PROVIDER_API_KEY", "secret")
    monkeypatch.setenv("TAC_MONTHLY_QUOTA", "3")
    monkeypatch.setenv("TAC_SECONDARY_RADIUS_MILES", "0.5")
    monkeypatch.setenv("TAC_CACHE_PATH", "/tmp/x.sqlite")
    settings = Settings.from_env()
    assert settings.provider_configured is True
    assert settings.monthly_quota == 3
    assert settings.secondary_radius_miles == 0.5
    assert settings.cache_path == "/tmp/x.sqlite"


def test_malformed_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("TAC_MONTHLY_QUOTA", "lots")
    monkeypatch.setenv("TAC_REGISTRY_TIMEOUT_S", "")
    monkeypatch.setenv("TAC_BATCH_SIZE", "0")
    settings = Settings.from_env()
    assert settings.monthly_quota == 25
    assert settings.registry_timeout_s == 20.0
    assert settings.batch_size == 1


def test_blank_api_key_is_not_configured(monkeypatch):
    monkeypatch.setenv("TAC_PROVIDER_API_KEY", "   ")
    assert Settings.from_env().provider_configured is False


def test_get_settings_is_memoized_until_reset(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("TAC_MONTHLY_QUOTA", "7")
    assert get_settings() is first
    reset_settings_cache()
    assert get_settings().monthly_quota == 7
