import pytest

from civic_settings import ConfigurationError, load_settings

BASE = {"SUPABASE_URL": "https://abc.supabase.co", "SUPABASE_ANON_KEY": "anon-key"}


def test_defaults():
    settings = load_settings(BASE)
    assert settings.storage_bucket == "report-images"
    assert settings.environment == "production"
    assert settings.is_production
    assert settings.gate_fail_open is False
    assert settings.role_lookup_timeout == 5.0
    assert settings.log_level == "INFO"


def test_missing_backend_credentials():
    with pytest.raises(ConfigurationError) as info:
        load_settings({"SUPABASE_URL": "https://abc.supabase.co"})
    assert "SUPABASE_ANON_KEY" in str(info.value)


def test_fail_open_refused_in_production():
    with pytest.raises(ConfigurationError):
        load_settings(dict(BASE, CIVIC_GATE_FAIL_OPEN="true"))


def test_fail_open_allowed_in_development():
    settings = load_settings(dict(BASE, CIVIC_GATE_FAIL_OPEN="yes", CIVIC_ENV="development"))
    assert settings.gate_fail_open is True
    assert not settings.is_production


@pytest.mark.parametrize("env", [
    {"CIVIC_GATE_FAIL_OPEN": "maybe"},
    {"CIVIC_ROLE_LOOKUP_TIMEOUT": "soon"},
    {"CIVIC_ROLE_LOOKUP_TIMEOUT": "0"},
    {"CIVIC_LOG_LEVEL": "LOUD"},
])
def test_invalid_values(env):
    with pytest.raises(ConfigurationError):
        load_settings(dict(BASE, **env))


def test_overrides():
    settings = load_settings(dict(BASE, CIVIC_STORAGE_BUCKET="photos", CIVIC_ROLE_LOOKUP_TIMEOUT="2.5",
                                  CIVIC_LOG_LEVEL="debug", CIVIC_PRIORITY_MODEL="/models/p.joblib"))
    assert settings.storage_bucket == "photos"
    assert settings.role_lookup_timeout == 2.5
    assert settings.log_level == "DEBUG"
    assert settings.priority_model_path == "/models/p.joblib"
