# =============================================================================
# tests/unit/test_config.py
# Unit Tests for Settings Loading
# =============================================================================

import pytest

from pharmacare_core import config
from pharmacare_core.config import OfflineSettings, load_settings
from pharmacare_core.errors import ConfigurationError


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        '[pharmacare]\n'
        'api_base_url = "https://example.test/api"\n'
        'access_token = "anon"\n'
        'request_timeout = 2.5\n'
        'max_sequence_attempts = 50\n'
        'unknown_option = true\n'
        '\n'
        '[pharmacare.extra_headers]\n'
        'apikey = "anon"\n'
    )
    return path


class TestLoadSettings:
    """Defaults, TOML table, environment overrides"""

    def test_defaults_without_file(self, tmp_path):
        settings = load_settings(tmp_path / "missing.toml", environ={})

        assert settings == OfflineSettings()
        assert settings.request_timeout == 3.0
        assert settings.probe_timeout == 5.0
        assert settings.recheck_interval == 30.0
        assert settings.dashboard_cache_ttl == 60.0
        assert not settings.remote_configured

    def test_toml_values(self, config_file):
        settings = load_settings(config_file, environ={})

        assert settings.api_base_url == "https://example.test/api"
        assert settings.request_timeout == 2.5
        assert settings.max_sequence_attempts == 50
        assert settings.extra_headers == {"apikey": "anon"}
        assert settings.remote_configured

    def test_environment_wins(self, config_file):
        settings = load_settings(config_file, environ={
            "PHARMACARE_REQUEST_TIMEOUT": "1",
            "PHARMACARE_ACCESS_TOKEN": "from-env",
        })

        assert settings.request_timeout == 1.0
        assert settings.access_token == "from-env"

    def test_config_path_from_environment(self, config_file):
        settings = load_settings(environ={"PHARMACARE_CONFIG": str(config_file)})
        assert settings.access_token == "anon"

    @pytest.mark.parametrize("value", ["soon", "-1"])
    def test_invalid_numbers_raise(self, tmp_path, value):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(tmp_path / "missing.toml", environ={"PHARMACARE_POLL_INTERVAL": value})
        assert exc_info.value.details["config_key"] == "poll_interval"

    def test_broken_toml_raises(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[pharmacare\n")
        with pytest.raises(ConfigurationError):
            load_settings(path, environ={})


class TestGetSettings:

    def test_cached_until_reset(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PHARMACARE_CONFIG", str(tmp_path / "none.toml"))
        monkeypatch.setenv("PHARMACARE_KEY_PREFIX", "shop_")
        config.reset_settings()

        first = config.get_settings()
        assert first.key_prefix == "shop_"
        assert config.get_settings() is first

        config.reset_settings()
        assert config.get_settings() is not first
        config.reset_settings()
