"""
Tests for client configuration loading and precedence.
"""

import pytest

from zen_shared.exceptions import ConfigurationError
from zen_shared.logging_config import LogLevel, LogFormat
from zen_client.config import ClientConfiguration


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / 'client.conf'
    path.write_text(
        "[server]\n"
        "url = http://files.example:9000\n"
        "timeout = 12.5\n"
        "\n"
        "[auth]\n"
        "single_flight = false\n"
        "storage_backend = \"file\"\n"
        "\n"
        "[logging]\n"
        "level = DEBUG\n"
    )
    return path


class TestDefaults:
    """Test values used when nothing is configured."""

    def test_defaults(self, tmp_path, clean_environment):
        config = ClientConfiguration(str(tmp_path / 'missing.conf'))

        assert config.get_server_url() == "http://localhost:8080"
        assert config.get_server_timeout() == 30.0
        assert config.get_storage_backend() == "auto"
        assert config.is_single_flight_enabled() is True
        assert config.get_cookie_file() is None
        assert config.get_log_level() == LogLevel.INFO
        assert config.get_log_format() == LogFormat.STANDARD
        assert config.should_show_notifications() is True

    def test_missing_file_is_not_created(self, tmp_path, clean_environment):
        path = tmp_path / 'missing.conf'
        ClientConfiguration(str(path))

        assert not path.exists()


class TestSources:
    """Test file, environment and override precedence."""

    def test_values_from_file(self, config_file, clean_environment):
        config = ClientConfiguration(str(config_file))

        assert config.get_server_url() == "http://files.example:9000"
        assert config.get_server_timeout() == 12.5
        assert config.is_single_flight_enabled() is False
        assert config.get_storage_backend() == "file"
        assert config.get_log_level() == LogLevel.DEBUG

    def test_environment_overrides_file(self, config_file, clean_environment, monkeypatch):
        monkeypatch.setenv('ZEN_SERVER_URL', 'http://env.example')
        monkeypatch.setenv('ZEN_SERVER_TIMEOUT', '5')
        monkeypatch.setenv('ZEN_SINGLE_FLIGHT', 'true')
        monkeypatch.setenv('ZEN_SHOW_NOTIFICATIONS', 'false')

        config = ClientConfiguration(str(config_file))

        assert config.get_server_url() == "http://env.example"
        assert config.get_server_timeout() == 5.0
        assert config.is_single_flight_enabled() is True
        assert config.should_show_notifications() is False

    def test_override_wins(self, config_file, clean_environment, monkeypatch):
        monkeypatch.setenv('ZEN_SERVER_URL', 'http://env.example')
        config = ClientConfiguration(str(config_file))

        config.set_override('server.url', 'http://cli.example')

        assert config.get_server_url() == "http://cli.example"

    def test_get_and_set_config(self, config):
        config.set_config('ui.show_notifications', False)

        assert config.get_config('ui.show_notifications') is False
        assert config.get_config('ui.missing', 'fallback') == 'fallback'
        assert isinstance(config.get_config('server'), dict)

    def test_set_config_requires_section(self, config):
        with pytest.raises(ConfigurationError):
            config.set_config('url', 'http://example')


class TestPersistence:
    """Test save and reload."""

    def test_save_and_reload(self, tmp_path, clean_environment):
        path = tmp_path / 'nested' / 'client.conf'
        config = ClientConfiguration(str(path))
        config.set_config('server.url', 'http://saved.example')
        config.set_config('server.timeout', 7.5)
        config.set_config('auth.single_flight', False)
        config.save_configuration()

        reloaded = ClientConfiguration(str(path))
        assert reloaded.get_server_url() == 'http://saved.example'
        assert reloaded.get_server_timeout() == 7.5
        assert reloaded.is_single_flight_enabled() is False

    def test_reload_picks_up_changes(self, config_file, clean_environment):
        config = ClientConfiguration(str(config_file))
        config_file.write_text("[server]\nurl = http://changed.example\n")

        config.reload_configuration()

        assert config.get_server_url() == 'http://changed.example'
        assert config.get_server_timeout() == 30.0


class TestValidation:
    """Test invalid values."""

    @pytest.mark.parametrize("value", ["soon", 0, -1])
    def test_invalid_timeout(self, config, value):
        config.set_config('server.timeout', value)

        with pytest.raises(ConfigurationError) as exc_info:
            config.get_server_timeout()
        assert exc_info.value.context['config_key'] == 'server.timeout'

    def test_invalid_storage_backend(self, config):
        config.set_override('auth.storage_backend', 'floppy')

        with pytest.raises(ConfigurationError):
            config.get_storage_backend()

    def test_invalid_log_level(self, config):
        config.set_config('logging.level', 'LOUD')

        with pytest.raises(ConfigurationError):
            config.get_log_level()

    def test_invalid_log_format(self, config):
        config.set_config('logging.format', 'xml')

        with pytest.raises(ConfigurationError):
            config.get_log_format()
