"""
Configuration loading tests
"""

import logging

import pytest
import yaml

from config_loader import LocalTimeFormatter, get_sample_config, load_config

MINIMAL_CONFIG = """
avr:
  ip: 192.168.50.98
discovery: {}
"""


@pytest.fixture
def config_file(tmp_path):
    def write(text):
        path = tmp_path / "config.yaml"
        path.write_text(text)
        return str(path)
    return write


@pytest.fixture(autouse=True)
def clear_avr_env(monkeypatch):
    for name in ('ENABLE_AVR_CONNECTION', 'DENON_AVR_IP', 'DENON_AVR_PORT'):
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:

    def test_defaults_are_applied(self, config_file):
        config = load_config(config_file(MINIMAL_CONFIG))

        assert config['avr']['ip'] == '192.168.50.98'
        assert config['avr']['port'] == 23
        assert config['avr']['enable_connection'] is False
        assert config['avr']['command_timeout'] == 3.0
        assert config['discovery']['avr_threshold'] == 0.2
        assert config['discovery']['validation_timeout'] == 2.0
        assert config['discovery']['tv_ip_range'] == [100, 130]
        assert config['discovery']['scan_interval_minutes'] == 60
        assert config['api']['port'] == 8000
        assert config['logging']['timezone'] == 'America/New_York'
        assert config['database'] is None

    def test_file_values_win_over_defaults(self, config_file):
        config = load_config(config_file("""
avr:
  port: 2323
  status_cache_seconds: 5
discovery:
  avr_threshold: 0.5
"""))
        assert config['avr']['port'] == 2323
        assert config['avr']['status_cache_seconds'] == 5
        assert config['discovery']['avr_threshold'] == 0.5

    def test_env_overrides(self, config_file, monkeypatch):
        monkeypatch.setenv('ENABLE_AVR_CONNECTION', 'TRUE')
        monkeypatch.setenv('DENON_AVR_IP', '10.0.0.42')
        monkeypatch.setenv('DENON_AVR_PORT', '2323')

        config = load_config(config_file(MINIMAL_CONFIG))

        assert config['avr']['enable_connection'] is True
        assert config['avr']['ip'] == '10.0.0.42'
        assert config['avr']['port'] == 2323

    def test_only_literal_true_enables_connection(self, config_file, monkeypatch):
        monkeypatch.setenv('ENABLE_AVR_CONNECTION', 'yes')
        config = load_config(config_file(MINIMAL_CONFIG.replace("avr:", "avr:\n  enable_connection: true")))
        assert config['avr']['enable_connection'] is False

    def test_invalid_port_env_is_ignored(self, config_file, monkeypatch):
        monkeypatch.setenv('DENON_AVR_PORT', 'telnet')
        assert load_config(config_file(MINIMAL_CONFIG))['avr']['port'] == 23

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "absent.yaml"))

    def test_missing_section(self, config_file):
        with pytest.raises(ValueError, match="discovery"):
            load_config(config_file("avr: {}\n"))

    def test_bad_ip_range(self, config_file):
        with pytest.raises(ValueError, match="avr_ip_range"):
            load_config(config_file("avr: {}\ndiscovery:\n  avr_ip_range: [90]\n"))

    def test_validation_timeout_must_be_shorter_than_command_timeout(self, config_file):
        with pytest.raises(ValueError, match="validation_timeout"):
            load_config(config_file("avr:\n  command_timeout: 2.0\ndiscovery:\n  validation_timeout: 2.0\n"))

    def test_default_validation_timeout_checked_against_command_timeout(self, config_file):
        with pytest.raises(ValueError, match="validation_timeout"):
            load_config(config_file("avr:\n  command_timeout: 1.5\ndiscovery: {}\n"))

        config = load_config(config_file("avr:\n  command_timeout: 1.5\ndiscovery:\n  validation_timeout: 1.0\n"))
        assert config['discovery']['validation_timeout'] == 1.0

    def test_incomplete_database_section(self, config_file):
        with pytest.raises(ValueError, match="password"):
            load_config(config_file(MINIMAL_CONFIG + """
database:
  host: localhost
  port: 5432
  database: home_theater
  username: postgres
"""))

    def test_sample_config_loads(self, config_file):
        config = load_config(config_file(yaml.safe_dump(get_sample_config())))
        assert config['database']['database'] == 'home_theater'


class TestLocalTimeFormatter:

    def test_formats_in_configured_timezone(self):
        formatter = LocalTimeFormatter("%(asctime)s %(message)s", "UTC")
        record = logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)
        record.created = 0

        assert formatter.formatTime(record) == "1970-01-01 00:00:00 UTC"
        assert formatter.formatTime(record, "%H:%M") == "00:00"
