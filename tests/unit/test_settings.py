import pytest
from datetime import date

from stocky.config.settings import Settings, get_settings
from stocky.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ['STOCKY_DATA_DIR', 'STOCKY_DATABASE_URL', 'STOCKY_DATA_SOURCE', 'LOG_LEVEL']:
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    """Test configuration loading."""

    def test_defaults_when_file_missing(self, tmp_path):
        settings = Settings.load_from_file(str(tmp_path / "missing.yaml"))

        assert settings.data.source == "csv"
        assert settings.strategy.name == "macd"
        assert (settings.strategy.fast, settings.strategy.slow, settings.strategy.signal) == (12, 26, 9)
        assert settings.backtest.max_workers == 4

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "data:\n"
            "  source: json\n"
            "  data_dir: /tmp/prices\n"
            "  start_date: 2010-01-01\n"
            "strategy:\n"
            "  name: ma-lookback\n"
            "  ma_period: 30\n"
            "backtest:\n"
            "  brokerage: 15\n"
            "  weighted: true\n"
            "logging:\n"
            "  level: DEBUG\n"
        )
        settings = Settings.load_from_file(str(path))

        assert settings.data.source == "json"
        assert settings.data.start_date == date(2010, 1, 1)
        assert settings.strategy.name == "ma-lookback"
        assert settings.strategy.ma_period == 30
        assert settings.strategy.lookback == 10, "Unset keys keep their defaults"
        assert settings.backtest.brokerage == 15
        assert settings.backtest.weighted is True
        assert settings.logging.level == "DEBUG"

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("strategy:\n  speed: 3\n")

        with pytest.raises(ConfigError):
            Settings.load_from_file(str(path))

    def test_unknown_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("broker:\n  host: localhost\n")

        with pytest.raises(ConfigError):
            Settings.load_from_file(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("data: [unclosed\n")

        with pytest.raises(ConfigError):
            Settings.load_from_file(str(path))

    @pytest.mark.parametrize("section,key,value", [
        ("data", "source", "ftp"),
        ("strategy", "name", "random"),
        ("strategy", "fast", 0),
        ("strategy", "fast", 30),
        ("backtest", "start_value", -1),
        ("backtest", "max_workers", 0),
        ("logging", "level", "LOUD"),
    ])
    def test_invalid_values(self, section, key, value):
        settings = Settings()
        setattr(getattr(settings, section), key, value)

        with pytest.raises(ConfigError):
            settings.validate()

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv('STOCKY_DATA_DIR', '/data/eod')
        monkeypatch.setenv('STOCKY_DATABASE_URL', 'sqlite:///other.db')
        monkeypatch.setenv('STOCKY_DATA_SOURCE', 'DATABASE')
        monkeypatch.setenv('LOG_LEVEL', 'warning')

        settings = get_settings(str(tmp_path / "missing.yaml"))

        assert settings.data.data_dir == '/data/eod'
        assert settings.data.database_url == 'sqlite:///other.db'
        assert settings.data.source == 'database'
        assert settings.logging.level == 'WARNING'

    def test_invalid_environment_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv('STOCKY_DATA_SOURCE', 'carrier-pigeon')

        with pytest.raises(ConfigError):
            get_settings(str(tmp_path / "missing.yaml"))

    def test_config_error_is_stocky_error(self):
        from stocky.exceptions import StockyError
        assert issubclass(ConfigError, StockyError)
