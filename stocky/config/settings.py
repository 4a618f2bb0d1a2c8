"""
Configuration management for stocky.
"""

import os
from dataclasses import dataclass, field, fields
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from stocky.exceptions import ConfigError

# Load environment variables
load_dotenv()

DATA_SOURCES = ("csv", "json", "database", "mock")
STRATEGIES = ("macd", "ma-lookback")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class DataSettings:
    source: str = "csv"
    data_dir: str = "data"
    database_url: str = "sqlite:///data/stocky.db"
    start_date: Optional[date] = None
    end_date: Optional[date] = None


@dataclass
class StrategySettings:
    name: str = "macd"
    fast: int = 12
    slow: int = 26
    signal: int = 9
    consecutive_days: bool = False
    ma_period: int = 50
    lookback: int = 10


@dataclass
class BacktestSettings:
    start_value: float = 10000.0
    brokerage: float = 0.0
    invest: float = 10000.0
    subtract: float = 0.0
    weighted: bool = False
    max_workers: int = 4
    benchmark: Optional[str] = None


@dataclass
class LoggingSettings:
    level: str = "INFO"
    json: bool = False
    file: Optional[str] = None


def _build(section_cls, name: str, values: Optional[Dict[str, Any]]):
    if values is None:
        return section_cls()
    if not isinstance(values, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")

    known = {f.name for f in fields(section_cls)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"Unknown keys in config section '{name}': {', '.join(sorted(unknown))}")
    return section_cls(**values)


@dataclass
class Settings:
    data: DataSettings = field(default_factory=DataSettings)
    strategy: StrategySettings = field(default_factory=StrategySettings)
    backtest: BacktestSettings = field(default_factory=BacktestSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @classmethod
    def load_from_file(cls, config_path: str = None) -> 'Settings':
        """Load settings from YAML file."""
        if config_path is None:
            # Default to config/config.yaml relative to project root
            project_root = Path(__file__).parent.parent.parent
            config_path = project_root / "config" / "config.yaml"

        if not os.path.exists(config_path):
            return cls()

        try:
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

        return cls._from_dict(config_data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> 'Settings':
        """Create Settings instance from dictionary."""
        if not isinstance(data, dict):
            raise ConfigError("Config file must contain a mapping")

        unknown = set(data) - {'data', 'strategy', 'backtest', 'logging'}
        if unknown:
            raise ConfigError(f"Unknown config sections: {', '.join(sorted(unknown))}")

        settings = cls(
            data=_build(DataSettings, 'data', data.get('data')),
            strategy=_build(StrategySettings, 'strategy', data.get('strategy')),
            backtest=_build(BacktestSettings, 'backtest', data.get('backtest')),
            logging=_build(LoggingSettings, 'logging', data.get('logging')),
        )
        return settings.validate()

    def override_with_env(self) -> 'Settings':
        """Override settings with environment variables."""
        if os.getenv('STOCKY_DATA_DIR'):
            self.data.data_dir = os.getenv('STOCKY_DATA_DIR')
        if os.getenv('STOCKY_DATABASE_URL'):
            self.data.database_url = os.getenv('STOCKY_DATABASE_URL')
        if os.getenv('STOCKY_DATA_SOURCE'):
            self.data.source = os.getenv('STOCKY_DATA_SOURCE').lower()
        if os.getenv('LOG_LEVEL'):
            self.logging.level = os.getenv('LOG_LEVEL').upper()

        return self.validate()

    def validate(self) -> 'Settings':
        """
        Check setting values.

        Raises:
            ConfigError: on the first invalid value
        """
        if self.data.source not in DATA_SOURCES:
            raise ConfigError(f"data.source must be one of {DATA_SOURCES}, got '{self.data.source}'")
        if (self.data.start_date and self.data.end_date
                and self.data.start_date > self.data.end_date):
            raise ConfigError("data.start_date must not be after data.end_date")

        if self.strategy.name not in STRATEGIES:
            raise ConfigError(f"strategy.name must be one of {STRATEGIES}, got '{self.strategy.name}'")
        for name in ('fast', 'slow', 'signal', 'ma_period', 'lookback'):
            value = getattr(self.strategy, name)
            if not isinstance(value, int) or value <= 0:
                raise ConfigError(f"strategy.{name} must be a positive integer, got {value!r}")
        if self.strategy.fast >= self.strategy.slow:
            raise ConfigError("strategy.fast must be shorter than strategy.slow")

        if self.backtest.start_value <= 0 or self.backtest.invest <= 0:
            raise ConfigError("backtest.start_value and backtest.invest must be positive")
        if self.backtest.brokerage < 0:
            raise ConfigError("backtest.brokerage must not be negative")
        if self.backtest.max_workers < 1:
            raise ConfigError("backtest.max_workers must be at least 1")

        if str(self.logging.level).upper() not in LOG_LEVELS:
            raise ConfigError(f"logging.level must be one of {LOG_LEVELS}, got '{self.logging.level}'")

        return self


def get_settings(config_path: str = None) -> Settings:
    """
    Get application settings with environment variable overrides.

    Args:
        config_path: Path to config file (optional)

    Returns:
        Settings instance
    """
    settings = Settings.load_from_file(config_path)
    settings.override_with_env()
    return settings
