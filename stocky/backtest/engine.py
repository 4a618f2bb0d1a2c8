"""
Backtesting engine: runs a strategy over a universe of symbols.
"""

import json
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import structlog
from rich.console import Console
from rich.table import Table

from stocky.backtest import metrics
from stocky.backtest.trades import pairs
from stocky.config.settings import Settings, StrategySettings
from stocky.data.models import NamedTrade, Trade
from stocky.data.providers import DataProvider
from stocky.exceptions import DataLoadError, StockyError
from stocky.strategies.base import BaseStrategy
from stocky.strategies.macd import MACDCrossover
from stocky.strategies.moving_average import MovingAverageLookback
from stocky.strategies.signals import SignalWindow

logger = structlog.get_logger(__name__)

PERCENT_STATS = ('win_rate', 'loss_rate', 'expectancy', 'average_result', 'irr', 'market_return')


def create_strategy(config: StrategySettings) -> BaseStrategy:
    """Build the strategy named in the settings."""
    if config.name == "macd":
        window = SignalWindow.CONSECUTIVE_DAYS if config.consecutive_days else SignalWindow.SINGLE_DAY
        return MACDCrossover(config.fast, config.slow, config.signal, window)
    if config.name == "ma-lookback":
        return MovingAverageLookback(config.ma_period, config.lookback)
    raise ValueError(f"Unknown strategy: {config.name}")


def _clean(value: Any) -> Any:
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


@dataclass
class SymbolResult:
    """Outcome of one strategy run on one symbol."""

    symbol: str
    trades: List[Trade] = field(default_factory=list)
    statistics: Dict[str, Any] = field(default_factory=dict)
    bars: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'bars': self.bars,
            'error': self.error,
            'statistics': {key: _clean(value) for key, value in self.statistics.items()},
            'trades': [trade.to_dict() for trade in self.trades],
        }


@dataclass
class BacktestReport:
    """Per-symbol results and aggregate statistics of a backtest."""

    strategy: str
    parameters: Dict[str, Any]
    start: Optional[date] = None
    end: Optional[date] = None
    results: List[SymbolResult] = field(default_factory=list)
    benchmark_symbol: Optional[str] = None
    benchmark: Optional[float] = None

    @property
    def failed(self) -> List[SymbolResult]:
        return [result for result in self.results if not result.succeeded]

    def named_trades(self) -> List[NamedTrade]:
        """All trades across symbols, ordered by completed pair then buy time."""
        named = []
        for result in self.results:
            for buy, sell in pairs(result.trades):
                named.append((
                    buy.time,
                    [NamedTrade(time=trade.time, price=trade.price, action=trade.action, symbol=result.symbol)
                     for trade in (buy, sell)],
                ))
        named.sort(key=lambda item: item[0])
        return [trade for _, pair in named for trade in pair]

    def aggregate(self, subtract: float = 0, weighted: bool = False) -> Dict[str, Any]:
        """Statistics over the pooled trades of every symbol."""
        trades = self.named_trades()
        per_trade = metrics.results(trades)
        return {
            'symbols': len(self.results),
            'failed': len(self.failed),
            'trades': len(per_trade),
            'win_rate': metrics.win_rate(trades, subtract, weighted),
            'loss_rate': metrics.loss_rate(trades, subtract, weighted),
            'profit_factor': metrics.profit_factor(trades, subtract),
            'expectancy': metrics.expectancy(trades, subtract),
            'max_consecutive_losses': metrics.max_consecutive_losses(trades, subtract),
            'average_result': sum(per_trade) / len(per_trade) if per_trade else float('nan'),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'strategy': self.strategy,
            'parameters': self.parameters,
            'start': _clean(self.start),
            'end': _clean(self.end),
            'aggregate': {key: _clean(value) for key, value in self.aggregate().items()},
            'benchmark': {'symbol': self.benchmark_symbol, 'return': _clean(self.benchmark)},
            'results': [result.to_dict() for result in self.results],
        }


class BacktestEngine:
    """Backtesting engine for stocky strategies."""

    def __init__(self, settings: Settings = None):
        self.settings = settings or Settings()
        self.report: Optional[BacktestReport] = None

    def run(self, strategy: BaseStrategy, provider: DataProvider, symbols: List[str],
            start: Optional[date] = None, end: Optional[date] = None) -> BacktestReport:
        """
        Run a strategy over each symbol.

        Symbols are evaluated concurrently. A symbol that fails to load or
        evaluate is logged and recorded as failed; the rest still run.

        Args:
            strategy: Strategy to test
            provider: Source of price data
            symbols: Symbols to test
            start: First date on which signals are traded
            end: Last date of data used

        Returns:
            Backtest report
        """
        start = start or self.settings.data.start_date
        end = end or self.settings.data.end_date

        logger.info("Starting backtest", strategy=strategy.name, symbols=len(symbols),
                    start=str(start), end=str(end))

        workers = max(1, min(self.settings.backtest.max_workers, len(symbols) or 1))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(
                lambda symbol: self._run_symbol(strategy, provider, symbol, start, end), symbols
            ))

        self.report = BacktestReport(strategy=strategy.name, parameters=dict(strategy.parameters),
                                     start=start, end=end, results=results,
                                     benchmark_symbol=self.settings.backtest.benchmark,
                                     benchmark=self._benchmark(provider, start, end))

        logger.info("Backtest completed", strategy=strategy.name,
                    symbols=len(results), failed=len(self.report.failed),
                    trades=sum(len(result.trades) // 2 for result in results))
        return self.report

    def _benchmark(self, provider: DataProvider, start: Optional[date], end: Optional[date]) -> Optional[float]:
        """Buy-and-hold return of the configured benchmark symbol, if any."""
        symbol = self.settings.backtest.benchmark
        if not symbol:
            return None
        config = self.settings.backtest
        try:
            data = provider.get_historical_data(symbol, None, end)
            return metrics.benchmark(data['close'], start, end, config.start_value, config.brokerage)
        except (StockyError, ValueError) as e:
            logger.warning("Benchmark unavailable", symbol=symbol, error=str(e))
            return None

    def _run_symbol(self, strategy: BaseStrategy, provider: DataProvider, symbol: str,
                    start: Optional[date], end: Optional[date]) -> SymbolResult:
        config = self.settings.backtest
        try:
            data = provider.get_historical_data(symbol, None, end)
            if len(data) <= strategy.warmup:
                raise DataLoadError(f"{symbol} has {len(data)} bars, {strategy.name} needs more than {strategy.warmup}")
            trades = strategy.get_trades(data, start, end)
            statistics = metrics.summarize(
                trades,
                start_value=config.start_value,
                invest=config.invest,
                brokerage=config.brokerage,
                subtract=config.subtract,
                weighted_rates=config.weighted,
            )
        except (StockyError, ValueError, KeyError) as e:
            logger.error("Backtest failed for symbol", symbol=symbol, error=str(e))
            return SymbolResult(symbol=symbol, error=str(e))
        except Exception as e:
            logger.exception("Unexpected error in backtest", symbol=symbol, error=str(e))
            return SymbolResult(symbol=symbol, error=f"{type(e).__name__}: {e}")

        logger.debug("Symbol evaluated", symbol=symbol, bars=len(data), trades=len(trades) // 2)
        return SymbolResult(symbol=symbol, trades=trades, statistics=statistics, bars=len(data))

    def print_results(self, report: BacktestReport = None, console: Console = None):
        """Print backtest results."""
        report = report or self.report
        console = console or Console()
        if report is None:
            console.print("[yellow]No results to display. Run backtest first.[/yellow]")
            return

        params = ", ".join(f"{key}={value}" for key, value in report.parameters.items())
        console.print(f"\n[bold blue]Backtest: {report.strategy}[/bold blue] ({params})")

        table = Table(title="Results by symbol")
        table.add_column("Symbol", style="cyan")
        table.add_column("Trades", justify="right")
        table.add_column("Win rate", justify="right", style="green")
        table.add_column("Profit factor", justify="right")
        table.add_column("Expectancy", justify="right")
        table.add_column("Max losses", justify="right", style="red")
        table.add_column("IRR", justify="right")
        table.add_column("Market", justify="right")

        for result in report.results:
            if not result.succeeded:
                table.add_row(result.symbol, "[red]failed[/red]", "", "", "", "", "", "")
                continue
            stats = result.statistics
            table.add_row(
                result.symbol,
                str(stats['trades']),
                _format(stats['win_rate'], percent=True),
                _format(stats['profit_factor']),
                _format(stats['expectancy'], percent=True),
                str(stats['max_consecutive_losses']),
                _format(stats['irr'], percent=True),
                _format(stats['market_return'], percent=True),
            )

        console.print(table)

        aggregate = report.aggregate(self.settings.backtest.subtract, self.settings.backtest.weighted)
        console.print(
            f"Trades: {aggregate['trades']}  "
            f"Win rate: {_format(aggregate['win_rate'], percent=True)}  "
            f"Profit factor: {_format(aggregate['profit_factor'])}  "
            f"Expectancy: {_format(aggregate['expectancy'], percent=True)}  "
            f"Failed symbols: {aggregate['failed']}"
        )
        if report.benchmark_symbol:
            console.print(f"📈 Benchmark {report.benchmark_symbol}: {_format(report.benchmark, percent=True)}")

    def save_results(self, filename: str, report: BacktestReport = None):
        """Save results to JSON file."""
        report = report or self.report
        if report is None:
            raise ValueError("No results to save. Run backtest first.")

        with open(filename, 'w') as f:
            json.dump(report.to_dict(), f, indent=2)

        logger.info("Results saved", filename=str(filename))


def _format(value: float, percent: bool = False) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "-"
    if percent:
        return f"{value * 100:.2f}%"
    return f"{value:.3f}"
