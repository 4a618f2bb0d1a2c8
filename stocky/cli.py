"""
Command-line interface for stocky.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from stocky.backtest.engine import BacktestEngine, create_strategy
from stocky.config.settings import Settings, get_settings
from stocky.data.models import Symbol
from stocky.data.providers import CSVDataProvider, create_provider
from stocky.database.repository import BarRepository
from stocky.exceptions import StockyError
from stocky.indicators.technical import TechnicalIndicators
from stocky.utils.logging import setup_logging

app = typer.Typer(help="End-of-day technical analysis and backtesting.")
console = Console()


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj


def _parse_date(value: Optional[str]):
    if value is None:
        return None
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise typer.BadParameter(f"Expected a date as YYYY-MM-DD, got '{value}'")


def _provider(settings: Settings):
    repository = BarRepository(settings.data.database_url) if settings.data.source == "database" else None
    return create_provider(settings.data.source, settings.data.data_dir, repository)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config YAML"),
    database_url: Optional[str] = typer.Option(None, help="Database URL"),
    source: Optional[str] = typer.Option(None, help="Data source: csv, json, database or mock"),
    data_dir: Optional[str] = typer.Option(None, help="Directory holding CSV/JSON files"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
):
    """Load settings and configure logging."""
    try:
        settings = get_settings(str(config) if config else None)
        if database_url:
            settings.data.database_url = database_url
        if source:
            settings.data.source = source.lower()
        if data_dir:
            settings.data.data_dir = data_dir
        if log_level:
            settings.logging.level = log_level.upper()
        settings.validate()
    except StockyError as e:
        console.print(f"❌ {e}", style="red")
        raise typer.Exit(code=1)

    setup_logging(settings.logging)
    ctx.obj = settings


@app.command()
def init_db(ctx: typer.Context):
    """Initialize database with tables."""
    settings = _settings(ctx)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console
    ) as progress:
        task = progress.add_task("Creating database...", total=None)
        BarRepository(settings.data.database_url)
        progress.update(task, completed=True)

    console.print("✅ Database tables created!", style="green")


@app.command()
def import_csv(
    ctx: typer.Context,
    symbols: List[str] = typer.Argument(..., help="Symbols to import, one <SYMBOL>.csv each, optionally as EXCHANGE:SYMBOL"),
):
    """Load CSV files into the database."""
    settings = _settings(ctx)
    provider = CSVDataProvider(settings.data.data_dir)
    repository = BarRepository(settings.data.database_url)
    failures = 0

    with Progress(console=console) as progress:
        task = progress.add_task("Importing symbols...", total=len(symbols))

        for text in symbols:
            symbol = Symbol.parse(text)
            try:
                bars = provider.get_bars(symbol.name)
                inserted, updated = repository.store(symbol.name, bars, symbol.exchange)
                console.print(f"✅ {symbol}: {inserted} inserted, {updated} updated", style="green")
            except StockyError as e:
                failures += 1
                console.print(f"❌ Failed to import {symbol}: {e}", style="red")

            progress.advance(task)

    if failures:
        raise typer.Exit(code=1)


@app.command()
def summary(ctx: typer.Context):
    """Show database summary."""
    settings = _settings(ctx)
    entries = BarRepository(settings.data.database_url).summary()

    table = Table(title="Stored Symbols", show_header=True, header_style="bold magenta")
    table.add_column("Symbol", style="cyan")
    table.add_column("Exchange", style="cyan")
    table.add_column("Records", justify="right", style="yellow")
    table.add_column("First Date", style="blue")
    table.add_column("Last Date", style="blue")

    for entry in entries:
        table.add_row(
            entry['symbol'],
            entry['exchange'],
            str(entry['records']),
            str(entry['first_date'] or "No data"),
            str(entry['last_date'] or "No data"),
        )

    console.print(table)
    console.print(f"\n📊 Total Records: {sum(entry['records'] or 0 for entry in entries):,}")
    console.print(f"📈 Symbols: {len(entries)}")


@app.command()
def backtest(
    ctx: typer.Context,
    symbols: List[str] = typer.Argument(..., help="Symbols to backtest"),
    strategy: Optional[str] = typer.Option(None, help="Strategy: macd or ma-lookback"),
    start_date: Optional[str] = typer.Option(None, help="Start date (YYYY-MM-DD)"),
    end_date: Optional[str] = typer.Option(None, help="End date (YYYY-MM-DD)"),
    consecutive_days: Optional[bool] = typer.Option(
        None, "--consecutive-days/--single-day", help="Require two bars either side of a cross"),
    benchmark: Optional[str] = typer.Option(None, help="Symbol held from start to end for comparison"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write results as JSON"),
):
    """Run a strategy over symbols and report trade statistics."""
    settings = _settings(ctx)
    if strategy:
        settings.strategy.name = strategy
    if consecutive_days is not None:
        settings.strategy.consecutive_days = consecutive_days
    if benchmark:
        settings.backtest.benchmark = Symbol.parse(benchmark).name

    try:
        settings.validate()
        runner = BacktestEngine(settings)
        report = runner.run(
            create_strategy(settings.strategy),
            _provider(settings),
            [Symbol.parse(text).name for text in symbols],
            _parse_date(start_date),
            _parse_date(end_date),
        )
    except StockyError as e:
        console.print(f"❌ {e}", style="red")
        raise typer.Exit(code=1)

    runner.print_results(report, console)

    if output:
        runner.save_results(str(output), report)
        console.print(f"💾 Results saved to {output}", style="green")


@app.command()
def indicators(
    ctx: typer.Context,
    symbol: str = typer.Argument(..., help="Symbol to analyse"),
    period: int = typer.Option(14, help="Indicator period"),
    rows: int = typer.Option(5, help="Number of most recent bars to show"),
):
    """Show the latest indicator values for a symbol."""
    settings = _settings(ctx)

    try:
        data = _provider(settings).get_historical_data(Symbol.parse(symbol).name)
    except StockyError as e:
        console.print(f"❌ {e}", style="red")
        raise typer.Exit(code=1)

    close = data['close']
    stochastic = TechnicalIndicators.stochastic(close, period, 3, 3, high=data['high'], low=data['low'])
    columns = {
        'Close': close,
        f'SMA({period})': TechnicalIndicators.sma(close, period),
        f'EMA({period})': TechnicalIndicators.ema(close, period),
        f'DEMA({period})': TechnicalIndicators.dema(close, period),
        f'TEMA({period})': TechnicalIndicators.tema(close, period),
        f'RSI({period})': TechnicalIndicators.rsi(close, period),
        '%K': stochastic['%K'],
        '%D': stochastic['%D'],
        f'Sharpe({period})': TechnicalIndicators.sharpe_ratio(close, period),
    }

    table = Table(title=f"{symbol.upper()} indicators", show_header=True, header_style="bold magenta")
    table.add_column("Date", style="cyan")
    for name in columns:
        table.add_column(name, justify="right")

    for position in range(max(len(data) - rows, 0), len(data)):
        values = [series.iloc[position] for series in columns.values()]
        table.add_row(
            str(data.index[position].date()),
            *["-" if value != value else f"{value:.4f}" for value in values],
        )

    console.print(table)
    console.print(f"📉 Annual volatility: {TechnicalIndicators.annual_volatility(close):.4f}")
    console.print(f"📊 Yearly weighted volatility: {TechnicalIndicators.yearly_volatility(close):.4f}")


if __name__ == "__main__":
    app()
