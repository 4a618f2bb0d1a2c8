"""
Storage of end-of-day bars in a local SQL database.
"""

from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import and_, func
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stocky.data.models import Bar
from stocky.data.timeseries import check_ascending
from stocky.database.models import EodRecord, SymbolRecord, create_database, get_session_factory
from stocky.exceptions import DataLoadError

logger = structlog.get_logger(__name__)


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


class BarRepository:
    """Reads and writes bars per symbol using SQLAlchemy."""

    def __init__(self, database_url: str = "sqlite:///data/stocky.db"):
        self.database_url = database_url

        url = make_url(database_url)
        if url.drivername.startswith("sqlite") and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_database(database_url)
        self._session_factory = get_session_factory(self.engine)

    def get_session(self) -> Session:
        """Get database session."""
        return self._session_factory()

    def store(self, symbol: str, bars: Sequence[Bar], exchange: str = "") -> Tuple[int, int]:
        """
        Store bars for a symbol, replacing rows with the same date.

        Args:
            symbol: Stock symbol
            bars: Bars in ascending time order
            exchange: Exchange code recorded for the symbol, kept if empty

        Returns:
            Tuple of (records_inserted, records_updated)
        """
        check_ascending([bar.time for bar in bars])
        symbol = symbol.upper()
        session = self.get_session()
        records_inserted = 0
        records_updated = 0

        try:
            existing = {
                record.date: record
                for record in session.query(EodRecord).filter(EodRecord.symbol == symbol)
            }

            for bar in bars:
                bar_date = _as_date(bar.time)
                record = existing.get(bar_date)
                if record is not None:
                    record.open = bar.open
                    record.high = bar.high
                    record.low = bar.low
                    record.close = bar.close
                    record.volume = bar.volume
                    records_updated += 1
                else:
                    record = EodRecord(symbol=symbol, date=bar_date, open=bar.open, high=bar.high,
                                       low=bar.low, close=bar.close, volume=bar.volume)
                    session.add(record)
                    existing[bar_date] = record
                    records_inserted += 1

            session.flush()
            self._refresh_symbol(session, symbol, exchange)
            session.commit()

        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Error storing bars", symbol=symbol, error=str(e))
            raise DataLoadError(f"Failed to store bars for {symbol}: {e}") from e
        finally:
            session.close()

        logger.info("Bars stored", symbol=symbol, inserted=records_inserted, updated=records_updated)
        return records_inserted, records_updated

    def _refresh_symbol(self, session: Session, symbol: str, exchange: str) -> None:
        first_date, last_date, records = session.query(
            func.min(EodRecord.date), func.max(EodRecord.date), func.count(EodRecord.id)
        ).filter(EodRecord.symbol == symbol).one()

        entry = session.query(SymbolRecord).filter_by(symbol=symbol).first()
        if entry is None:
            entry = SymbolRecord(symbol=symbol)
            session.add(entry)
        if exchange:
            entry.exchange = exchange.upper()
        entry.first_date = first_date
        entry.last_date = last_date
        entry.records = records
        entry.last_updated = datetime.utcnow()

    def load(self, symbol: str, start: Optional[date] = None, end: Optional[date] = None) -> Tuple[Bar, ...]:
        """
        Load bars for a symbol in ascending date order.

        Args:
            symbol: Stock symbol
            start: First date to include
            end: Last date to include

        Returns:
            Immutable tuple of bars, empty if the symbol is unknown
        """
        symbol = symbol.upper()
        session = self.get_session()
        try:
            conditions = [EodRecord.symbol == symbol]
            if start is not None:
                conditions.append(EodRecord.date >= _as_date(start))
            if end is not None:
                conditions.append(EodRecord.date <= _as_date(end))

            records = session.query(EodRecord).filter(and_(*conditions)).order_by(EodRecord.date).all()
            return tuple(
                Bar(time=record.date, open=record.open, high=record.high, low=record.low,
                    close=record.close, volume=record.volume or 0)
                for record in records
            )
        except SQLAlchemyError as e:
            logger.error("Error loading bars", symbol=symbol, error=str(e))
            raise DataLoadError(f"Failed to load bars for {symbol}: {e}") from e
        finally:
            session.close()

    def symbols(self) -> List[str]:
        """Symbols with stored bars, sorted."""
        session = self.get_session()
        try:
            rows = session.query(EodRecord.symbol).distinct().order_by(EodRecord.symbol).all()
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            raise DataLoadError(f"Failed to list symbols: {e}") from e
        finally:
            session.close()

    def summary(self) -> List[Dict[str, Any]]:
        """Per-symbol record counts and date ranges."""
        session = self.get_session()
        try:
            return [
                {
                    'symbol': entry.symbol,
                    'exchange': entry.exchange or "",
                    'records': entry.records,
                    'first_date': entry.first_date,
                    'last_date': entry.last_date,
                }
                for entry in session.query(SymbolRecord).order_by(SymbolRecord.symbol)
            ]
        except SQLAlchemyError as e:
            raise DataLoadError(f"Failed to summarise database: {e}") from e
        finally:
            session.close()
