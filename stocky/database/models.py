"""
Database models for end-of-day price data.
"""

from datetime import datetime

from sqlalchemy import (Column, Date, DateTime, Float, Index, Integer, String,
                        UniqueConstraint, create_engine)
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class EodRecord(Base):
    """One end-of-day OHLCV row for a symbol."""

    __tablename__ = 'eod'

    id = Column(Integer, primary_key=True)
    symbol = Column(String(20), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    open = Column(Float, nullable=False)
    high = Column(Float, nullable=False)
    low = Column(Float, nullable=False)
    close = Column(Float, nullable=False)
    volume = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint('symbol', 'date', name='uq_eod_symbol_date'),
        Index('ix_eod_symbol_date', 'symbol', 'date'),
    )

    def __repr__(self):
        return f"<EodRecord(symbol='{self.symbol}', date='{self.date}', close={self.close})>"


class SymbolRecord(Base):
    """Symbol metadata."""

    __tablename__ = 'symbols'

    id = Column(Integer, primary_key=True)
    symbol = Column(String(20), unique=True, nullable=False, index=True)
    exchange = Column(String(20))
    first_date = Column(Date)
    last_date = Column(Date)
    records = Column(Integer, default=0)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<SymbolRecord(symbol='{self.symbol}', records={self.records})>"


def create_database(database_url: str = "sqlite:///data/stocky.db"):
    """Create database tables."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine):
    """Session factory bound to ``engine``."""
    return sessionmaker(bind=engine)
