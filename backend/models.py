"""
Database models for the Exposure Ledger
SQLAlchemy ORM (SQLite by default, any SQLAlchemy URL via DATABASE_URL)
"""

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Float,
    DateTime,
    Text,
    ForeignKey,
)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from sqlalchemy.pool import StaticPool
from datetime import datetime
import logging
import os
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data/exposure_ledger.db")


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        # pool_pre_ping keeps long-lived server connections alive
        return {"pool_pre_ping": True}
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty DB
        kwargs["poolclass"] = StaticPool
    else:
        db_path = url.split("sqlite:///", 1)[-1]
        if db_path and os.path.dirname(db_path):
            os.makedirs(os.path.dirname(db_path), exist_ok=True)
    return kwargs


engine = create_engine(DATABASE_URL, echo=False, **_engine_kwargs(DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

MATCH_STATUSES = ("upcoming", "live", "completed", "settled")
CUSTOMER_STATUSES = ("active", "suspended", "inactive")


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class Match(Base):
    """A two-sided event the book takes positions on"""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    team_a = Column(String, nullable=False)
    team_b = Column(String, nullable=False)
    start_time = Column(DateTime)

    # Lifecycle: upcoming -> live -> completed -> settled (forward only)
    status = Column(String(20), nullable=False, default="upcoming", index=True)

    # Written once, by the settlement transaction
    winning_side = Column(String(1))  # "A" | "B"
    settled_at = Column(DateTime)

    # Relationships
    entries = relationship(
        "LedgerEntry", back_populates="match", cascade="all, delete-orphan"
    )
    settlement = relationship(
        "Settlement", back_populates="match", cascade="all, delete-orphan", uselist=False
    )

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Customer(Base):
    """A bettor whose positions are recorded in the ledger"""

    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    email = Column(String)
    phone = Column(String)
    credit_limit = Column(Float)
    status = Column(String(20), nullable=False, default="active")  # active | suspended | inactive
    notes = Column(Text)

    entries = relationship(
        "LedgerEntry", back_populates="customer", cascade="all, delete-orphan"
    )

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class LedgerEntry(Base):
    """One customer's exposure/share position on one match"""

    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)

    # Cached customer display name, rewritten whenever the customer is renamed
    name = Column(String, nullable=False, default="")

    # Book's signed position if that side wins (negative = liability)
    exposure_a = Column(Float, nullable=False, default=0.0)
    exposure_b = Column(Float, nullable=False, default=0.0)
    share_percent = Column(Float, nullable=False, default=0.0)  # 0-100, retained share

    match = relationship("Match", back_populates="entries")
    customer = relationship("Customer", back_populates="entries")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Settlement(Base):
    """Immutable record of a decided match. At most one per match."""

    __tablename__ = "settlements"

    id = Column(Integer, primary_key=True, index=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False, unique=True, index=True)
    winning_side = Column(String(1), nullable=False)
    total_payout = Column(Float, nullable=False)
    net_profit = Column(Float, nullable=False)  # same value as total_payout
    settled_at = Column(DateTime, default=datetime.utcnow, index=True)

    match = relationship("Match", back_populates="settlement")


# Create all tables
def init_db():
    """Initialize database tables"""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
