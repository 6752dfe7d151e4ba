#!/usr/bin/env python3
"""
Database initialization script
Creates all tables and optionally seeds a demo match
"""

import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Load .env file
from dotenv import load_dotenv
load_dotenv()

from backend.models import Base, engine, SessionLocal, Match
from backend.services import ledger_store
from backend.services.ledger_store import LedgerError
from backend.core.exposure_math import calculate_exposure_from_odds, round2
import logging
from sqlalchemy import text, inspect

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# (customer, stake, decimal odds, side backed, share %)
DEMO_BETS = [
    ("Ravi", 10000, 1.95, "A", 20),
    ("Sunil", 4000, 2.25, "B", 50),
    ("Kiran", 2500, 1.80, "A", 100),
]


def init_database(drop_existing: bool = False):
    """
    Initialize database tables

    Args:
        drop_existing: If True, drops all tables first (DANGER: data loss!)
    """
    logger.info("Initializing Exposure Ledger database...")

    if drop_existing:
        logger.warning("Dropping all existing tables!")
        response = input("Are you sure? This will delete all data. Type 'yes' to confirm: ")
        if response.lower() != 'yes':
            logger.info("Aborted.")
            return False

        Base.metadata.drop_all(bind=engine)
        logger.info("Existing tables dropped")

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")

    tables = inspect(engine).get_table_names()
    logger.info("Tables: %s", ", ".join(tables))

    return True


def seed_demo_data():
    """Add one demo match with a few customers, entered via the odds converter"""
    logger.info("Seeding demo data...")

    db = SessionLocal()

    try:
        if db.query(Match).filter(Match.name == "Demo Final").first():
            logger.info("Demo match already present, skipping")
            return

        match = ledger_store.create_match(db, name="Demo Final", team_a="Mumbai", team_b="Chennai")
        for name, stake, odds, side, share in DEMO_BETS:
            customer = ledger_store.find_or_create_customer(db, name)
            pair = calculate_exposure_from_odds(stake, odds, side)
            ledger_store.create_entry(
                db,
                match_id=match.id,
                customer_id=customer.id,
                exposure_a=round2(pair.exposure_a),
                exposure_b=round2(pair.exposure_b),
                share_percent=share,
            )

        logger.info("Demo data seeded: match #%d with %d entries", match.id, len(DEMO_BETS))

    except LedgerError as e:
        logger.error("Error seeding data: %s", e)
        db.rollback()

    finally:
        db.close()


def check_connection():
    """Test database connection"""
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
        logger.info("Database connection successful")
        return True
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        return False


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize Exposure Ledger database")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables (DANGER!)")
    parser.add_argument("--seed", action="store_true", help="Seed a demo match")
    parser.add_argument("--check", action="store_true", help="Only check connection")

    args = parser.parse_args()

    if args.check:
        sys.exit(0 if check_connection() else 1)

    if not check_connection():
        logger.error("Cannot initialize database - connection failed")
        sys.exit(1)

    if init_database(drop_existing=args.drop) and args.seed:
        seed_demo_data()

    logger.info("Database initialization complete!")
