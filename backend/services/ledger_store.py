"""
Ledger storage operations: matches, customers and ledger entries.

All public functions receive a SQLAlchemy Session, commit their own unit of
work and return ORM objects, so they can be called from FastAPI endpoints,
scripts or tests without importing any web-layer code.

Invariants kept here (not in the pure core):
  - match status only moves forward: upcoming -> live -> completed;
    'settled' is reachable only through services.settlement
  - entries of a settled match are frozen
  - an entry's cached display name always equals its customer's name
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from backend.models import Customer, LedgerEntry, Match

logger = logging.getLogger(__name__)

_STATUS_ORDER = {"upcoming": 0, "live": 1, "completed": 2, "settled": 3}


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class LedgerError(Exception):
    """Base class for ledger operation failures."""


class NotFoundError(LedgerError):
    pass


class ConflictError(LedgerError):
    pass


class MatchNotFound(NotFoundError):
    def __init__(self, match_id: int):
        super().__init__(f"Match {match_id} not found")
        self.match_id = match_id


class CustomerNotFound(NotFoundError):
    def __init__(self, customer_id: int):
        super().__init__(f"Customer {customer_id} not found")
        self.customer_id = customer_id


class EntryNotFound(NotFoundError):
    def __init__(self, entry_id: int):
        super().__init__(f"Ledger entry {entry_id} not found")
        self.entry_id = entry_id


class InvalidStatusTransition(ConflictError):
    pass


class LedgerLocked(ConflictError):
    """Raised when an entry of a settled match would change."""


class MatchAlreadySettled(ConflictError):
    def __init__(self, match_id: int):
        super().__init__(f"Match {match_id} is already settled")
        self.match_id = match_id


class InvalidImportRow(LedgerError):
    """A row to import is unusable; nothing was written."""


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

def create_match(
    db: Session,
    name: str,
    team_a: str,
    team_b: str,
    start_time: Optional[datetime] = None,
) -> Match:
    match = Match(name=name, team_a=team_a, team_b=team_b, start_time=start_time, status="upcoming")
    db.add(match)
    db.commit()
    db.refresh(match)
    logger.info("Match created: %d %s (%s vs %s)", match.id, match.name, team_a, team_b)
    return match


def get_match(db: Session, match_id: int) -> Match:
    match = db.query(Match).filter(Match.id == match_id).first()
    if not match:
        raise MatchNotFound(match_id)
    return match


def list_matches(db: Session, status: Optional[str] = None) -> List[Match]:
    query = db.query(Match)
    if status:
        query = query.filter(Match.status == status)
    return query.order_by(Match.created_at.desc(), Match.id.desc()).all()


def _check_transition(match: Match, new_status: str) -> None:
    if new_status == match.status:
        return
    if new_status == "settled":
        raise InvalidStatusTransition(
            f"Match {match.id} can only be settled through the settlement endpoint"
        )
    if match.status == "settled" or _STATUS_ORDER[new_status] < _STATUS_ORDER[match.status]:
        raise InvalidStatusTransition(
            f"Match {match.id}: cannot move status from {match.status!r} to {new_status!r}"
        )


def update_match(db: Session, match_id: int, updates: Dict) -> Match:
    """Apply a partial update. Only name, sides, start time and status are writable."""
    match = get_match(db, match_id)

    if "status" in updates and updates["status"] is not None:
        _check_transition(match, updates["status"])
        match.status = updates["status"]

    for field in ("name", "team_a", "team_b", "start_time"):
        if field in updates and (updates[field] is not None or field == "start_time"):
            setattr(match, field, updates[field])

    db.commit()
    db.refresh(match)
    logger.info("Match %d updated: %s", match.id, sorted(updates))
    return match


def delete_match(db: Session, match_id: int) -> None:
    """Delete a match together with its entries and settlement."""
    match = get_match(db, match_id)
    n_entries = len(match.entries)
    db.delete(match)
    db.commit()
    logger.info("Match %d deleted (cascaded %d entries)", match_id, n_entries)


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

def create_customer(db: Session, name: str, **fields) -> Customer:
    customer = Customer(name=name, status="active", **fields)
    db.add(customer)
    db.commit()
    db.refresh(customer)
    logger.info("Customer created: %d %s", customer.id, customer.name)
    return customer


def get_customer(db: Session, customer_id: int) -> Customer:
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise CustomerNotFound(customer_id)
    return customer


def list_customers(db: Session) -> List[Customer]:
    return db.query(Customer).order_by(Customer.name.asc(), Customer.id.asc()).all()


def find_or_create_customer(db: Session, name: str) -> Customer:
    """Exact-name lookup, creating an active customer on a miss."""
    customer = db.query(Customer).filter(Customer.name == name).order_by(Customer.id.asc()).first()
    if customer:
        return customer
    return create_customer(db, name=name)


def update_customer(db: Session, customer_id: int, updates: Dict) -> Customer:
    """
    Apply a partial update.

    A rename rewrites the cached name on every entry of this customer in the
    same commit, so no separate reconciliation pass is needed afterwards.
    """
    customer = get_customer(db, customer_id)
    for field in ("name", "email", "phone", "credit_limit", "status", "notes"):
        # name and status are required columns; the rest may be cleared
        if field in updates and (updates[field] is not None or field not in ("name", "status")):
            setattr(customer, field, updates[field])

    renamed = 0
    if updates.get("name"):
        for entry in customer.entries:
            if entry.name != customer.name:
                entry.name = customer.name
                renamed += 1

    db.commit()
    db.refresh(customer)
    if renamed:
        logger.info("Customer %d renamed to %s (%d entries updated)", customer.id, customer.name, renamed)
    return customer


def delete_customer(db: Session, customer_id: int) -> None:
    """Delete a customer together with all of their entries."""
    customer = get_customer(db, customer_id)
    locked = [e.match_id for e in customer.entries if e.match.status == "settled"]
    if locked:
        raise LedgerLocked(
            f"Customer {customer_id} has entries on settled match(es) {sorted(set(locked))}"
        )
    n_entries = len(customer.entries)
    db.delete(customer)
    db.commit()
    logger.info("Customer %d deleted (cascaded %d entries)", customer_id, n_entries)


# ---------------------------------------------------------------------------
# Ledger entries
# ---------------------------------------------------------------------------

def ensure_open(match: Match) -> None:
    if match.status == "settled":
        raise LedgerLocked(f"Match {match.id} is settled; its ledger is frozen")


def create_entry(
    db: Session,
    match_id: int,
    customer_id: int,
    exposure_a: float,
    exposure_b: float,
    share_percent: float,
) -> LedgerEntry:
    match = get_match(db, match_id)
    ensure_open(match)
    customer = get_customer(db, customer_id)

    entry = LedgerEntry(
        match_id=match.id,
        customer_id=customer.id,
        name=customer.name,
        exposure_a=exposure_a,
        exposure_b=exposure_b,
        share_percent=share_percent,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info(
        "Entry %d added: match %d | %s | A %.2f / B %.2f @ %.1f%%",
        entry.id, match.id, entry.name, exposure_a, exposure_b, share_percent,
    )
    return entry


def get_entry(db: Session, entry_id: int) -> LedgerEntry:
    entry = db.query(LedgerEntry).filter(LedgerEntry.id == entry_id).first()
    if not entry:
        raise EntryNotFound(entry_id)
    return entry


def update_entry(db: Session, entry_id: int, updates: Dict) -> LedgerEntry:
    entry = get_entry(db, entry_id)
    ensure_open(entry.match)

    if updates.get("customer_id") is not None and updates["customer_id"] != entry.customer_id:
        customer = get_customer(db, updates["customer_id"])
        entry.customer_id = customer.id
        entry.name = customer.name

    for field in ("exposure_a", "exposure_b", "share_percent"):
        if updates.get(field) is not None:
            setattr(entry, field, updates[field])

    entry.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(entry)
    logger.info("Entry %d updated: %s", entry.id, sorted(updates))
    return entry


def delete_entry(db: Session, entry_id: int) -> None:
    entry = get_entry(db, entry_id)
    ensure_open(entry.match)
    db.delete(entry)
    db.commit()
    logger.info("Entry %d deleted", entry_id)


def entries_for_match(db: Session, match_id: int) -> List[LedgerEntry]:
    return (
        db.query(LedgerEntry)
        .filter(LedgerEntry.match_id == match_id)
        .order_by(LedgerEntry.id.asc())
        .all()
    )


def entries_for_customer(db: Session, customer_id: int) -> List[LedgerEntry]:
    return (
        db.query(LedgerEntry)
        .filter(LedgerEntry.customer_id == customer_id)
        .order_by(LedgerEntry.id.asc())
        .all()
    )


def sync_entry_names(db: Session) -> int:
    """Repair any cached entry name that drifted from its customer. Returns the count fixed."""
    fixed = 0
    rows = db.query(LedgerEntry, Customer).join(Customer, LedgerEntry.customer_id == Customer.id).all()
    for entry, customer in rows:
        if entry.name != customer.name:
            entry.name = customer.name
            fixed += 1
    if fixed:
        db.commit()
        logger.info("Entry name sync: %d entries repaired", fixed)
    return fixed


def add_entries_by_name(db: Session, match_id: int, rows: List[Dict]) -> List[LedgerEntry]:
    """
    Add several entries to one match in a single commit, creating customers by
    exact name as needed. Either every row is written or none is.

    Each row is {"name", "exposure_a", "exposure_b", "share_percent"}.
    Raises InvalidImportRow before writing anything if a name is blank.
    """
    match = get_match(db, match_id)
    ensure_open(match)

    for i, row in enumerate(rows, start=1):
        if not (row.get("name") or "").strip():
            raise InvalidImportRow(f"Row {i}: player name is required")

    customers: Dict[str, Customer] = {}
    created = []
    try:
        for row in rows:
            name = row["name"].strip()
            customer = customers.get(name)
            if customer is None:
                customer = (
                    db.query(Customer).filter(Customer.name == name).order_by(Customer.id.asc()).first()
                )
            if customer is None:
                customer = Customer(name=name, status="active")
                db.add(customer)
                db.flush()
            customers[name] = customer

            entry = LedgerEntry(
                match_id=match.id,
                customer_id=customer.id,
                name=customer.name,
                exposure_a=row["exposure_a"],
                exposure_b=row["exposure_b"],
                share_percent=row["share_percent"],
            )
            db.add(entry)
            created.append(entry)
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.error("Bulk add to match %d failed: %s", match_id, exc, exc_info=True)
        raise

    for entry in created:
        db.refresh(entry)
    logger.info("Bulk add: %d entries into match %d", len(created), match.id)
    return created
