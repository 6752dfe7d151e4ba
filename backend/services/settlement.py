"""
Match settlement: preview and the one-shot settle transaction.

settle_match() is all-or-nothing: the Settlement row and the match's
transition to 'settled' are written in a single commit.  A missing match
raises MatchNotFound and a second settlement raises MatchAlreadySettled,
both before anything is written.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.core.exposure_math import SettlementResult, calculate_settlement
from backend.models import Settlement
from backend.services.ledger_store import (
    MatchAlreadySettled,
    entries_for_match,
    get_match,
)

logger = logging.getLogger(__name__)


def preview_settlement(db: Session, match_id: int, winning_side: str) -> SettlementResult:
    """What settling with ``winning_side`` would produce. Writes nothing."""
    match = get_match(db, match_id)
    return calculate_settlement(entries_for_match(db, match.id), winning_side)


def settle_match(db: Session, match_id: int, winning_side: str) -> Settlement:
    """
    Declare the winner of a match and record its final P&L.

    Raises:
        MatchNotFound: no match with this id.
        MatchAlreadySettled: the match was settled before.
        ValueError: winning_side is not "A" or "B".
    """
    match = get_match(db, match_id)
    if match.status == "settled" or match.settlement is not None:
        raise MatchAlreadySettled(match_id)

    entries = entries_for_match(db, match.id)
    result = calculate_settlement(entries, winning_side)
    now = datetime.utcnow()

    settlement = Settlement(
        match_id=match.id,
        winning_side=winning_side,
        total_payout=result.total_payout,
        net_profit=result.net_profit,
        settled_at=now,
    )
    try:
        db.add(settlement)
        match.status = "settled"
        match.winning_side = winning_side
        match.settled_at = now
        db.commit()
    except IntegrityError as exc:
        # settlements.match_id is UNIQUE: a concurrent settle got there first
        db.rollback()
        logger.warning("Settlement of match %d rejected by the database: %s", match_id, exc)
        raise MatchAlreadySettled(match_id) from exc
    except Exception as exc:
        db.rollback()
        logger.error("Settlement of match %d failed: %s", match_id, exc, exc_info=True)
        raise

    db.refresh(settlement)
    logger.info(
        "Match %d settled: winner %s | %d entries | net P&L %.2f",
        match.id, winning_side, len(entries), result.net_profit,
    )
    return settlement


def list_settlements(db: Session, match_id: Optional[int] = None) -> List[Settlement]:
    query = db.query(Settlement)
    if match_id is not None:
        query = query.filter(Settlement.match_id == match_id)
    return query.order_by(Settlement.settled_at.desc(), Settlement.id.desc()).all()
