"""
Portfolio overview across all matches and customers.

Receives a SQLAlchemy Session and returns a plain dict, so it can back the
API endpoint and the dashboard without importing web-layer code.
"""

import logging
from typing import Dict, List

from sqlalchemy.orm import Session, joinedload

from backend.models import Customer, LedgerEntry, Match, Settlement

logger = logging.getLogger(__name__)

TOP_CUSTOMERS = 10
RECENT_SETTLEMENTS = 5


def _customer_exposure(entries: List[LedgerEntry]) -> List[Dict]:
    """Absolute share exposure per customer, largest first."""
    totals: Dict[int, Dict] = {}
    for entry in entries:
        if entry.customer is None:
            continue
        share = entry.share_percent / 100
        exposure = abs(entry.exposure_a * share) + abs(entry.exposure_b * share)
        bucket = totals.setdefault(
            entry.customer_id,
            {"customer_id": entry.customer_id, "name": entry.customer.name, "total": 0.0},
        )
        bucket["total"] += exposure

    ranked = sorted(totals.values(), key=lambda b: b["total"], reverse=True)
    return ranked[:TOP_CUSTOMERS]


def calculate_overview(db: Session) -> Dict:
    """
    Headline numbers for the analytics page:
      - counts (matches, settled matches, customers, entries)
      - total P&L over all settlements
      - P&L per settled match
      - top customers by share exposure
      - most recent settlements
    """
    matches = db.query(Match).all()
    settlements = (
        db.query(Settlement)
        .options(joinedload(Settlement.match))
        .order_by(Settlement.settled_at.desc(), Settlement.id.desc())
        .all()
    )
    entries = db.query(LedgerEntry).options(joinedload(LedgerEntry.customer)).all()
    n_customers = db.query(Customer).count()

    by_match = {s.match_id: s for s in settlements}
    match_pl = []
    for m in matches:
        if m.status != "settled":
            continue
        s = by_match.get(m.id)
        match_pl.append({
            "match_id": m.id,
            "name": m.name,
            "profit": s.net_profit if s else 0.0,
        })

    recent = []
    for s in settlements[:RECENT_SETTLEMENTS]:
        match = s.match
        winner = None
        if match is not None:
            winner = match.team_a if s.winning_side == "A" else match.team_b
        recent.append({
            "settlement_id": s.id,
            "match_id": s.match_id,
            "match_name": match.name if match else None,
            "winning_side": s.winning_side,
            "winner": winner,
            "net_profit": s.net_profit,
            "settled_at": s.settled_at.isoformat() if s.settled_at else None,
        })

    overview = {
        "total_matches": len(matches),
        "settled_matches": sum(1 for m in matches if m.status == "settled"),
        "total_customers": n_customers,
        "total_entries": len(entries),
        "total_profit_loss": sum(s.net_profit for s in settlements),
        "match_profit_loss": match_pl,
        "top_customer_exposure": _customer_exposure(entries),
        "recent_settlements": recent,
    }
    logger.debug("Analytics overview: %d matches, %d settlements", len(matches), len(settlements))
    return overview
