"""
CSV import/export for a match's ledger.

Row shape on both sides: Player, <A> Exposure, <B> Exposure, Share %.
Exports append the book's share on each side (rounded to 2 dp).
Parsing never raises on bad numbers: each cell contributes its leading
number ("20%" is 20) and cells without one coerce to 0.
"""

import csv
import io
import logging
from typing import Dict, Iterable, List, Optional

import pandas as pd
from sqlalchemy.orm import Session

from backend.core.exposure_math import parse_value, round2
from backend.models import LedgerEntry
from backend.services.ledger_store import add_entries_by_name

logger = logging.getLogger(__name__)

EXCEL_BOM = "\ufeff"


def export_header(team_a: str, team_b: str) -> List[str]:
    return [
        "Player",
        f"{team_a} Exposure",
        f"{team_b} Exposure",
        "Share %",
        f"My Share on {team_a}",
        f"My Share on {team_b}",
    ]


def parse_csv_text(text: str) -> List[Dict]:
    """
    Parse CSV text into numeric rows.

    The first non-empty line is the header and is skipped.  Rows with fewer
    than four columns are dropped.  Returns
    [{"name", "exposure_a", "exposure_b", "share_percent"}, ...].
    """
    text = text.lstrip(EXCEL_BOM)
    lines = [line for line in text.splitlines() if line]
    if len(lines) <= 1:
        return []

    rows: List[Dict] = []
    for cols in csv.reader(io.StringIO("\n".join(lines[1:]))):
        if len(cols) < 4:
            continue
        rows.append({
            "name": cols[0].strip(),
            "exposure_a": parse_value(cols[1] or "0"),
            "exposure_b": parse_value(cols[2] or "0"),
            "share_percent": parse_value(cols[3] or "0"),
        })
    return rows


def _cell(x: float) -> str:
    """Integral figures are written without a trailing '.0'."""
    x = float(x)
    if x.is_integer():
        return "0" if x == 0 else f"{x:.0f}"
    return repr(x)


def export_csv(
    entries: Iterable[LedgerEntry],
    team_a: str,
    team_b: str,
    customer_names: Optional[Dict[int, str]] = None,
) -> str:
    """Serialise entries for download. customer_names overrides the cached entry name."""
    records = []
    for entry in entries:
        share = entry.share_percent / 100
        name = entry.name
        if customer_names is not None:
            name = customer_names.get(entry.customer_id, "Unknown")
        records.append([
            name,
            _cell(entry.exposure_a),
            _cell(entry.exposure_b),
            _cell(entry.share_percent),
            _cell(round2(entry.exposure_a * share)),
            _cell(round2(entry.exposure_b * share)),
        ])

    df = pd.DataFrame(records, columns=export_header(team_a, team_b))
    return df.to_csv(index=False, lineterminator="\n")


def export_excel(
    entries: Iterable[LedgerEntry],
    team_a: str,
    team_b: str,
    customer_names: Optional[Dict[int, str]] = None,
) -> str:
    """Excel-compatible CSV: same content with a UTF-8 BOM."""
    return EXCEL_BOM + export_csv(entries, team_a, team_b, customer_names)


def import_rows(db: Session, match_id: int, rows: List[Dict]) -> List[LedgerEntry]:
    """Add one entry per parsed row in a single commit, creating customers by name as needed."""
    created = add_entries_by_name(db, match_id, rows)
    logger.info("CSV import: %d rows into match %d", len(created), match_id)
    return created
