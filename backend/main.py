"""
FastAPI application for the Exposure Ledger
REST API over matches, customers, ledger entries and settlements
"""

from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session
from sqlalchemy import text
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Literal, Optional
import logging
import os

from backend.models import get_db, init_db
from backend.auth import verify_api_key, verify_admin_api_key
from backend.core.exposure_math import (
    calculate_average_odds,
    calculate_exposure_from_odds,
    calculate_profit_loss,
    calculate_risk_metrics,
    calculate_totals,
    round2,
)
from backend.services import ledger_store
from backend.services.ledger_store import ConflictError, LedgerError, NotFoundError
from backend.services.settlement import list_settlements, preview_settlement, settle_match
from backend.services.csv_io import export_csv, export_excel, import_rows, parse_csv_text
from backend.services.analytics import calculate_overview
from backend.schemas import (
    ConverterRequest,
    ConverterResponse,
    CsvImportRequest,
    CsvImportResponse,
    CustomerCreate,
    CustomerResponse,
    CustomerUpdate,
    LedgerEntryCreate,
    LedgerEntryResponse,
    LedgerEntryUpdate,
    MatchCreate,
    MatchResponse,
    MatchUpdate,
    OddsEntryCreate,
    SettleRequest,
    SettlementResponse,
)

# Logging setup
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0"


def default_exposure_limit() -> Optional[float]:
    """EXPOSURE_LIMIT from the environment; unset, blank or junk means no ceiling."""
    raw = os.getenv("EXPOSURE_LIMIT", "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric EXPOSURE_LIMIT=%r", raw)
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting Exposure Ledger")
    init_db()
    limit = default_exposure_limit()
    logger.info("Default exposure limit: %s", limit if limit is not None else "none")

    yield

    logger.info("Shutting down Exposure Ledger")


app = FastAPI(
    title="Exposure Ledger",
    description="Bookmaker exposure, profit/loss and settlement ledger",
    version=APP_VERSION,
    lifespan=lifespan,
)

# CORS (adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:8501"],  # Streamlit
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {
        "app": "Exposure Ledger",
        "version": APP_VERSION,
        "status": "operational",
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    health = {"status": "healthy", "database": "connected"}

    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check database error: %s", e)
        health["status"] = "degraded"
        health["database"] = f"error: {str(e)}"

    return health


# ============================================================================
# AUTHENTICATED ENDPOINTS - MATCHES
# ============================================================================

@app.get("/api/matches", response_model=List[MatchResponse])
async def get_matches(
    status: Optional[Literal["upcoming", "live", "completed", "settled"]] = Query(default=None),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """All matches, newest first, optionally filtered by status."""
    return ledger_store.list_matches(db, status=status)


@app.post("/api/matches", response_model=MatchResponse, status_code=201)
async def create_match(
    payload: MatchCreate,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    match = ledger_store.create_match(db, **payload.model_dump())
    logger.info("Match %d created by %s", match.id, user)
    return match


@app.get("/api/matches/{match_id}", response_model=MatchResponse)
async def get_match(
    match_id: int,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return ledger_store.get_match(db, match_id)


@app.patch("/api/matches/{match_id}", response_model=MatchResponse)
async def update_match(
    match_id: int,
    payload: MatchUpdate,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Rename, reschedule or advance the status of a match (forward only)."""
    return ledger_store.update_match(db, match_id, payload.model_dump(exclude_unset=True))


@app.delete("/api/matches/{match_id}")
async def delete_match(
    match_id: int,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Delete a match with all of its entries and its settlement."""
    ledger_store.delete_match(db, match_id)
    logger.info("Match %d deleted by %s", match_id, user)
    return {"message": "Match deleted", "match_id": match_id}


@app.get("/api/matches/{match_id}/entries", response_model=List[LedgerEntryResponse])
async def get_match_entries(
    match_id: int,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    ledger_store.get_match(db, match_id)
    return ledger_store.entries_for_match(db, match_id)


@app.get("/api/matches/{match_id}/summary")
async def get_match_summary(
    match_id: int,
    exposure_limit: Optional[float] = Query(default=None, ge=0),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """
    Exposure totals, average break-even odds, scenario P&L and risk metrics
    for the current ledger of one match.

    exposure_limit overrides the EXPOSURE_LIMIT default for this request.
    Undefined odds and ratios are returned as null, never 0.
    """
    match = ledger_store.get_match(db, match_id)
    entries = ledger_store.entries_for_match(db, match_id)
    limit = exposure_limit if exposure_limit is not None else default_exposure_limit()

    totals = calculate_totals(entries)
    return {
        "match_id": match.id,
        "team_a": match.team_a,
        "team_b": match.team_b,
        "status": match.status,
        "entry_count": len(entries),
        "totals": totals.to_dict(),
        "average_odds": calculate_average_odds(totals).to_dict(),
        "profit_loss": calculate_profit_loss(entries).to_dict(),
        "risk_metrics": calculate_risk_metrics(totals, limit).to_dict(),
    }


# ============================================================================
# AUTHENTICATED ENDPOINTS - CUSTOMERS
# ============================================================================

@app.get("/api/customers", response_model=List[CustomerResponse])
async def get_customers(
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return ledger_store.list_customers(db)


@app.post("/api/customers", response_model=CustomerResponse, status_code=201)
async def create_customer(
    payload: CustomerCreate,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return ledger_store.create_customer(db, **payload.model_dump())


@app.get("/api/customers/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: int,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return ledger_store.get_customer(db, customer_id)


@app.patch("/api/customers/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: int,
    payload: CustomerUpdate,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Update customer details. A rename is mirrored onto all of their entries."""
    return ledger_store.update_customer(db, customer_id, payload.model_dump(exclude_unset=True))


@app.delete("/api/customers/{customer_id}")
async def delete_customer(
    customer_id: int,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    ledger_store.delete_customer(db, customer_id)
    logger.info("Customer %d deleted by %s", customer_id, user)
    return {"message": "Customer deleted", "customer_id": customer_id}


@app.get("/api/customers/{customer_id}/entries", response_model=List[LedgerEntryResponse])
async def get_customer_entries(
    customer_id: int,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    ledger_store.get_customer(db, customer_id)
    return ledger_store.entries_for_customer(db, customer_id)


# ============================================================================
# AUTHENTICATED ENDPOINTS - LEDGER ENTRIES
# ============================================================================

@app.post("/api/entries", response_model=LedgerEntryResponse, status_code=201)
async def create_entry(
    payload: LedgerEntryCreate,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return ledger_store.create_entry(db, **payload.model_dump())


@app.patch("/api/entries/{entry_id}", response_model=LedgerEntryResponse)
async def update_entry(
    entry_id: int,
    payload: LedgerEntryUpdate,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return ledger_store.update_entry(db, entry_id, payload.model_dump(exclude_unset=True))


@app.delete("/api/entries/{entry_id}")
async def delete_entry(
    entry_id: int,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    ledger_store.delete_entry(db, entry_id)
    return {"message": "Entry deleted", "entry_id": entry_id}


# ============================================================================
# AUTHENTICATED ENDPOINTS - TOOLS
# ============================================================================

@app.post("/api/tools/convert", response_model=ConverterResponse)
async def convert_odds(
    payload: ConverterRequest,
    user: str = Depends(verify_api_key),
):
    """Stake + decimal odds on one side -> the book's two-sided exposure (2 dp)."""
    pair = calculate_exposure_from_odds(payload.stake, payload.odds, payload.side)
    return ConverterResponse(exposure_a=round2(pair.exposure_a), exposure_b=round2(pair.exposure_b))


@app.post(
    "/api/matches/{match_id}/entries/from-odds",
    response_model=LedgerEntryResponse,
    status_code=201,
)
async def create_entry_from_odds(
    match_id: int,
    payload: OddsEntryCreate,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Convert a back-bet to exposures and add it, creating the customer by name if needed."""
    match = ledger_store.get_match(db, match_id)
    ledger_store.ensure_open(match)

    pair = calculate_exposure_from_odds(payload.stake, payload.odds, payload.side)
    customer = ledger_store.find_or_create_customer(db, payload.name)
    return ledger_store.create_entry(
        db,
        match_id=match.id,
        customer_id=customer.id,
        exposure_a=round2(pair.exposure_a),
        exposure_b=round2(pair.exposure_b),
        share_percent=payload.share_percent,
    )


# ============================================================================
# AUTHENTICATED ENDPOINTS - SETTLEMENT
# ============================================================================

@app.get("/api/matches/{match_id}/settlement-preview")
async def get_settlement_preview(
    match_id: int,
    winning_side: Literal["A", "B"] = Query(...),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """What settling with this winner would book, without writing anything."""
    result = preview_settlement(db, match_id, winning_side)
    return {"match_id": match_id, **result.to_dict()}


@app.post("/api/matches/{match_id}/settle", response_model=SettlementResponse)
async def settle(
    match_id: int,
    payload: SettleRequest,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """
    Declare the winner and record the final P&L. Irreversible.

    404 if the match does not exist, 409 if it is already settled.
    """
    settlement = settle_match(db, match_id, payload.winning_side)
    logger.info("Match %d settled by %s", match_id, user)
    return settlement


@app.get("/api/settlements", response_model=List[SettlementResponse])
async def get_settlements(
    match_id: Optional[int] = Query(default=None),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return list_settlements(db, match_id=match_id)


# ============================================================================
# AUTHENTICATED ENDPOINTS - CSV
# ============================================================================

@app.get("/api/matches/{match_id}/export")
async def export_match(
    match_id: int,
    fmt: Literal["csv", "excel"] = Query(default="csv"),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Download the match ledger as CSV, or as BOM-prefixed CSV for Excel."""
    match = ledger_store.get_match(db, match_id)
    entries = ledger_store.entries_for_match(db, match_id)
    names = {c.id: c.name for c in ledger_store.list_customers(db)}
    stamp = datetime.utcnow().strftime("%Y-%m-%d-%H-%M-%S")

    if fmt == "excel":
        content = export_excel(entries, match.team_a, match.team_b, names)
        media_type, ext = "application/vnd.ms-excel", "xls"
    else:
        content = export_csv(entries, match.team_a, match.team_b, names)
        media_type, ext = "text/csv", "csv"

    return Response(
        content=content.encode("utf-8"),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="ledger_{match.id}_{stamp}.{ext}"'},
    )


@app.post("/api/matches/{match_id}/import", response_model=CsvImportResponse)
async def import_match_csv(
    match_id: int,
    payload: CsvImportRequest,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Import rows of Player, A Exposure, B Exposure, Share % into a match."""
    rows = parse_csv_text(payload.csv_text)
    if not rows:
        raise HTTPException(status_code=400, detail="No data rows found in the CSV")

    created = import_rows(db, match_id, rows)
    logger.info("CSV import by %s: %d rows into match %d", user, len(created), match_id)
    return CsvImportResponse(
        message=f"Successfully imported {len(created)} row(s)",
        imported=len(created),
        entries=[LedgerEntryResponse.model_validate(e) for e in created],
    )


# ============================================================================
# AUTHENTICATED ENDPOINTS - ANALYTICS
# ============================================================================

@app.get("/api/analytics/overview")
async def get_analytics_overview(
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Counts, total P&L, P&L by match, top customer exposure, recent settlements."""
    return calculate_overview(db)


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

@app.post("/admin/sync-entry-names")
async def sync_entry_names(
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """Repair cached customer names on ledger entries (admin only)."""
    fixed = ledger_store.sync_entry_names(db)
    logger.info("Entry name sync triggered by %s: %d fixed", user, fixed)
    return {"message": "Entry names synchronised", "entries_fixed": fixed}


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(LedgerError)
async def ledger_exception_handler(request: Request, exc: LedgerError):
    """Map service errors: not found -> 404, conflicts -> 409, bad input -> 400."""
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, ConflictError):
        status_code = 409
    else:
        status_code = 400
    logger.warning("%s %s -> %d: %s", request.method, request.url.path, status_code, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "type": type(exc).__name__},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
