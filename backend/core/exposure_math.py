"""Exposure and settlement mathematics for a two-sided book.

Nothing in this module touches the database, logs or mutates its inputs;
services, the API and the dashboard all call into it for their figures.

Sign convention
---------------
``exposure_a`` / ``exposure_b`` are the book's signed position if that side
wins: negative = liability (we pay), positive = gain (we keep).  The two are
independent; a book does not have to balance.

``share_percent`` (0–100) is the fraction of an entry's exposure the book
retains.  Every "share" figure below is ``exposure * share_percent / 100``.

Design decisions
----------------
* Inputs are duck-typed: anything with ``exposure_a``, ``exposure_b`` and
  ``share_percent`` attributes works (ORM rows, :class:`EntrySnapshot`).
  Inputs are never mutated.
* Undefined ratios are ``None``, never ``0`` or ``inf``.  The display layer
  renders ``None`` as an em-dash, so "no data" and "zero" stay distinct.
* No intermediate rounding.  :func:`round2` is applied only at the display
  and serialisation boundary (converter output, CSV export).
* Sums are plain float accumulation in input order.  ``calculate_totals``
  and ``calculate_profit_loss`` perform the identical operations, so their
  share figures agree bit-for-bit.

Run tests with::

    pytest tests/test_exposure_math.py -v
"""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Context, Decimal
from dataclasses import asdict, dataclass, field
from typing import Final, Iterable, Optional, Protocol

#: Valid side identifiers.
SIDES: Final[tuple[str, str]] = ("A", "B")

#: Placeholder rendered for "no data" values.
NO_DATA: Final[str] = "—"

#: Leading decimal number of a cell (sign, digits, fraction, exponent).
_LEADING_NUMBER: Final[re.Pattern] = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")

_CENTS: Final[Decimal] = Decimal("0.01")

#: Enough precision to quantize any finite float to cents.
_WIDE: Final[Context] = Context(prec=400)


class ExposureRow(Protocol):
    """Anything that carries a two-sided exposure and a retained share."""

    exposure_a: float
    exposure_b: float
    share_percent: float


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EntrySnapshot:
    """Immutable stand-in for a ledger entry (CSV rows, previews, tests)."""

    exposure_a: float
    exposure_b: float
    share_percent: float
    name: str = ""
    customer_id: Optional[int] = None
    id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class Totals:
    total_a: float = 0.0
    total_b: float = 0.0
    total_a_share: float = 0.0
    total_b_share: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class AverageOdds:
    odds_a: Optional[float] = None
    odds_b: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class ProfitLoss:
    profit_if_a: float
    profit_if_b: float
    max_loss: float
    max_profit: float
    break_even_odds_a: Optional[float]
    break_even_odds_b: Optional[float]

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class RiskMetrics:
    total_exposure: float
    max_loss: float
    max_profit: float
    risk_reward_ratio: Optional[float]
    exposure_limit: Optional[float]
    exposure_limit_exceeded: bool

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class ExposurePair:
    exposure_a: float
    exposure_b: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class EntryPayout:
    """The book's take from one entry once the winner is known."""

    entry_id: Optional[int]
    customer_id: Optional[int]
    payout: float


@dataclass(frozen=True, slots=True)
class SettlementResult:
    """Aggregate settlement figures.

    ``total_payout`` and ``net_profit`` are the same number:
    the payout sign already encodes direction, so the book's aggregate
    payout *is* its net P&L for the match.  Positive = book made money.
    """

    winning_side: str
    total_payout: float
    net_profit: float
    payouts: tuple[EntryPayout, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "winning_side": self.winning_side,
            "total_payout": self.total_payout,
            "net_profit": self.net_profit,
            "payouts": [asdict(p) for p in self.payouts],
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_side(side: str) -> str:
    if side not in SIDES:
        raise ValueError(f"side must be 'A' or 'B', got {side!r}")
    return side


def _share(row: ExposureRow) -> float:
    return row.share_percent / 100


def _break_even_odds(
    share_a: float, share_b: float
) -> tuple[Optional[float], Optional[float]]:
    """Return ``(odds_a, odds_b)`` at which the book breaks even.

    ``odds_b`` is the price at which the loss on A (if A wins) is exactly
    covered by the gain on B (if B wins), and vice versa.  A side with no
    positive share gain has no break-even price: ``None``.
    """
    loss_on_a = max(0.0, -share_a)
    win_on_b = max(0.0, share_b)
    loss_on_b = max(0.0, -share_b)
    win_on_a = max(0.0, share_a)

    odds_b = 1 + loss_on_a / win_on_b if win_on_b > 0 else None
    odds_a = 1 + loss_on_b / win_on_a if win_on_a > 0 else None
    return odds_a, odds_b


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def calculate_totals(entries: Iterable[ExposureRow]) -> Totals:
    """Raw and share-weighted exposure sums over one match's entries.

    Entries with ``share_percent == 0`` still count toward the raw totals.
    Empty input returns all zeros.
    """
    total_a = 0.0
    total_b = 0.0
    total_a_share = 0.0
    total_b_share = 0.0

    for row in entries:
        share = _share(row)
        total_a += row.exposure_a
        total_b += row.exposure_b
        total_a_share += row.exposure_a * share
        total_b_share += row.exposure_b * share

    return Totals(total_a, total_b, total_a_share, total_b_share)


def calculate_average_odds(totals: Totals) -> AverageOdds:
    """Average break-even decimal odds per side, from the share totals.

    Examples::

        calculate_average_odds(Totals(total_a_share=-1900, total_b_share=2000))
        → AverageOdds(odds_a=None, odds_b=1.95)
    """
    odds_a, odds_b = _break_even_odds(totals.total_a_share, totals.total_b_share)
    return AverageOdds(odds_a=odds_a, odds_b=odds_b)


def calculate_profit_loss(entries: Iterable[ExposureRow]) -> ProfitLoss:
    """Book P&L under each outcome, plus best/worst case and break-even odds."""
    profit_if_a = 0.0
    profit_if_b = 0.0

    for row in entries:
        share = _share(row)
        profit_if_a += row.exposure_a * share
        profit_if_b += row.exposure_b * share

    odds_a, odds_b = _break_even_odds(profit_if_a, profit_if_b)
    return ProfitLoss(
        profit_if_a=profit_if_a,
        profit_if_b=profit_if_b,
        max_loss=min(profit_if_a, profit_if_b),
        max_profit=max(profit_if_a, profit_if_b),
        break_even_odds_a=odds_a,
        break_even_odds_b=odds_b,
    )


def calculate_risk_metrics(
    totals: Totals, exposure_limit: Optional[float] = None
) -> RiskMetrics:
    """Risk figures derived from the share totals.

    Args:
        totals: Output of :func:`calculate_totals`.
        exposure_limit: Optional ceiling on ``total_exposure``.  ``None`` or
            ``0`` means no ceiling is configured.

    Returns:
        :class:`RiskMetrics`.  ``risk_reward_ratio`` is ``None`` when the
        worst case is exactly zero.
    """
    total_exposure = abs(totals.total_a_share) + abs(totals.total_b_share)
    max_loss = min(totals.total_a_share, totals.total_b_share)
    max_profit = max(totals.total_a_share, totals.total_b_share)
    risk_reward_ratio = abs(max_profit / max_loss) if max_loss != 0 else None
    exceeded = bool(exposure_limit) and total_exposure > exposure_limit

    return RiskMetrics(
        total_exposure=total_exposure,
        max_loss=max_loss,
        max_profit=max_profit,
        risk_reward_ratio=risk_reward_ratio,
        exposure_limit=exposure_limit,
        exposure_limit_exceeded=exceeded,
    )


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def calculate_exposure_from_odds(stake: float, odds: float, side: str) -> ExposurePair:
    """Two-sided book exposure for a customer backing ``side`` at ``odds``.

    If ``side`` wins the book pays the customer's profit; otherwise it keeps
    the stake.  Odds below evens clamp the profit at zero.

    Examples::

        calculate_exposure_from_odds(10000, 1.95, "A")
        → ExposurePair(exposure_a=-9500.0, exposure_b=10000)
    """
    _check_side(side)
    profit = stake * max(0.0, odds - 1)
    if side == "A":
        return ExposurePair(exposure_a=-profit, exposure_b=stake)
    return ExposurePair(exposure_a=stake, exposure_b=-profit)


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


def calculate_settlement(entries: Iterable[ExposureRow], winning_side: str) -> SettlementResult:
    """Per-entry payouts and the aggregate net profit for a decided match.

    ``payout = -exposure * share`` where ``exposure`` is the entry's figure
    for the winning side.  Note that "payout" is the book's take, so a
    liability on the winner shows up as a *positive* number here.  An empty
    entry list settles to zero.
    """
    _check_side(winning_side)
    total_payout = 0.0
    payouts = []

    for row in entries:
        share = _share(row)
        exposure = row.exposure_a if winning_side == "A" else row.exposure_b
        payout = -exposure * share
        total_payout += payout
        payouts.append(EntryPayout(
            entry_id=getattr(row, "id", None),
            customer_id=getattr(row, "customer_id", None),
            payout=payout,
        ))

    return SettlementResult(
        winning_side=winning_side,
        total_payout=total_payout,
        net_profit=total_payout,
        payouts=tuple(payouts),
    )


# ---------------------------------------------------------------------------
# Display boundary
# ---------------------------------------------------------------------------


def round2(n: float) -> float:
    """Round half up to 2 decimals (``Math.round(n * 100) / 100``)."""
    return math.floor(n * 100 + 0.5) / 100


def parse_value(value) -> float:
    """Lenient float coercion from the leading number of a cell.

    Thousands separators are ignored and trailing text is dropped, so
    ``"20%"`` → ``20.0`` and ``"12abc"`` → ``12.0``.  ``None``, cells with
    no leading number and non-finite values → ``0.0``.
    """
    if value is None:
        return 0.0
    m = _LEADING_NUMBER.match(str(value).replace(",", ""))
    if not m:
        return 0.0
    x = float(m.group(0))
    return x if math.isfinite(x) else 0.0


def format_number(n: Optional[float]) -> str:
    """Thousands-separated, at most 2 fraction digits; ``—`` for no data.

    Halves round away from zero on the exact value of the float.

    Examples::

        format_number(1234567.891) → "1,234,567.89"
        format_number(1900.125)    → "1,900.13"
        format_number(-600.0)      → "-600"
        format_number(None)        → "—"
    """
    if n is None or not math.isfinite(n):
        return NO_DATA
    cents = Decimal(n).quantize(_CENTS, rounding=ROUND_HALF_UP, context=_WIDE)
    text = f"{cents:,.2f}".rstrip("0").rstrip(".")
    return "0" if text == "-0" else text
