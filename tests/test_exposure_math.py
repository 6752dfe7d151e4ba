"""Tests for core/exposure_math.py: totals, odds, P&L, risk, converter, settlement."""

import math

import pytest

from backend.core.exposure_math import (
    AverageOdds,
    EntrySnapshot,
    NO_DATA,
    Totals,
    calculate_average_odds,
    calculate_exposure_from_odds,
    calculate_profit_loss,
    calculate_risk_metrics,
    calculate_settlement,
    calculate_totals,
    format_number,
    parse_value,
    round2,
)

E1 = EntrySnapshot(exposure_a=-9500, exposure_b=10000, share_percent=20, id=1, customer_id=10)
E2 = EntrySnapshot(exposure_a=5000, exposure_b=-4000, share_percent=50, id=2, customer_id=11)


# ---------------------------------------------------------------------------
# calculate_totals
# ---------------------------------------------------------------------------

def test_totals_empty():
    assert calculate_totals([]) == Totals(0.0, 0.0, 0.0, 0.0)


def test_totals_two_entries():
    t = calculate_totals([E1, E2])
    assert t.total_a == -4500
    assert t.total_b == 6000
    assert t.total_a_share == 600
    assert t.total_b_share == 0


def test_totals_zero_share_counts_raw_only():
    t = calculate_totals([EntrySnapshot(-1000, 800, 0)])
    assert t.total_a == -1000
    assert t.total_b == 800
    assert t.total_a_share == 0
    assert t.total_b_share == 0


def test_totals_are_additive():
    # quarter and eighth fractions sum exactly in binary floating point
    e3 = EntrySnapshot(-250.5, 300.25, 50)
    combined = calculate_totals([E1, E2, e3])
    left = calculate_totals([E1, E2])
    right = calculate_totals([e3])
    assert combined.total_a == left.total_a + right.total_a == -4750.5
    assert combined.total_b == left.total_b + right.total_b == 6300.25
    assert combined.total_a_share == left.total_a_share + right.total_a_share == 474.75
    assert combined.total_b_share == left.total_b_share + right.total_b_share == 150.125


def test_totals_do_not_mutate_input():
    rows = [E1, E2]
    calculate_totals(rows)
    assert rows == [E1, E2]


# ---------------------------------------------------------------------------
# calculate_average_odds
# ---------------------------------------------------------------------------

def test_average_odds_liability_on_a_prices_b():
    odds = calculate_average_odds(Totals(total_a_share=-1900, total_b_share=2000))
    assert odds.odds_a is None
    assert odds.odds_b == 1.95


def test_average_odds_mirror():
    odds = calculate_average_odds(Totals(total_a_share=2000, total_b_share=-1900))
    assert odds.odds_a == 1.95
    assert odds.odds_b is None


def test_average_odds_zero_totals_are_undefined():
    assert calculate_average_odds(Totals()) == AverageOdds(None, None)


def test_average_odds_both_sides_winning():
    # No loss anywhere: break-even is evens on both sides
    odds = calculate_average_odds(Totals(total_a_share=100, total_b_share=300))
    assert odds.odds_a == 1.0
    assert odds.odds_b == 1.0


def test_average_odds_both_sides_losing():
    assert calculate_average_odds(Totals(total_a_share=-5, total_b_share=-7)) == AverageOdds(None, None)


# ---------------------------------------------------------------------------
# calculate_profit_loss
# ---------------------------------------------------------------------------

def test_profit_loss_empty():
    pl = calculate_profit_loss([])
    assert pl.profit_if_a == 0
    assert pl.profit_if_b == 0
    assert pl.max_loss == 0
    assert pl.max_profit == 0
    assert pl.break_even_odds_a is None
    assert pl.break_even_odds_b is None


def test_profit_loss_single_entry():
    pl = calculate_profit_loss([E1])
    assert pl.profit_if_a == -1900
    assert pl.profit_if_b == 2000
    assert pl.max_loss == -1900
    assert pl.max_profit == 2000
    assert pl.break_even_odds_a is None
    assert pl.break_even_odds_b == 1.95


def test_profit_loss_matches_share_totals_exactly():
    rows = [E1, E2, EntrySnapshot(123.45, -678.9, 33.3)]
    totals = calculate_totals(rows)
    pl = calculate_profit_loss(rows)
    assert pl.profit_if_a == totals.total_a_share
    assert pl.profit_if_b == totals.total_b_share

    odds = calculate_average_odds(totals)
    assert pl.break_even_odds_a == odds.odds_a
    assert pl.break_even_odds_b == odds.odds_b


def test_profit_loss_min_max_ordering():
    pl = calculate_profit_loss([E1, E2])
    assert pl.max_loss <= pl.max_profit
    assert pl.max_loss == 0
    assert pl.max_profit == 600


# ---------------------------------------------------------------------------
# calculate_risk_metrics
# ---------------------------------------------------------------------------

def test_risk_zero_worst_case_has_no_ratio():
    risk = calculate_risk_metrics(Totals(total_a_share=0, total_b_share=500))
    assert risk.max_loss == 0
    assert risk.max_profit == 500
    assert risk.risk_reward_ratio is None
    assert risk.total_exposure == 500


def test_risk_ratio():
    risk = calculate_risk_metrics(Totals(total_a_share=-1900, total_b_share=2000))
    assert risk.total_exposure == 3900
    assert risk.risk_reward_ratio == 2000 / 1900


def test_risk_ratio_when_both_sides_lose():
    risk = calculate_risk_metrics(Totals(total_a_share=-100, total_b_share=-400))
    assert risk.max_loss == -400
    assert risk.max_profit == -100
    assert risk.risk_reward_ratio == 0.25


@pytest.mark.parametrize("limit, exceeded", [
    (None, False),
    (0, False),       # zero means no ceiling
    (5000, False),
    (3900, False),    # strictly greater than
    (3000, True),
])
def test_risk_exposure_limit(limit, exceeded):
    risk = calculate_risk_metrics(Totals(total_a_share=-1900, total_b_share=2000), limit)
    assert risk.exposure_limit == limit
    assert risk.exposure_limit_exceeded is exceeded


# ---------------------------------------------------------------------------
# calculate_exposure_from_odds
# ---------------------------------------------------------------------------

def test_convert_back_a():
    pair = calculate_exposure_from_odds(10000, 1.95, "A")
    assert pair.exposure_a == -9500
    assert pair.exposure_b == 10000


def test_convert_back_b():
    pair = calculate_exposure_from_odds(10000, 1.95, "B")
    assert pair.exposure_a == 10000
    assert pair.exposure_b == -9500


def test_convert_odds_below_evens_clamp():
    pair = calculate_exposure_from_odds(100, 0.5, "A")
    assert pair.exposure_a == 0
    assert pair.exposure_b == 100


def test_convert_rejects_unknown_side():
    with pytest.raises(ValueError):
        calculate_exposure_from_odds(100, 2.0, "C")


# ---------------------------------------------------------------------------
# calculate_settlement
# ---------------------------------------------------------------------------

def test_settle_a():
    result = calculate_settlement([E1, E2], "A")
    assert [p.payout for p in result.payouts] == [1900, -2500]
    assert result.total_payout == -600
    assert result.net_profit == result.total_payout


def test_settle_b():
    result = calculate_settlement([E1, E2], "B")
    assert [p.payout for p in result.payouts] == [-2000, 2000]
    assert result.total_payout == 0


def test_settle_carries_entry_and_customer_ids():
    result = calculate_settlement([E1, E2], "A")
    assert [(p.entry_id, p.customer_id) for p in result.payouts] == [(1, 10), (2, 11)]


def test_settle_empty():
    result = calculate_settlement([], "B")
    assert result.total_payout == 0
    assert result.payouts == ()


def test_settle_total_is_negated_share_total():
    rows = [E1, E2, EntrySnapshot(777, -333, 12.5)]
    totals = calculate_totals(rows)
    assert calculate_settlement(rows, "A").total_payout == pytest.approx(-totals.total_a_share)
    assert calculate_settlement(rows, "B").total_payout == pytest.approx(-totals.total_b_share)


def test_settle_to_dict():
    d = calculate_settlement([E1], "B").to_dict()
    assert d["winning_side"] == "B"
    assert d["payouts"] == [{"entry_id": 1, "customer_id": 10, "payout": -2000}]


def test_settle_rejects_unknown_side():
    with pytest.raises(ValueError):
        calculate_settlement([E1], "draw")


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("value, expected", [
    (0.125, 0.13),
    (-0.125, -0.12),   # half up, toward +inf
    (9500.0, 9500.0),
    (1234.5678, 1234.57),
    (0, 0),
])
def test_round2(value, expected):
    assert round2(value) == expected


@pytest.mark.parametrize("value, expected", [
    (1234567.891, "1,234,567.89"),
    (-600.0, "-600"),
    (1000, "1,000"),
    (0.5, "0.5"),
    (0, "0"),
    (-0.001, "0"),
    (1900.125, "1,900.13"),     # halves round away from zero
    (-1900.125, "-1,900.13"),
    (0.125, "0.13"),
    (None, NO_DATA),
    (math.nan, NO_DATA),
    (math.inf, NO_DATA),
])
def test_format_number(value, expected):
    assert format_number(value) == expected


@pytest.mark.parametrize("raw, expected", [
    ("1,234.5", 1234.5),
    (" -9500 ", -9500.0),
    ("20", 20.0),
    ("", 0.0),
    ("abc", 0.0),
    ("inf", 0.0),
    (None, 0.0),
    (42, 42.0),
    ("20%", 20.0),             # leading number, trailing text dropped
    ("12abc", 12.0),
    (".5", 0.5),
    ("+7", 7.0),
    ("1e3x", 1000.0),
    ("1e999", 0.0),            # overflows to inf
    ("-", 0.0),
    ("x12", 0.0),
])
def test_parse_value(raw, expected):
    assert parse_value(raw) == expected
