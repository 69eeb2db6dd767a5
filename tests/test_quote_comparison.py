import os
import sys
from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from models.negotiation import Quote, QuoteLineItem
from services.quote_comparison import compare_quotes, latest_quotes, score_axis


CAPTURED = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _quote(supplier_id, landed_total, lead_time_days, *, name=None, items=(), captured_at=CAPTURED, quote_id=None):
    return Quote(
        id=quote_id or f"q-{supplier_id}",
        rfq_id="rfq-1",
        supplier_id=supplier_id,
        supplier_name=name or supplier_id,
        items=tuple(items),
        subtotal=landed_total,
        delivery_cost=0.0,
        landed_total=landed_total,
        lead_time_days=lead_time_days,
        payment_terms="Net 30",
        validity="14 days",
        captured_at=captured_at,
        response_time_hours=1.0,
    )


def _line(sku, unit_price, qty=100, name=None):
    return QuoteLineItem(
        sku=sku, name=name or sku, qty=qty, unit_price=unit_price, total=round(unit_price * qty, 2)
    )


def test_score_axis_flags_best_and_worst_with_ties():
    scores = score_axis(pd.Series([10.0, 12.0, 10.0, 15.0]), lower_is_better=True)

    assert scores["rank"].tolist() == [1.0, 2.0, 1.0, 3.0]
    assert scores["best"].tolist() == [True, False, True, False]
    assert scores["worst"].tolist() == [False, False, False, True]


def test_score_axis_needs_two_values_for_flags():
    scores = score_axis(pd.Series([4.0, float("nan")]), lower_is_better=True)

    assert scores["best"].tolist() == [False, False]
    assert scores["worst"].tolist() == [False, False]
    assert scores["rank"].iloc[0] == 1.0
    assert pd.isna(scores["rank"].iloc[1])


def test_score_axis_all_equal_is_all_best_and_no_worst():
    scores = score_axis(pd.Series([0.9, 0.9]), lower_is_better=False)

    assert scores["best"].tolist() == [True, True]
    assert scores["worst"].tolist() == [False, False]


def test_compare_quotes_ranks_each_axis():
    quotes = [
        _quote("sup-001", 210.00, 5, name="RS Components"),
        _quote("sup-002", 190.00, 8, name="Würth"),
        _quote("sup-003", 245.00, 4, name="Fabory"),
    ]
    rates = {"sup-001": 0.96, "sup-002": 0.82, "sup-003": 0.94}

    comparison = compare_quotes("rfq-1", quotes, rates)

    assert [entry.supplier_id for entry in comparison.suppliers] == ["sup-002", "sup-001", "sup-003"]
    wurth = comparison.for_supplier("sup-002")
    assert wurth.price.best and wurth.price.rank == 1
    assert wurth.lead_time.worst
    assert wurth.reliability.worst
    fabory = comparison.for_supplier("sup-003")
    assert fabory.price.worst
    assert fabory.lead_time.best
    rs = comparison.for_supplier("sup-001")
    assert rs.reliability.best
    assert rs.reliability.value == pytest.approx(0.96)
    assert comparison.best_overall == []


def test_best_overall_needs_two_axis_wins():
    quotes = [
        _quote("sup-001", 200.00, 3),
        _quote("sup-002", 250.00, 6),
    ]

    comparison = compare_quotes("rfq-1", quotes, {"sup-001": 0.80, "sup-002": 0.95})

    assert comparison.best_overall == ["sup-001"]
    assert comparison.for_supplier("sup-001").axis_wins == 2
    assert comparison.for_supplier("sup-002").axis_wins == 1


def test_missing_lead_time_and_rate_are_unranked():
    quotes = [
        _quote("sup-001", 200.00, 0),
        _quote("sup-002", 250.00, 6),
        _quote("sup-009", 230.00, 4),
    ]

    comparison = compare_quotes("rfq-1", quotes, {"sup-001": 0.9, "sup-002": 0.95})

    unknown_lead = comparison.for_supplier("sup-001").lead_time
    assert unknown_lead.rank is None
    assert not unknown_lead.best and not unknown_lead.worst
    assert comparison.for_supplier("sup-009").lead_time.best
    assert comparison.for_supplier("sup-002").lead_time.worst
    no_rate = comparison.for_supplier("sup-009")
    assert no_rate.on_time_rate is None
    assert no_rate.reliability.rank is None


def test_single_quote_has_no_flags():
    comparison = compare_quotes("rfq-1", [_quote("sup-001", 200.00, 3)], {"sup-001": 0.9})

    entry = comparison.suppliers[0]
    assert entry.price.rank == 1
    assert not entry.price.best and not entry.price.worst
    assert comparison.best_overall == []


def test_no_quotes_gives_empty_comparison():
    comparison = compare_quotes("rfq-1", [], {})

    assert comparison.suppliers == ()
    assert comparison.items == ()


def test_latest_quote_per_supplier_wins():
    old = _quote("sup-001", 300.00, 5, quote_id="old")
    new = _quote("sup-001", 200.00, 5, quote_id="new", captured_at=CAPTURED + timedelta(hours=1))

    assert [q.id for q in latest_quotes([old, new])] == ["new"]
    comparison = compare_quotes("rfq-1", [old, new, _quote("sup-002", 250.00, 4)])
    assert comparison.for_supplier("sup-001").quote_id == "new"


def test_item_comparison_keys_by_sku_then_name():
    quotes = [
        _quote("sup-001", 100.0, 5, items=[_line("HB-M10X50-A480", 0.42), _line("", 1.0, name="Spring Washer")]),
        _quote("sup-002", 90.0, 8, items=[_line("HB-M10X50-A480", 0.38), _line("", 1.2, name="spring washer ")]),
    ]

    comparison = compare_quotes("rfq-1", quotes)

    bolts, washers = comparison.items
    assert bolts.key == "HB-M10X50-A480"
    assert [(p.supplier_id, p.best, p.worst) for p in bolts.prices] == [
        ("sup-001", False, True),
        ("sup-002", True, False),
    ]
    assert washers.key == "spring washer"
    assert [p.best for p in washers.prices] == [True, False]
