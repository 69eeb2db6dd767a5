"""Rank captured quotes for an RFQ on price, lead time and reliability."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from models.negotiation import Quote

logger = logging.getLogger(__name__)

MIN_VALUES_FOR_FLAGS = 2
MIN_AXIS_WINS_FOR_BEST_OVERALL = 2


@dataclass(frozen=True)
class AxisScore:
    value: Optional[float] = None
    rank: Optional[int] = None
    best: bool = False
    worst: bool = False


@dataclass(frozen=True)
class SupplierComparison:
    supplier_id: str
    supplier_name: str
    quote_id: str
    landed_total: float
    lead_time_days: int
    on_time_rate: Optional[float]
    payment_terms: str
    price: AxisScore
    lead_time: AxisScore
    reliability: AxisScore
    axis_wins: int = 0
    best_overall: bool = False


@dataclass(frozen=True)
class ItemPrice:
    supplier_id: str
    unit_price: float
    total: float
    best: bool = False
    worst: bool = False


@dataclass(frozen=True)
class ItemComparison:
    key: str
    sku: str
    name: str
    prices: Tuple[ItemPrice, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class QuoteComparison:
    rfq_id: str
    suppliers: Tuple[SupplierComparison, ...] = field(default_factory=tuple)
    items: Tuple[ItemComparison, ...] = field(default_factory=tuple)

    @property
    def best_overall(self) -> List[str]:
        return [entry.supplier_id for entry in self.suppliers if entry.best_overall]

    def for_supplier(self, supplier_id: str) -> Optional[SupplierComparison]:
        for entry in self.suppliers:
            if entry.supplier_id == supplier_id:
                return entry
        return None


def _optional_float(value) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def score_axis(values: pd.Series, *, lower_is_better: bool) -> pd.DataFrame:
    """Dense-rank ``values`` and flag the best and worst entries.

    Missing values (NaN) are unranked and never flagged.  Flags are only set
    when at least two values are defined; every entry tied at the optimum is
    best, and entries at the opposite extreme that are not best are worst.
    """

    values = values.astype("float64").round(6)
    defined = values.dropna()
    result = pd.DataFrame(index=values.index)
    result["value"] = values
    result["rank"] = values.rank(method="dense", ascending=lower_is_better)
    result["best"] = False
    result["worst"] = False
    if len(defined) < MIN_VALUES_FOR_FLAGS:
        return result

    optimum = defined.min() if lower_is_better else defined.max()
    extreme = defined.max() if lower_is_better else defined.min()
    result["best"] = values.eq(optimum)
    result["worst"] = values.eq(extreme) & ~result["best"]
    return result


def _axis_from_row(frame: pd.DataFrame, index) -> AxisScore:
    row = frame.loc[index]
    rank = row["rank"]
    return AxisScore(
        value=_optional_float(row["value"]),
        rank=None if pd.isna(rank) else int(rank),
        best=bool(row["best"]),
        worst=bool(row["worst"]),
    )


def latest_quotes(quotes: Sequence[Quote]) -> List[Quote]:
    """Most recently captured quote per supplier, in first-seen supplier order."""

    latest: Dict[str, Quote] = {}
    for quote in quotes:
        current = latest.get(quote.supplier_id)
        if current is None or quote.captured_at >= current.captured_at:
            latest[quote.supplier_id] = quote
    return list(latest.values())


def compare_quotes(
    rfq_id: str,
    quotes: Sequence[Quote],
    on_time_rates: Optional[Mapping[str, float]] = None,
) -> QuoteComparison:
    """Compare the live quotes for ``rfq_id``.

    ``on_time_rates`` maps supplier id to historical on-time delivery rate
    (0..1); suppliers without a rate are unranked on reliability.
    """

    rates = dict(on_time_rates or {})
    live = latest_quotes(q for q in quotes if q.rfq_id == rfq_id)
    if not live:
        return QuoteComparison(rfq_id=rfq_id)

    frame = pd.DataFrame(
        [
            {
                "supplier_id": q.supplier_id,
                "landed_total": round(float(q.landed_total), 2),
                "lead_time_days": float(q.lead_time_days or 0),
                "on_time_rate": rates.get(q.supplier_id),
            }
            for q in live
        ]
    )
    frame["on_time_rate"] = pd.to_numeric(frame["on_time_rate"], errors="coerce")
    lead_times = frame["lead_time_days"].where(frame["lead_time_days"] > 0)

    price_axis = score_axis(frame["landed_total"], lower_is_better=True)
    lead_axis = score_axis(lead_times, lower_is_better=True)
    reliability_axis = score_axis(frame["on_time_rate"], lower_is_better=False)
    wins = (
        price_axis["best"].astype(int)
        + lead_axis["best"].astype(int)
        + reliability_axis["best"].astype(int)
    )

    entries = []
    for index, quote in enumerate(live):
        axis_wins = int(wins.loc[index])
        entries.append(
            SupplierComparison(
                supplier_id=quote.supplier_id,
                supplier_name=quote.supplier_name,
                quote_id=quote.id,
                landed_total=quote.landed_total,
                lead_time_days=quote.lead_time_days,
                on_time_rate=_optional_float(frame.loc[index, "on_time_rate"]),
                payment_terms=quote.payment_terms,
                price=_axis_from_row(price_axis, index),
                lead_time=_axis_from_row(lead_axis, index),
                reliability=_axis_from_row(reliability_axis, index),
                axis_wins=axis_wins,
                best_overall=axis_wins >= MIN_AXIS_WINS_FOR_BEST_OVERALL,
            )
        )
    entries.sort(key=lambda entry: (entry.price.rank or 0, entry.supplier_name))

    comparison = QuoteComparison(
        rfq_id=rfq_id,
        suppliers=tuple(entries),
        items=compare_items(live),
    )
    logger.debug(
        "Compared %d quote(s) for RFQ %s; best overall: %s",
        len(entries),
        rfq_id,
        comparison.best_overall or "none",
    )
    return comparison


def compare_items(quotes: Sequence[Quote]) -> Tuple[ItemComparison, ...]:
    """Line-by-line unit price comparison keyed by SKU (or name)."""

    rows = []
    for quote in quotes:
        for item in quote.items:
            key = item.sku or item.name.strip().lower()
            rows.append(
                {
                    "key": key,
                    "sku": item.sku,
                    "name": item.name,
                    "supplier_id": quote.supplier_id,
                    "unit_price": float(item.unit_price),
                    "total": float(item.total),
                }
            )
    if not rows:
        return ()

    frame = pd.DataFrame(rows)
    comparisons = []
    for key, group in frame.groupby("key", sort=False):
        group = group.drop_duplicates(subset="supplier_id", keep="last")
        scores = score_axis(group["unit_price"], lower_is_better=True)
        prices = tuple(
            ItemPrice(
                supplier_id=row.supplier_id,
                unit_price=row.unit_price,
                total=row.total,
                best=bool(scores.loc[idx, "best"]),
                worst=bool(scores.loc[idx, "worst"]),
            )
            for idx, row in group.iterrows()
        )
        first = group.iloc[0]
        comparisons.append(
            ItemComparison(key=str(key), sku=str(first["sku"]), name=str(first["name"]), prices=prices)
        )
    return tuple(comparisons)


__all__ = [
    "AxisScore",
    "SupplierComparison",
    "ItemPrice",
    "ItemComparison",
    "QuoteComparison",
    "compare_quotes",
    "compare_items",
    "latest_quotes",
    "score_axis",
]
