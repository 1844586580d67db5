from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Hashable, Iterable, Union

import pandas as pd

from bank_campaign.errors import DivisionUndefined

Predicate = Union[str, Callable[[pd.DataFrame], pd.Series]]
KeyFunc = Union[str, Callable[[pd.DataFrame], pd.Series]]

RESULT_COLUMNS = ["category", "value"]
PLACEHOLDER = "—"


def _column(df: pd.DataFrame, name: str) -> pd.Series:
    if name not in df.columns:
        raise ValueError(f"Required column: {name!r}")
    return df[name]


def _mask(df: pd.DataFrame, pred: Predicate) -> pd.Series:
    m = pred(df) if callable(pred) else _column(df, pred)
    return pd.Series(m, index=df.index).fillna(False).astype(bool)


@dataclass(frozen=True)
class CountWhere:
    """Number of group members satisfying ``pred``."""
    pred: Predicate = "subscribed"

    def __call__(self, group: pd.DataFrame) -> float:
        return int(_mask(group, self.pred).sum())


@dataclass(frozen=True)
class RateWhere:
    """Percentage (0-100) of group members satisfying ``pred``; NaN for an empty group."""
    pred: Predicate = "subscribed"

    def __call__(self, group: pd.DataFrame) -> float:
        if len(group) == 0:
            return math.nan
        hits = int(_mask(group, self.pred).sum())
        return 100.0 * (hits / len(group))


@dataclass(frozen=True)
class MeanOf:
    """Arithmetic mean of ``field``; missing values are left out of the denominator."""
    field: str

    def __call__(self, group: pd.DataFrame) -> float:
        values = _column(group, self.field).dropna()
        if values.empty:
            return math.nan
        return float(values.astype("float64").mean())


def _sort_key(row: tuple[Hashable, float]) -> tuple[bool, float]:
    value = row[1]
    missing = value is None or (isinstance(value, float) and math.isnan(value))
    return (missing, 0.0 if missing else -value)


def aggregate(
    df: pd.DataFrame,
    key: KeyFunc,
    reducer: Callable[[pd.DataFrame], float],
    categories: Iterable[Hashable] | None = None,
) -> pd.DataFrame:
    """Group ``df`` by ``key`` and reduce every group to one value.

    Returns a frame with ``category`` and ``value`` columns, one row per
    observed key (plus any extra ``categories`` requested), sorted by
    descending value. Ties keep the order in which keys first appear in
    ``df``; NaN values go last.
    """
    keys = key(df) if callable(key) else _column(df, key)
    keys = pd.Series(keys, index=df.index)

    rows: list[tuple[Hashable, float]] = []
    seen: set = set()
    for k, group in df.groupby(keys, sort=False, dropna=False):
        rows.append((k, reducer(group)))
        if not pd.isna(k):
            seen.add(k)

    for c in categories or ():
        if c not in seen:
            rows.append((c, reducer(df.iloc[0:0])))
            seen.add(c)

    # sorted() is stable: equal values stay in first-encountered order
    rows = sorted(rows, key=_sort_key)
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def round_half_up(value: Decimal | float) -> float:
    """Round half away from zero to one decimal place."""
    if not isinstance(value, Decimal):
        # str() gives the shortest repr, so 0.25 stays 0.25 rather than 0.2499...
        value = Decimal(str(value))
    return float(value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def percentage(part: int, whole: int) -> float:
    """100 * part / whole, rounded half away from zero to one decimal place."""
    if whole == 0:
        raise DivisionUndefined(f"rate over zero records ({part}/{whole})")
    return round_half_up(Decimal(100 * part) / Decimal(whole))


def _mean(values: pd.Series) -> float | None:
    values = values.dropna()
    if values.empty:
        return None
    return float(values.astype("float64").mean())


@dataclass(frozen=True)
class SummaryMetrics:
    total: int
    subscribed: int
    subscription_rate: float
    mean_calls: float | None = None
    previous_success_rate: float | None = None
    mean_subscriber_age: float | None = None


def summarize(df: pd.DataFrame) -> SummaryMetrics:
    """Whole-dataset KPIs. Raises DivisionUndefined for an empty dataset."""
    total = len(df)
    subscribed = int(_mask(df, "subscribed").sum())
    rate = percentage(subscribed, total)

    prev_success = int((df["poutcome"] == "success").fillna(False).sum())
    return SummaryMetrics(
        total=total,
        subscribed=subscribed,
        subscription_rate=rate,
        mean_calls=_mean(df["campaign"]),
        previous_success_rate=percentage(prev_success, total),
        mean_subscriber_age=_mean(df.loc[_mask(df, "subscribed"), "age"]),
    )


def format_count(n: int, thousands: str = ".") -> str:
    # 45218 -> "45.218"
    return f"{n:,}".replace(",", thousands)


def format_rate(rate: float | None, placeholder: str = PLACEHOLDER) -> str:
    if rate is None or math.isnan(rate):
        return placeholder
    return f"{round_half_up(rate):.1f}%"


def format_value(value: float | None, placeholder: str = PLACEHOLDER) -> str:
    if value is None or math.isnan(value):
        return placeholder
    return f"{round_half_up(value):.1f}"
