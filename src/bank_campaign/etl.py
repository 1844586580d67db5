
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime as dt
from pathlib import Path
from typing import Iterator

import numpy as np
import pandas as pd

from bank_campaign.dashboard import CHARTS, DashboardConfig, Plotter, write_error_page, write_page
from bank_campaign.errors import DivisionUndefined, ResourceLoadError
from bank_campaign.metrics import (
    RateWhere,
    SummaryMetrics,
    aggregate,
    format_count,
    format_rate,
    format_value,
    summarize,
)

logger = logging.getLogger(__name__)

DEFAULT_INPUT = Path("data/bank-full-clean.csv")

INT_FIELDS = ("age", "balance", "duration", "campaign", "pdays", "previous")
CATEGORY_FIELDS = ("job", "marital", "education", "housing", "loan", "contact", "poutcome")
FIELDS = (
    "age", "job", "marital", "education",
    "balance", "housing", "loan",
    "contact", "duration", "campaign", "pdays", "previous", "poutcome",
    "subscribed",
)
TARGET = "y"
SUCCESS_TOKEN = "yes"


@dataclass
class DataLoader:
    sep: str = ","
    encoding: str = "utf-8"

    def load(self, path: Path) -> pd.DataFrame:
        """Read every cell as raw text. Raises ResourceLoadError if the file is unusable."""
        path = Path(path)
        try:
            df = pd.read_csv(
                path,
                sep=self.sep,
                dtype=str,
                keep_default_na=False,
                encoding=self.encoding,
            )
        except FileNotFoundError as exc:
            raise ResourceLoadError(path, "file not found") from exc
        except pd.errors.EmptyDataError as exc:
            raise ResourceLoadError(path, "file is empty") from exc
        except (pd.errors.ParserError, UnicodeDecodeError, OSError) as exc:
            raise ResourceLoadError(path, str(exc)) from exc
        logger.info("loaded %d rows from %s", len(df), path)
        return df


def _to_int(raw: pd.Series) -> pd.Series:
    text = raw.fillna("").astype(str).str.strip()
    num = pd.to_numeric(text, errors="coerce").astype("float64")
    # out-of-range whole numbers cannot be held by Int64
    whole = np.isfinite(num) & (num % 1 == 0) & num.abs().lt(2**63)
    return num.where(whole).astype("Int64")


@dataclass
class Preparer:
    target: str = TARGET
    success_token: str = SUCCESS_TOKEN

    def prepare(self, raw: pd.DataFrame) -> pd.DataFrame:
        """Typed copy of ``raw``: one row per input row, same order, nothing dropped.

        Integer fields that are empty or not whole numbers become ``pd.NA``
        (nullable ``Int64``); categories stay as the original strings.
        """
        cols: dict[str, pd.Series] = {}
        for name in FIELDS:
            if name == "subscribed":
                if self.target in raw.columns:
                    cols[name] = raw[self.target].eq(self.success_token).astype(bool)
                else:
                    cols[name] = pd.Series(False, index=raw.index, dtype=bool)
            elif name in INT_FIELDS:
                if name in raw.columns:
                    cols[name] = _to_int(raw[name])
                else:
                    cols[name] = pd.Series(pd.NA, index=raw.index, dtype="Int64")
            else:
                if name in raw.columns:
                    cols[name] = raw[name].astype("string")
                else:
                    cols[name] = pd.Series(pd.NA, index=raw.index, dtype="string")

        out = pd.DataFrame(cols, index=raw.index).reset_index(drop=True)
        bad = self.anomalies(out)
        if bad:
            logger.debug("unreadable numeric values: %s", bad)
        return out

    @staticmethod
    def anomalies(prepared: pd.DataFrame) -> dict[str, int]:
        """Count of missing or unreadable values per integer field (only fields with any)."""
        counts = {name: int(prepared[name].isna().sum()) for name in INT_FIELDS}
        return {name: n for name, n in counts.items() if n}


@dataclass(frozen=True)
class PreparedRecord:
    age: int | None
    job: str | None
    marital: str | None
    education: str | None
    balance: int | None
    housing: str | None
    loan: str | None
    contact: str | None
    duration: int | None
    campaign: int | None
    pdays: int | None
    previous: int | None
    poutcome: str | None
    subscribed: bool


def iter_records(prepared: pd.DataFrame) -> Iterator[PreparedRecord]:
    for row in prepared[list(FIELDS)].itertuples(index=False):
        values = row._asdict()
        for name in INT_FIELDS + CATEGORY_FIELDS:
            v = values[name]
            if pd.isna(v):
                values[name] = None
            elif name in INT_FIELDS:
                values[name] = int(v)
        values["subscribed"] = bool(values["subscribed"])
        yield PreparedRecord(**values)


@dataclass
class DashboardData:
    prepared: pd.DataFrame
    summary: SummaryMetrics | None
    charts: dict[str, pd.DataFrame] = field(default_factory=dict)
    anomalies: dict[str, int] = field(default_factory=dict)


def build_dashboard(prepared: pd.DataFrame) -> DashboardData:
    """Summary KPIs plus one aggregation per bar chart. Never raises on empty input."""
    try:
        summary = summarize(prepared)
    except DivisionUndefined:
        logger.warning("no records; summary rates are undefined")
        summary = None

    charts = {
        spec.name: aggregate(prepared, spec.key, spec.reducer)
        for spec in CHARTS
        if spec.reducer is not None
    }
    return DashboardData(
        prepared=prepared,
        summary=summary,
        charts=charts,
        anomalies=Preparer.anomalies(prepared),
    )


def run_pipeline(path: Path, loader: DataLoader | None = None) -> DashboardData:
    raw = (loader or DataLoader()).load(path)
    prepared = Preparer().prepare(raw)
    return build_dashboard(prepared)


def digest(data: DashboardData, in_path: Path, out_dir: Path, config: DashboardConfig) -> str:
    s = data.summary
    lines = [
        "=== CAMPAIGN RUN SUMMARY ===",
        f"when      : {dt.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"in        : {in_path}",
        f"out       : {out_dir}",
        f"rows      : {format_count(len(data.prepared), config.thousands)}",
        f"subscribed: {s.subscribed if s else config.placeholder}"
        f" ({format_rate(s.subscription_rate if s else None, config.placeholder)})",
    ]
    if data.anomalies:
        lines.append("unreadable: " + ", ".join(f"{k}={v}" for k, v in data.anomalies.items()))
    rates = {spec.name for spec in CHARTS if isinstance(spec.reducer, RateWhere)}
    for name, result in data.charts.items():
        fmt = format_rate if name in rates else format_value
        top = ", ".join(
            f"{c}:{fmt(v, config.placeholder)}" for c, v in result.head(3).itertuples(index=False, name=None)
        )
        lines.append(f"{name}: {top or '(empty)'}")
    return "\n".join(lines) + "\n"


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Bank marketing campaign dashboard")
    ap.add_argument("--in", dest="in_path", type=Path, default=DEFAULT_INPUT)
    ap.add_argument("--out-dir", dest="out_dir", type=Path, default=Path("artifacts"))
    ap.add_argument("--sep", default=",", help="field delimiter of the input file")
    ap.add_argument("--verbose", action="store_true", help="print progress")
    ap.add_argument("--report", type=Path, default=None, help="save the run summary here (.txt)")
    ap.add_argument("--no-page", dest="page", action="store_false", help="skip index.html")
    ap.set_defaults(page=True)
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config = DashboardConfig()
    page_path = args.out_dir / "index.html"

    if args.verbose: print(f"[1/4] Load: {args.in_path}")
    try:
        raw = DataLoader(sep=args.sep).load(args.in_path)
    except ResourceLoadError as exc:
        print(f"error: {exc}", file=sys.stderr)
        if args.page:
            write_error_page(page_path, config)
        return 1

    if args.verbose: print("[2/4] Prepare")
    prepared = Preparer().prepare(raw)

    if args.verbose: print(f"[3/4] Aggregate -> {args.out_dir}")
    data = build_dashboard(prepared)
    args.out_dir.mkdir(parents=True, exist_ok=True)
    for name, result in data.charts.items():
        result.to_csv(args.out_dir / f"{name}.csv", index=False)

    if args.verbose: print(f"[4/4] Figures -> {args.out_dir}")
    images = Plotter(config).plot(data, args.out_dir)
    if args.page:
        write_page(page_path, data, images, config)

    text = digest(data, args.in_path, args.out_dir, config)
    print(text)
    if args.report is not None:
        args.report.parent.mkdir(parents=True, exist_ok=True)
        args.report.write_text(text, encoding="utf-8")
        print(f"[report] wrote {args.report}")

    print(f"Done: wrote {args.out_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
