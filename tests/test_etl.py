import logging

import pandas as pd
import pytest

from bank_campaign.errors import ResourceLoadError
from bank_campaign.etl import (
    FIELDS,
    DataLoader,
    Preparer,
    build_dashboard,
    iter_records,
    main,
    run_pipeline,
)
from bank_campaign.metrics import MeanOf, aggregate

HEADER = "age,job,marital,education,balance,housing,loan,contact,duration,campaign,pdays,previous,poutcome,y"


def row(age="41", education="primary", y="no", job="technician", duration="120", campaign="1", poutcome="unknown"):
    return f"{age},{job},married,{education},1500,yes,no,cellular,{duration},{campaign},-1,0,{poutcome},{y}"


def write_csv(path, *rows, header=HEADER, sep=","):
    lines = [header.replace(",", sep)] + [r.replace(",", sep) for r in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


# ---- loader ----

def test_load_keeps_raw_text(tmp_path):
    csv = write_csv(tmp_path / "bank.csv", row(age="41"), row(age="N/A"))
    raw = DataLoader().load(csv)
    assert len(raw) == 2
    assert raw["age"].tolist() == ["41", "N/A"]
    assert raw["y"].tolist() == ["no", "no"]


def test_load_header_only_is_empty(tmp_path):
    raw = DataLoader().load(write_csv(tmp_path / "bank.csv"))
    assert raw.empty
    assert "education" in raw.columns


def test_load_semicolon_file(tmp_path):
    csv = write_csv(tmp_path / "bank.csv", row(y="yes"), sep=";")
    raw = DataLoader(sep=";").load(csv)
    assert raw["y"].tolist() == ["yes"]


def test_load_missing_file_raises(tmp_path):
    missing = tmp_path / "nope.csv"
    with pytest.raises(ResourceLoadError) as info:
        DataLoader().load(missing)
    assert info.value.path == missing


def test_load_zero_byte_file_raises(tmp_path):
    empty = tmp_path / "empty.csv"
    empty.write_text("", encoding="utf-8")
    with pytest.raises(ResourceLoadError):
        DataLoader().load(empty)


def test_load_malformed_rows_raise(tmp_path):
    csv = write_csv(tmp_path / "bank.csv", row(), row() + ",extra,fields")
    with pytest.raises(ResourceLoadError):
        DataLoader().load(csv)


def test_load_undecodable_file_raises(tmp_path):
    csv = tmp_path / "bank.csv"
    body = HEADER + "\n" + row(job="técnico") + "\n"
    csv.write_bytes(body.encode("latin-1"))
    with pytest.raises(ResourceLoadError) as info:
        DataLoader().load(csv)
    assert info.value.path == csv
    assert isinstance(info.value.__cause__, UnicodeDecodeError)


# ---- preparer ----

def test_prepare_keeps_every_row_in_order():
    raw = pd.DataFrame({"age": ["30", "x", "", "50"], "job": ["a", "b", "c", "d"], "y": ["no"] * 4})
    out = Preparer().prepare(raw)
    assert len(out) == len(raw)
    assert out["job"].tolist() == ["a", "b", "c", "d"]
    assert list(out.columns) == list(FIELDS)


def test_subscribed_only_for_exact_yes():
    raw = pd.DataFrame({"y": ["yes", "no", "Yes", " yes", "", "YES"]})
    out = Preparer().prepare(raw)
    assert out["subscribed"].tolist() == [True, False, False, False, False, False]


def test_unreadable_numbers_become_missing():
    raw = pd.DataFrame({
        "age": ["N/A", "", "41.5", " 42 ", "inf"],
        "balance": ["-35", "0", "12", "7", "1e2"],
    })
    out = Preparer().prepare(raw)
    assert str(out["age"].dtype) == "Int64"
    assert out["age"].isna().tolist() == [True, True, True, False, True]
    assert out["age"][3] == 42
    assert out["balance"].tolist() == [-35, 0, 12, 7, 100]


def test_out_of_range_numbers_become_missing():
    raw = pd.DataFrame({
        "balance": ["99999999999999999999", "5", "-9223372036854775809"],
        "y": ["no", "yes", "no"],
    })
    out = Preparer().prepare(raw)
    assert len(out) == 3
    assert out["balance"].isna().tolist() == [True, False, True]
    assert out["balance"][1] == 5
    assert out["subscribed"].tolist() == [False, True, False]


def test_yes_no_categories_stay_strings():
    raw = pd.DataFrame({"housing": ["yes", "no"], "loan": ["no", "yes"], "y": ["no", "no"]})
    out = Preparer().prepare(raw)
    assert out["housing"].tolist() == ["yes", "no"]
    assert out["loan"].tolist() == ["no", "yes"]


def test_missing_columns_yield_missing_values():
    raw = pd.DataFrame({"education": ["primary", "tertiary"], "extra": ["1", "2"]})
    out = Preparer().prepare(raw)
    assert "extra" not in out.columns
    assert out["age"].isna().all()
    assert out["job"].isna().all()
    assert out["subscribed"].tolist() == [False, False]


def test_anomalies_count_per_field(caplog):
    raw = pd.DataFrame({"age": ["N/A", "40", ""], "campaign": ["1", "2", "3"]})
    caplog.set_level(logging.DEBUG, logger="bank_campaign.etl")
    out = Preparer().prepare(raw)
    bad = Preparer.anomalies(out)
    assert bad["age"] == 2
    assert "campaign" not in bad
    # fields absent from the file count every row
    assert bad["duration"] == 3
    assert "unreadable numeric values" in caplog.text


def test_iter_records_use_none_for_missing():
    raw = pd.DataFrame({"age": ["N/A", "33"], "job": ["admin.", "services"], "y": ["yes", "no"]})
    records = list(iter_records(Preparer().prepare(raw)))
    assert len(records) == 2
    assert records[0].age is None and records[0].subscribed is True
    assert records[1].age == 33 and records[1].job == "services"
    assert records[1].pdays is None


# ---- pipeline ----

def test_three_row_scenario(tmp_path):
    csv = write_csv(
        tmp_path / "bank.csv",
        row(education="primary", y="yes"),
        row(education="primary", y="no"),
        row(education="secondary", y="yes"),
    )
    data = run_pipeline(csv)
    assert data.summary.total == 3
    assert data.summary.subscription_rate == 66.7
    pairs = list(data.charts["subscriptions_by_education"].itertuples(index=False, name=None))
    assert pairs == [("primary", 1), ("secondary", 1)]


def test_non_numeric_age_is_left_out_of_mean(tmp_path):
    csv = write_csv(
        tmp_path / "bank.csv",
        row(age="N/A", education="primary"),
        row(age="40", education="primary"),
    )
    data = run_pipeline(csv)
    assert len(data.prepared) == 2
    assert pd.isna(data.prepared["age"][0])
    assert data.anomalies == {"age": 1}
    out = aggregate(data.prepared, "education", MeanOf("age"))
    assert float(out[out["category"] == "primary"]["value"].iloc[0]) == 40.0


def test_empty_input_does_not_raise(tmp_path, caplog):
    csv = write_csv(tmp_path / "bank.csv")
    data = run_pipeline(csv)
    assert data.summary is None
    assert data.charts
    assert all(result.empty for result in data.charts.values())
    assert "summary rates are undefined" in caplog.text


def test_build_dashboard_has_bar_charts_only():
    prepared = Preparer().prepare(pd.DataFrame({"job": ["a"], "education": ["b"], "poutcome": ["c"], "y": ["yes"]}))
    data = build_dashboard(prepared)
    assert set(data.charts) == {"subscriptions_by_education", "conversion_by_job", "conversion_by_poutcome"}
    assert data.charts["conversion_by_job"]["value"].tolist() == [100.0]


# ---- cli ----

def test_main_writes_outputs(tmp_path, capsys):
    csv = write_csv(tmp_path / "bank.csv", row(y="yes"), row(job="services", y="no", duration="300", campaign="2"))
    out = tmp_path / "out"
    report = tmp_path / "report.txt"
    assert main(["--in", str(csv), "--out-dir", str(out), "--report", str(report), "--verbose"]) == 0
    assert (out / "index.html").exists()
    assert (out / "conversion_by_job.csv").exists()
    assert (out / "duration_vs_campaign.png").exists()
    assert "rows      : 2" in report.read_text(encoding="utf-8")
    assert "[1/4] Load" in capsys.readouterr().out


def test_main_reports_load_failure(tmp_path, capsys):
    out = tmp_path / "out"
    assert main(["--in", str(tmp_path / "missing.csv"), "--out-dir", str(out)]) == 1
    page = (out / "index.html").read_text(encoding="utf-8")
    assert page.count("Error loading data") == 4
    assert "file not found" in capsys.readouterr().err
