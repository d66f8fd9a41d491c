# test/test_sink.py
from datetime import date, timedelta

import pandas as pd

from libs.adapters.sink_parquet import ParquetRecordSink
from libs.contracts.records import DataKind

from conftest import T0, make_record


def test_parquet_sink_appends_per_day_partition(tmp_path):
    sink = ParquetRecordSink(base_dir=tmp_path)
    day1 = [make_record(DataKind.STOCK, "AAPL", T0), make_record(DataKind.STOCK, "MSFT", T0)]
    day2 = [make_record(DataKind.STOCK, "AAPL", T0 + timedelta(days=1))]

    assert sink.append(DataKind.STOCK, day1) == 2
    assert sink.append(DataKind.STOCK, day2) == 1
    # append-only: the same batch again adds rows
    assert sink.append(DataKind.STOCK, day1[:1]) == 1

    f1 = sink.partition_file(DataKind.STOCK, date(2024, 1, 2))
    f2 = sink.partition_file(DataKind.STOCK, date(2024, 1, 3))
    assert f1 == tmp_path / "stock" / "dt=2024-01-02" / "records.parquet"

    df1 = pd.read_parquet(f1)
    assert list(df1["symbol"]) == ["AAPL", "MSFT", "AAPL"]
    assert df1["captured_at"].dt.tz is not None
    assert len(pd.read_parquet(f2)) == 1


def test_parquet_sink_ignores_empty_batch(tmp_path):
    sink = ParquetRecordSink(base_dir=tmp_path)

    assert sink.append(DataKind.WEATHER, []) == 0
    assert not (tmp_path / "weather").exists()
