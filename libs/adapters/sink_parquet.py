# libs/adapters/sink_parquet.py
from __future__ import annotations

import threading
from datetime import date
from pathlib import Path
from typing import Sequence

import pandas as pd

from libs.contracts.records import DataKind, DataRecord


class ParquetRecordSink:
    """
    Parquet 追加写实现：
      - 文件：{base_dir}/{kind}/dt=YYYY-MM-DD/records.parquet（按 captured_at 的 UTC 日期分区）
      - 语义：append-only，不做去重/upsert（历史查询不在本服务范围）
    设计说明：
      - 单进程内用锁串行化同一 sink 的读-合并-写
      - 时间列保持 UTC tz-aware
    """

    def __init__(self, base_dir: str | Path = "data/records") -> None:
        self.base_dir = Path(base_dir)
        self.location = str(self.base_dir)
        self._lock = threading.Lock()

    def append(self, kind: DataKind, records: Sequence[DataRecord]) -> int:
        if not records:
            return 0
        df_new = self._records_to_df(records)
        written = 0
        with self._lock:
            for day, part in df_new.groupby("_day"):
                file_path = self.partition_file(DataKind(kind), day)
                file_path.parent.mkdir(parents=True, exist_ok=True)
                part = part.drop(columns=["_day"])
                if file_path.exists():
                    part = pd.concat([pd.read_parquet(file_path), part], ignore_index=True)
                part.to_parquet(file_path, index=False)
                written += int((df_new["_day"] == day).sum())
        return written

    def partition_file(self, kind: DataKind, day: date) -> Path:
        return self.base_dir / kind.value / f"dt={day.isoformat()}" / "records.parquet"

    @staticmethod
    def _records_to_df(records: Sequence[DataRecord]) -> pd.DataFrame:
        df = pd.DataFrame([r.model_dump() for r in records])
        df["captured_at"] = pd.to_datetime(df["captured_at"], utc=True)
        df["_day"] = df["captured_at"].dt.date
        return df
