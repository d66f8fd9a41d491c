# libs/connectors/yfinance_fetcher.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import pandas as pd
import yfinance as yf
from pydantic import ValidationError

from libs.contracts.errors import FetchError, PartialFetchError
from libs.contracts.records import StockQuote, utcnow
from libs.runtime.cancel import CancelToken


@dataclass(slots=True)
class YFinanceQuoteFetcher:
    """
    Latest-quote fetcher backed by yfinance daily bars (satisfies FetcherPort).

    - one yf.download call for the whole batch
    - price = last close; change = last close - previous close; volume = last bar volume
    - symbols with no bars are reported through PartialFetchError (the stock policy treats it as batch failure)

    Configurable:
    - lookback_period: yfinance period string wide enough to hold two trading days (default "5d")
    """

    lookback_period: str = "5d"
    auto_adjust: bool = False
    source_name: str = "yfinance"

    def fetch(self, keys: Sequence[str], cancel: Optional[CancelToken] = None) -> List[StockQuote]:
        symbols = [k.strip().upper() for k in keys if k.strip()]
        if not symbols:
            return []
        if cancel is not None:
            cancel.raise_if_cancelled()

        try:
            df = yf.download(
                tickers=symbols,
                period=self.lookback_period,
                interval="1d",
                group_by="ticker",
                auto_adjust=self.auto_adjust,
                threads=False,     # 这里关掉多线程，稳定一些
                progress=False,
            )
        except Exception as exc:  # yfinance surfaces network errors as assorted exception types
            raise FetchError(f"yfinance download failed: {exc}", keys=symbols) from exc

        if df is None or df.empty:
            raise FetchError(f"No data returned for {symbols!r} from yfinance", keys=symbols)

        if cancel is not None:
            cancel.raise_if_cancelled()

        quotes: List[StockQuote] = []
        failures: Dict[str, str] = {}
        for sym in symbols:
            frame = self._frame_for(df, sym, single=len(symbols) == 1)
            try:
                quote = self._latest_quote(sym, frame)
            except (ValueError, ValidationError) as exc:
                failures[sym] = str(exc)
                continue
            quotes.append(quote)

        if failures:
            raise PartialFetchError(
                f"yfinance returned no usable bars for {sorted(failures)}",
                records=quotes,
                failures=failures,
            )
        return quotes

    # ---- 辅助函数：保持小而清晰 ----
    @staticmethod
    def _frame_for(df: pd.DataFrame, sym: str, *, single: bool) -> Optional[pd.DataFrame]:
        """Select one ticker's OHLCV columns whichever way yfinance laid out the MultiIndex."""
        if isinstance(df.columns, pd.MultiIndex):
            if sym in df.columns.get_level_values(0):
                return df[sym]
            if sym in df.columns.get_level_values(1):
                return df.xs(sym, axis=1, level=1)
            return None
        return df if single else None

    @staticmethod
    def _latest_quote(sym: str, frame: Optional[pd.DataFrame]) -> StockQuote:
        if frame is None or "Close" not in frame.columns:
            raise ValueError(f"no bars for {sym}")
        bars = frame.dropna(subset=["Close"])
        if bars.empty:
            raise ValueError(f"no bars for {sym}")

        last = bars.iloc[-1]
        price = float(last["Close"])
        prev_close = float(bars.iloc[-2]["Close"]) if len(bars) > 1 else price
        change = price - prev_close
        volume = last.get("Volume")

        # daily bar 的索引是交易日 00:00；captured_at 记录抓取时刻
        return StockQuote(
            symbol=sym,
            price=round(price, 4),
            change=round(change, 4),
            change_percent=round(change / prev_close * 100, 2) if prev_close else 0.0,
            volume=int(volume) if volume is not None and pd.notna(volume) else 0,
            captured_at=utcnow(),
        )
