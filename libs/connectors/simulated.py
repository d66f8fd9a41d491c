# libs/connectors/simulated.py
from __future__ import annotations

import random
import zlib
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from libs.contracts.records import StockQuote, WeatherReading, utcnow
from libs.runtime.cancel import CancelToken

CONDITIONS = ("Sunny", "Partly Cloudy", "Cloudy", "Rain", "Thunderstorm", "Snow")


def _stable_seed(key: str) -> int:
    # hash() 每个进程随机化；crc32 让同一个 key 的基准价稳定
    return zlib.crc32(key.strip().upper().encode("utf-8"))


@dataclass(slots=True)
class SimulatedStockFetcher:
    """
    Offline quote generator, used when no provider is configured.

    - base price is stable per symbol, with a small random walk on top
    - latency_sec simulates the provider round trip and honors cancellation
    """

    latency_sec: float = 0.3
    rng: random.Random = field(default_factory=random.Random)
    source_name: str = "simulated"

    def fetch(self, keys: Sequence[str], cancel: Optional[CancelToken] = None) -> List[StockQuote]:
        _simulate_latency(self.latency_sec, cancel)
        captured = utcnow()
        out: List[StockQuote] = []
        for sym in keys:
            base = _stable_seed(sym) % 1000 + 10
            price = round(base + self.rng.uniform(-5, 5), 2)
            change = round(self.rng.uniform(-2, 2), 2)
            out.append(
                StockQuote(
                    symbol=sym,
                    price=price,
                    change=change,
                    change_percent=round(change / price * 100, 2),
                    volume=self.rng.randint(10_000, 1_000_000),
                    captured_at=captured,
                )
            )
        return out


@dataclass(slots=True)
class SimulatedWeatherFetcher:
    latency_sec: float = 0.5
    rng: random.Random = field(default_factory=random.Random)
    source_name: str = "simulated"

    def fetch(self, keys: Sequence[str], cancel: Optional[CancelToken] = None) -> List[WeatherReading]:
        out: List[WeatherReading] = []
        for loc in keys:
            _simulate_latency(self.latency_sec, cancel)
            out.append(
                WeatherReading(
                    location=loc,
                    temperature=round(self.rng.uniform(0, 30), 1),
                    humidity=round(self.rng.uniform(0, 100), 1),
                    condition=self.rng.choice(CONDITIONS),
                    captured_at=utcnow(),
                )
            )
        return out


def _simulate_latency(seconds: float, cancel: Optional[CancelToken]) -> None:
    if seconds <= 0:
        if cancel is not None:
            cancel.raise_if_cancelled()
        return
    token = cancel or CancelToken()
    if token.wait(seconds):
        token.raise_if_cancelled()
