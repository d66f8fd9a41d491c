# libs/connectors/registry.py
from typing import Callable, Dict, Literal, Tuple

from libs.config.settings import StockLoaderSettings, WeatherLoaderSettings, LoaderSettings
from libs.contracts.records import DataKind
from .base import FetcherPort
from .http_provider import HttpStockFetcher, HttpWeatherFetcher
from .simulated import SimulatedStockFetcher, SimulatedWeatherFetcher

FetchSource = Literal["simulated", "http", "yfinance"]
FetcherFactory = Callable[[LoaderSettings], FetcherPort]


def _yfinance(_settings: LoaderSettings) -> FetcherPort:
    # 延迟导入：yfinance 导入较慢，只有配置了才加载
    from .yfinance_fetcher import YFinanceQuoteFetcher
    return YFinanceQuoteFetcher()


_REGISTRY: Dict[Tuple[DataKind, str], FetcherFactory] = {
    (DataKind.STOCK, "simulated"): lambda s: SimulatedStockFetcher(),
    (DataKind.STOCK, "http"): lambda s: HttpStockFetcher(s.API_BASE_URL, s.API_KEY, timeout_sec=s.HTTP_TIMEOUT_SEC),
    (DataKind.STOCK, "yfinance"): _yfinance,
    (DataKind.WEATHER, "simulated"): lambda s: SimulatedWeatherFetcher(),
    (DataKind.WEATHER, "http"): lambda s: HttpWeatherFetcher(s.API_BASE_URL, s.API_KEY, timeout_sec=s.HTTP_TIMEOUT_SEC),
}


def get_fetcher(kind: DataKind, settings: StockLoaderSettings | WeatherLoaderSettings) -> FetcherPort:
    source = settings.SOURCE
    try:
        factory = _REGISTRY[(DataKind(kind), source)]
    except KeyError:
        raise ValueError(f"unknown fetcher for {kind}: {source!r}")
    return factory(settings)


def list_fetchers(kind: DataKind) -> list[str]:
    return [src for (k, src) in _REGISTRY if k == DataKind(kind)]
