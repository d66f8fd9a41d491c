# test/test_settings.py
from datetime import timedelta
from uuid import uuid4

import pytest
from pydantic import ValidationError

from libs.config.settings import AppSettings, JobKeySettings, LoaderSettings, StockLoaderSettings, WeatherLoaderSettings


def test_comma_separated_keys_from_env(monkeypatch):
    monkeypatch.setenv("STOCK_SYMBOLS", " aapl, MSFT,,msft ,goog ")
    monkeypatch.setenv("WEATHER_LOCATIONS", "London, Paris")

    assert StockLoaderSettings().keys == ["AAPL", "MSFT", "GOOG"]
    assert WeatherLoaderSettings().keys == ["London", "Paris"]


def test_defaults_per_kind(monkeypatch):
    for name in ("STOCK_POLLING_INTERVAL_SECONDS", "WEATHER_POLLING_INTERVAL_SECONDS",
                 "STOCK_STALE_AFTER_MINUTES", "WEATHER_STALE_AFTER_MINUTES"):
        monkeypatch.delenv(name, raising=False)

    stock, weather = StockLoaderSettings(), WeatherLoaderSettings()

    assert stock.POLLING_INTERVAL_SECONDS == 60
    assert weather.POLLING_INTERVAL_SECONDS == 900
    assert stock.stale_after == timedelta(minutes=30)
    assert weather.stale_after == timedelta(minutes=60)


def test_non_positive_interval_is_rejected(monkeypatch):
    monkeypatch.setenv("STOCK_POLLING_INTERVAL_SECONDS", "0")
    with pytest.raises(ValidationError):
        StockLoaderSettings()


def test_incomplete_http_config_is_reported():
    s = StockLoaderSettings(SYMBOLS=["AAPL"], SOURCE="http", API_BASE_URL="https://q.example.com")
    assert s.incomplete_reason() == "provider API configuration is incomplete"

    assert WeatherLoaderSettings(LOCATIONS=[]).incomplete_reason() == "no keys configured"
    assert WeatherLoaderSettings(LOCATIONS=["Oslo"]).incomplete_reason() is None


def test_job_keys_and_app_settings(monkeypatch):
    key = uuid4()
    monkeypatch.setenv("JOBKEYS_STOCK_LOADER_KEY", str(key))
    monkeypatch.setenv("APP_JOB_RETENTION_HOURS", "2")
    monkeypatch.setenv("APP_SINK", "parquet")

    keys = JobKeySettings()
    app = AppSettings()

    assert keys.STOCK_LOADER_KEY == key
    assert keys.WEATHER_LOADER_KEY is None
    assert app.job_retention == timedelta(hours=2)
    assert app.SINK == "parquet"


def test_base_loader_settings_is_abstract():
    with pytest.raises(TypeError):
        LoaderSettings()
