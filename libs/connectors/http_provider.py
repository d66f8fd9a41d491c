# libs/connectors/http_provider.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests
from pydantic import ValidationError

from libs.contracts.errors import FetchCancelled, FetchError, PartialFetchError
from libs.contracts.records import StockQuote, WeatherReading, utcnow
from libs.runtime.cancel import CancelToken


def _parse_timestamp(value: Any) -> datetime:
    """Provider timestamps: ISO8601 string (with or without Z) or missing -> UTC datetime."""
    if value in (None, ""):
        return utcnow()
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as exc:
            raise FetchError(f"malformed timestamp from provider: {value!r}") from exc
    # 统一设为 UTC
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class _HttpProvider:
    """Shared session / auth / error mapping for the provider REST APIs."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_sec: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required for the http provider")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_sec = timeout_sec
        self.session = session or requests.Session()

    def _get_json(self, path: str, params: Dict[str, Any], cancel: Optional[CancelToken]) -> Any:
        if cancel is not None:
            cancel.raise_if_cancelled()
            timeout = cancel.http_timeout(self.timeout_sec)
        else:
            timeout = self.timeout_sec

        url = f"{self.base_url}{path}"
        try:
            r = self.session.get(
                url,
                params={**params, "apiKey": self.api_key},
                headers={"Accept": "application/json"},
                timeout=timeout,
            )
        except requests.Timeout as exc:
            if cancel is not None and cancel.cancelled:
                raise FetchCancelled("provider request interrupted by deadline") from exc
            raise FetchError(f"provider request timed out: {url}") from exc
        except requests.RequestException as exc:
            raise FetchError(f"provider request failed: {exc}") from exc

        try:
            r.raise_for_status()
        except requests.HTTPError as exc:
            # 带上服务端返回的错误信息（截断），只进入 job status，不透出给读接口
            raise FetchError(f"provider returned {r.status_code}: {r.text[:200]}") from exc

        try:
            return r.json()
        except ValueError as exc:
            raise FetchError("provider returned a non-JSON body") from exc


class HttpStockFetcher(_HttpProvider):
    """
    GET {base}/api/v1/stocks?symbols=A,B&apiKey=...  ->  {"data": [{symbol, price, change, changePercent, volume, timestamp}]}
    One batch call; a missing or malformed payload fails the whole batch.
    """

    source_name = "http"

    def fetch(self, keys: Sequence[str], cancel: Optional[CancelToken] = None) -> List[StockQuote]:
        symbols = [k.strip().upper() for k in keys]
        payload = self._get_json("/api/v1/stocks", {"symbols": ",".join(symbols)}, cancel)
        rows = payload.get("data") if isinstance(payload, Mapping) else None
        if rows is None:
            raise FetchError("invalid response from stock API", keys=symbols)
        try:
            return [self._to_quote(row) for row in rows]
        except (ValidationError, TypeError, AttributeError) as exc:
            raise FetchError(f"malformed stock row: {exc}", keys=symbols) from exc

    @staticmethod
    def _to_quote(row: Mapping[str, Any]) -> StockQuote:
        return StockQuote(
            symbol=row["symbol"] if "symbol" in row else row.get("Symbol"),
            price=row.get("price", row.get("Price")),
            change=row.get("change", row.get("Change", 0.0)),
            change_percent=row.get("changePercent", row.get("ChangePercent", 0.0)),
            volume=row.get("volume", row.get("Volume", 0)),
            captured_at=_parse_timestamp(row.get("timestamp", row.get("Timestamp"))),
        )


class HttpWeatherFetcher(_HttpProvider):
    """
    GET {base}/api/v1/weather?location=X&apiKey=...  ->  {location, temperature, humidity, condition, timestamp}
    One call per location; failed locations are collected into PartialFetchError.
    """

    source_name = "http"

    def fetch(self, keys: Sequence[str], cancel: Optional[CancelToken] = None) -> List[WeatherReading]:
        records: List[WeatherReading] = []
        failures: Dict[str, str] = {}
        for loc in keys:
            try:
                body = self._get_json("/api/v1/weather", {"location": loc}, cancel)
                if not isinstance(body, Mapping):
                    raise FetchError(f"empty weather payload for {loc!r}")
                records.append(self._to_reading(loc, body))
            except FetchError as exc:
                failures[loc] = str(exc)
            except (ValidationError, TypeError) as exc:
                failures[loc] = f"malformed weather payload: {exc}"

        if failures and not records:
            raise FetchError("failed to retrieve weather data for any location", keys=list(failures))
        if failures:
            raise PartialFetchError(
                f"weather fetch failed for {len(failures)} of {len(keys)} locations",
                records=records,
                failures=failures,
            )
        return records

    @staticmethod
    def _to_reading(requested: str, body: Mapping[str, Any]) -> WeatherReading:
        return WeatherReading(
            location=requested,                          # 缓存按请求的 key 归档
            temperature=body.get("temperature"),
            humidity=body.get("humidity"),
            condition=body.get("condition") or "",
            captured_at=_parse_timestamp(body.get("timestamp")),
        )
