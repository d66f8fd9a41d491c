# libs/refresh/policies.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

import structlog

from libs.connectors.base import FetcherPort
from libs.contracts.errors import FetchError, PartialFetchError
from libs.contracts.records import DataKind, DataRecord
from libs.runtime.cancel import CancelToken


@dataclass(frozen=True)
class FetchOutcome:
    """
    Explicit result of one policy-driven fetch.
    ok=False means total failure of the run; failures lists per-key errors either way.
    """

    records: List[DataRecord] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def partial(self) -> bool:
        return self.ok and bool(self.failures)


class RefreshPolicy(Protocol):
    """How a data kind calls its fetcher and aggregates failure."""

    kind: DataKind
    fetcher: FetcherPort

    def fetch(self, keys: Sequence[str], cancel: Optional[CancelToken] = None) -> FetchOutcome:
        ...


class BatchRefreshPolicy:
    """Stock kind: one batch call; any FetchError fails the whole run (fetch is atomic)."""

    def __init__(self, fetcher: FetcherPort, kind: DataKind = DataKind.STOCK, logger=None):
        self.kind = kind
        self.fetcher = fetcher
        self.log = logger or structlog.get_logger("refresh.policy")

    def fetch(self, keys: Sequence[str], cancel: Optional[CancelToken] = None) -> FetchOutcome:
        try:
            records = self.fetcher.fetch(list(keys), cancel)
        except PartialFetchError as exc:
            # 批量语义：部分失败 = 整体失败，已取得的记录也丢弃
            return FetchOutcome(failures=dict(exc.failures), error=str(exc))
        except FetchError as exc:
            return FetchOutcome(failures={k: str(exc) for k in keys}, error=str(exc))
        return FetchOutcome(records=list(records))


class PerKeyRefreshPolicy:
    """
    Weather kind: one call per key.
    A failing key is logged and skipped; the run fails only when every key failed.
    """

    def __init__(self, fetcher: FetcherPort, kind: DataKind = DataKind.WEATHER, logger=None):
        self.kind = kind
        self.fetcher = fetcher
        self.log = logger or structlog.get_logger("refresh.policy")

    def fetch(self, keys: Sequence[str], cancel: Optional[CancelToken] = None) -> FetchOutcome:
        records: List[DataRecord] = []
        failures: Dict[str, str] = {}
        for key in keys:
            if cancel is not None:
                cancel.raise_if_cancelled()
            try:
                records.extend(self.fetcher.fetch([key], cancel))
            except PartialFetchError as exc:
                records.extend(exc.records)
                failures[key] = str(exc)
                self.log.warning("refresh.key_partial", kind=self.kind.value, key=key, error=str(exc))
            except FetchError as exc:
                failures[key] = str(exc)
                self.log.warning("refresh.key_failed", kind=self.kind.value, key=key, error=str(exc))

        if keys and not records:
            return FetchOutcome(
                failures=failures,
                error=f"failed to retrieve {self.kind.value} data for any of {len(keys)} keys",
            )
        return FetchOutcome(records=records, failures=failures)


def policy_for(kind: DataKind, fetcher: FetcherPort, logger=None) -> RefreshPolicy:
    if DataKind(kind) is DataKind.STOCK:
        return BatchRefreshPolicy(fetcher, logger=logger)
    return PerKeyRefreshPolicy(fetcher, logger=logger)
