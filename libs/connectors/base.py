from __future__ import annotations
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from libs.contracts.records import DataRecord
from libs.runtime.cancel import CancelToken


@runtime_checkable
class FetcherPort(Protocol):
    """
    Contract for data fetchers (one implementation per provider and kind).

    Requirements (must be satisfied by implementers):
    - `source_name`: a short identifier for logging and job metadata, e.g. "simulated", "http", "yfinance".
    - `fetch(keys, cancel)`: returns one DataRecord per key it could fetch.
        - raise FetchError when the provider call fails or returns malformed data
        - raise PartialFetchError when a multi-key call only partly succeeded
        - honor `cancel` between provider calls (raise FetchCancelled) and bound HTTP timeouts by it
    """

    # attribute used by logging and job metadata
    source_name: str

    def fetch(self, keys: Sequence[str], cancel: Optional[CancelToken] = None) -> List[DataRecord]:
        ...
