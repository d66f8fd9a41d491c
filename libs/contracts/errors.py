# libs/contracts/errors.py
from __future__ import annotations

from typing import Dict, List, Optional, Sequence


class RefreshError(Exception):
    """Base class for errors raised by the refresh core."""


class FetchError(RefreshError):
    """External fetch failed or returned malformed data."""

    def __init__(self, message: str, *, keys: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.keys: List[str] = list(keys or [])


class PartialFetchError(FetchError):
    """
    Some keys of a multi-key fetch failed.

    records  : records obtained for the keys that succeeded
    failures : key -> error message for the keys that failed
    """

    def __init__(self, message: str, *, records: Sequence = (), failures: Optional[Dict[str, str]] = None):
        failures = dict(failures or {})
        super().__init__(message, keys=list(failures))
        self.records = list(records)
        self.failures = failures


class FetchCancelled(RefreshError):
    """Shutdown signal or request timeout observed; not a failure."""


class KeyNotTracked(RefreshError):
    """Read/refresh for a key outside the configured set."""

    def __init__(self, key: str, kind: str):
        super().__init__(f"{kind} key {key!r} is not being tracked")
        self.key = key
        self.kind = kind
