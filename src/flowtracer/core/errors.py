from __future__ import annotations

from dataclasses import dataclass


class TracerError(Exception):
    pass


class InvalidAddress(TracerError, ValueError):
    pass


class DataSourceError(TracerError):
    pass


class RateLimitError(DataSourceError):
    pass


class DataUnavailable(TracerError):
    """
    Every configured endpoint failed for one logical request.
    """


@dataclass(frozen=True)
class PartialDegradation:
    """
    One branch / address / mint could not be processed; the run continued.
    """

    address: str
    stage: str
    message: str
