"""Exceptions raised by the stats client.

Everything derives from :class:`PenguinStatsError` so callers can catch the
whole family at one boundary.
"""

from typing import Optional


class PenguinStatsError(Exception):
    pass


class InvalidParameterError(PenguinStatsError, ValueError):
    """Arguments rejected locally, before any request is sent."""


class RequestFailedError(PenguinStatsError):
    """The request could not be completed (DNS, connect, timeout, ...)."""


class BadStatusError(PenguinStatsError):
    def __init__(self, status_code: int, body: str = "", *, expected: Optional[int] = None):
        self.status_code = status_code
        self.body = body
        self.expected = expected
        msg = f"PenguinStats returned a bad status code: {status_code}"
        if expected is not None:
            msg += f" (expected {expected})"
        if body:
            msg += f" {body}"
        super().__init__(msg)


class DecodeError(PenguinStatsError, ValueError):
    """Response body was not JSON or did not match the expected shape."""
