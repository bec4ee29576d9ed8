"""Failure conditions raised by the insight pipelines.

Every error carries a caller-safe message; the API layer turns any of them into
a ``{"error": message}`` envelope with status 500.
"""

from __future__ import annotations


class InsightError(Exception):
    pass


class InvalidRequestError(InsightError):
    """Required request input is missing; raised before any backend is contacted."""


class DataUnavailableError(InsightError):
    """The record store could not be read."""


class UpstreamUnavailableError(InsightError):
    """The model backend failed or returned a response without completion text."""


class StorageError(InsightError):
    """Derived records could not be written to the record store."""
