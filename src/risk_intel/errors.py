"""Error taxonomy for the scan pipeline.

Only ``ClientError`` is meant to cross the API boundary. The provider errors
are raised inside adapters and absorbed by ``bounded_call`` into fallback
values.
"""

from __future__ import annotations


class RiskIntelError(Exception):
    """Base class for all risk-intel errors."""


class ClientError(RiskIntelError):
    """The caller sent a missing or invalid request."""


class ProviderUnavailable(RiskIntelError):
    """A retrieval or judgment provider is down, misconfigured or refused the call."""

    def __init__(self, message: str, *, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}" if provider else message)


class ProviderTimeout(RiskIntelError):
    """A bounded wait on an external call expired."""


class ParseError(RiskIntelError):
    """A provider answered with output that does not match the expected contract."""
