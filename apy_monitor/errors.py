from __future__ import annotations


class ApyMonitorError(Exception):
    """Base class for errors raised by the APY monitor."""


class ConfigurationError(ApyMonitorError):
    """Required settings are missing. Fatal at startup."""


class RemoteFetchError(ApyMonitorError):
    """The hosted database (or another remote API) could not be queried."""


class PersistenceError(ApyMonitorError):
    """A memory entry could not be written."""


class NoChannelAvailable(ApyMonitorError):
    """No posting channel is registered for the requested capability."""
