"""Error taxonomy for the supervisory control loop."""

from __future__ import annotations


class UpsKeeperError(RuntimeError):
    """Base class for errors raised by ups-keeper components."""


class ConfigurationError(UpsKeeperError):
    """Raised when configuration values are invalid."""


class TransportError(UpsKeeperError):
    """Raised when the UPS daemon cannot be reached or returns no data."""


class DaemonStartError(UpsKeeperError):
    """Raised when starting or restarting the driver/daemon fails."""


class CommandDeliveryError(UpsKeeperError):
    """Raised when an instant command could not be delivered."""


class MalformedTelemetry(UpsKeeperError):
    """Raised when a snapshot lacks a required field or carries the wrong type."""
