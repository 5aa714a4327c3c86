"""
Exception types shared by the oracle clients and the recommendation pipeline.
"""


class WayfinderError(Exception):
    """Base class for all wayfinder errors."""


class ConfigurationError(WayfinderError):
    """Missing credentials or unusable configuration. Never retried."""


class OracleUnavailableError(WayfinderError):
    """The conversational-AI oracle failed, timed out or returned nothing."""


class RoutingOracleError(WayfinderError):
    """The routing oracle answered with an error or an unreadable payload."""


class OptimizationUnsupportedError(RoutingOracleError):
    """The requested travel mode cannot be optimized or take intermediate stops."""
