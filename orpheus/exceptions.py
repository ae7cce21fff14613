"""
Custom exceptions for the bot, providing a structured error hierarchy.
"""


class OrpheusError(Exception):
    """Base exception for all custom exceptions in this bot."""

    pass


class ConfigurationError(OrpheusError):
    """Raised for errors in bot configuration, like missing keys or invalid values."""

    pass


class APIError(OrpheusError):
    """Raised when an external API (Discord, Last.fm, iTunes, ...) is unreachable or answers garbage."""

    pass


class AcknowledgeError(APIError):
    """Raised when the deferred acknowledgment could not be delivered inside Discord's window."""

    pass


class UpstreamEmptyError(OrpheusError):
    """Raised when an upstream query succeeded but yielded nothing usable.

    The message is user-facing and is delivered as-is.
    """

    pass


class NotRegisteredError(OrpheusError):
    """Raised when a user has no registered Last.fm username and supplied none."""

    pass


class DispatchTypeError(OrpheusError):
    """Raised when a handler returns something that is not a known response variant."""

    pass
