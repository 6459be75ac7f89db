"""Exceptions raised by the routing registry for input it refuses outright."""


class RoutingError(Exception):
    """Base class for routing registry errors."""


class InvalidArgumentError(RoutingError, ValueError):
    """Raised when an operation receives input it can never act on.

    Examples: an identity with no account passed for registration, or a
    search with no criteria. Raised before any storage call is made.
    """
