"""
Exceptions raised by the registration engine.
"""


class IcpConfigurationError(ValueError):
    """Invalid registration setup, reported before any iteration runs."""
