"""
Bridge Errors
=============

Exception hierarchy shared by the NVR client, the state store and the
service lifecycle.

Only StartupError is allowed to escape a running service. Everything else is
contained to the tick or command that raised it.
"""

from typing import Optional


class BridgeError(Exception):
    """Base class for all bridge errors."""
    pass


class StartupError(BridgeError):
    """Initial camera sync failed; the service must not enter steady state."""
    pass


class StoreClosedError(BridgeError):
    """Camera state store was accessed after shutdown."""
    pass


class NvrError(BridgeError):
    """Any failure talking to the NVR API."""
    pass


class NvrAuthenticationError(NvrError):
    """NVR rejected the configured credentials."""
    pass


class NvrResponseError(NvrError):
    """NVR answered with an unexpected status code or payload."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
