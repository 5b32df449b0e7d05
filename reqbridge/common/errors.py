"""Exception types shared across reqbridge."""


class ReqBridgeError(Exception):
    """Base class for reqbridge errors."""
    pass


class ConfigurationError(ReqBridgeError):
    """Required credential or endpoint is missing."""
    pass


class SourceError(ReqBridgeError):
    """A document source returned a non-success status or failed in transport."""

    def __init__(self, source: str, message: str, status_code: int = None):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.status_code = status_code


class PublishError(ReqBridgeError):
    """Issue creation on the destination tracker failed. Terminal for a run."""

    def __init__(self, message: str, details: str = ""):
        super().__init__(message)
        self.details = details
