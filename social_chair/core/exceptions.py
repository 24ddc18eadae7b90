"""Error taxonomy for the session bootstrap."""

from typing import Optional


class SocialChairError(Exception):
    """Base exception."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ProviderError(SocialChairError):
    """The identity provider rejected a request."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class PersistenceError(SocialChairError):
    """Unexpected failure reading or writing application records."""

    code = "persistence_error"


class RecordNotFound(PersistenceError):
    """A single-row read matched no rows."""

    code = "not_found"

    def __init__(self, message: str = "Record not found"):
        super().__init__(message)


class ProvisioningError(SocialChairError):
    """Profile provisioning was aborted; nothing it wrote was kept."""
