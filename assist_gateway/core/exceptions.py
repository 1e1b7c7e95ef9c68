# assist_gateway/core/exceptions.py
import re
from typing import Optional

_ACTIVE_RUN_PATTERN = re.compile(r"while a run \S+ is active|already has an active run", re.IGNORECASE)


class GatewayError(Exception):
    """A failure that is reported to the client with a specific status code."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ConfigurationError(GatewayError):
    def __init__(self, message: str = "Server not configured"):
        super().__init__(500, message)


class RemoteServiceError(Exception):
    """Raised when a call to the assistant service fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def __repr__(self) -> str:
        return f"RemoteServiceError(status_code={self.status_code!r}, code={self.code!r}, message={self.message!r})"


def is_active_run_conflict(error: Exception) -> bool:
    """True when the service rejected a message because the thread still has a run in flight"""
    if not isinstance(error, RemoteServiceError):
        return False
    if error.status_code not in (None, 400, 409):
        return False
    return bool(_ACTIVE_RUN_PATTERN.search(error.message or ""))
