"""
Deadwatch - Error Taxonomy
Failure kinds raised across the ingestion pipeline
"""

from enum import Enum
from typing import Optional


class TransportErrorKind(Enum):
    """Why a transport call failed"""
    AUTH = "auth"
    NETWORK = "network"
    TIMEOUT = "timeout"
    IO = "io"


class DeadwatchError(Exception):
    """Base class for pipeline errors"""


class TransportFailure(DeadwatchError):
    """Remote file store could not be reached, authenticated against or read"""

    def __init__(self, kind: TransportErrorKind, message: str, host: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.host = host

    def __str__(self) -> str:
        target = f" ({self.host})" if self.host else ""
        return f"[{self.kind.value}]{target} {self.args[0]}"


class EmptyOrUnreadableFile(DeadwatchError):
    """Remote file had no content or could not be decoded as UTF-8"""

    def __init__(self, path: str, reason: str = "empty"):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class StoreFailure(DeadwatchError):
    """Cursor, player or kill-record persistence failed"""
