"""
Error taxonomy shared by the synchronisation components
"""

from typing import Optional


class SyncError(Exception):
    """Base class for errors raised while synchronising upstream records"""

    category = 'sync'

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransportError(SyncError):
    """Raised when the request never produced an HTTP response (connection, timeout, TLS)"""

    category = 'transport'


class HttpStatusError(SyncError):
    """Raised for non-2xx responses; keeps both the status code and the response body"""

    category = 'http_status'

    def __init__(self, message: str, status_code: int, body: str = ''):
        super().__init__(message, status_code)
        self.body = body


class DeserializationError(SyncError):
    """Raised when a response body is not the JSON shape the caller expects"""

    category = 'deserialization'


class AuthError(SyncError):
    """Raised when the token endpoint fails or re-authentication is exhausted"""

    category = 'auth'


class PassFatalError(SyncError):
    """Raised when a pass cannot continue, e.g. the parent collection fetch failed"""

    category = 'pass_fatal'

    def __init__(self, message: str, status_code: Optional[int] = None,
                 cause_category: Optional[str] = None):
        super().__init__(message, status_code)
        self.cause_category = cause_category


class SyncCancelledError(SyncError):
    """Raised at a suspension point once the pass has been asked to stop"""

    category = 'cancelled'
