"""
RateLimitedGateway module for throttled, authenticated HTTP calls to the payroll API
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests

from .exceptions import (
    AuthError,
    DeserializationError,
    HttpStatusError,
    SyncCancelledError,
    TransportError,
)
from .rate_limiter import RateLimiter
from .token_manager import TokenLifecycleManager


@dataclass
class APIRequest:
    """Represents a single API request"""
    url: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    method: str = "GET"


@dataclass
class APIResponse:
    """Standardised API response wrapper"""
    raw_data: Any
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    request_timestamp: datetime = field(default_factory=datetime.now)


class RateLimitedGateway:
    """
    HTTP access layer shared by every reader of one connected account

    Every call waits on the injected RateLimiter, carries a bearer token from the
    TokenLifecycleManager and maps failures onto the sync error taxonomy. Calls
    are never retried here except for the single re-authorisation after a
    401/403.
    """

    UNAUTHORIZED_STATUS_CODES = {401, 403}

    def __init__(self, base_url: str, rate_limiter: RateLimiter,
                 token_manager: TokenLifecycleManager,
                 session: Optional[requests.Session] = None,
                 cert: Any = None, timeout: float = 30.0,
                 cancel_event: Optional[threading.Event] = None):
        self.base_url = base_url if base_url.endswith('/') else base_url + '/'
        self.rate_limiter = rate_limiter
        self.token_manager = token_manager
        self.session = session
        self.cert = cert
        self.timeout = timeout
        self.cancel_event = cancel_event or threading.Event()
        self.request_count = 0

        self._forbidden_lock = threading.Lock()
        self._can_reauth_forbidden = True
        self._count_lock = threading.Lock()

        self.logger = logging.getLogger(__name__)

    def __enter__(self) -> 'RateLimitedGateway':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close_connection()

    def build_url(self, path: str) -> str:
        """Resolve an endpoint path against the configured base URL"""
        return urljoin(self.base_url, path.lstrip('/'))

    def get(self, path: str, parameters: Optional[Dict[str, Any]] = None) -> APIResponse:
        """Convenience wrapper issuing a GET for a relative endpoint path"""
        return self.send(APIRequest(url=self.build_url(path), parameters=parameters or {}))

    def send(self, request: APIRequest) -> APIResponse:
        """
        Send a request through the throttle with authentication attached

        Args:
            request: APIRequest describing the call

        Returns:
            APIResponse with the decoded JSON body

        Raises:
            SyncCancelledError: If cancellation was requested before the call
            TransportError: If no HTTP response was received
            HttpStatusError: For non-2xx responses
            DeserializationError: If the body is not valid JSON
            AuthError: If authentication fails or cannot be recovered
        """
        # Checked before authorising so a cancelled pass never reaches the token endpoint
        self._raise_if_cancelled(request)
        version = self.token_manager.ensure_authorized(request)
        response = self._dispatch(request)

        if response.status_code in self.UNAUTHORIZED_STATUS_CODES:
            if not self._may_reauthorize(response.status_code):
                raise AuthError(
                    f"Access forbidden for {request.url} after re-authorisation was exhausted",
                    status_code=response.status_code,
                )
            self.logger.warning(
                f"HTTP {response.status_code} from {request.url}, refreshing token"
            )
            self.token_manager.handle_unauthorized(request, version)
            response = self._dispatch(request)
            if response.status_code in self.UNAUTHORIZED_STATUS_CODES:
                raise AuthError(
                    f"Request to {request.url} still unauthorised after token refresh",
                    status_code=response.status_code,
                )

        return self._to_api_response(request, response)

    def close_connection(self) -> None:
        """
        Close HTTP session and release resources
        """
        if self.session:
            self.session.close()
            self.session = None

    def _may_reauthorize(self, status_code: int) -> bool:
        # 401 always earns one refresh per request; 403 only once per gateway
        if status_code == 401:
            return True
        with self._forbidden_lock:
            if self._can_reauth_forbidden:
                self._can_reauth_forbidden = False
                return True
            return False

    def _raise_if_cancelled(self, request: APIRequest) -> None:
        if self.cancel_event.is_set():
            raise SyncCancelledError(f"Sync cancelled before request to {request.url}")

    def _dispatch(self, request: APIRequest) -> requests.Response:
        self._raise_if_cancelled(request)

        self.rate_limiter.acquire()

        if self.session is None:
            self.session = requests.Session()

        with self._count_lock:
            self.request_count += 1

        try:
            return self.session.request(
                request.method,
                request.url,
                params=request.parameters if request.method.upper() == 'GET' else None,
                data=request.parameters if request.method.upper() != 'GET' else None,
                headers=request.headers,
                cert=self.cert,
                timeout=self.timeout,
            )
        except requests.exceptions.SSLError as e:
            raise TransportError(f"TLS failure calling {request.url}: {e}") from e
        except requests.exceptions.Timeout as e:
            raise TransportError(f"Timed out calling {request.url}: {e}") from e
        except requests.exceptions.ConnectionError as e:
            raise TransportError(f"Connection failure calling {request.url}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request to {request.url} failed: {e}") from e

    def _to_api_response(self, request: APIRequest, response: requests.Response) -> APIResponse:
        if not 200 <= response.status_code < 300:
            raise HttpStatusError(
                f"HTTP {response.status_code} from {request.url}",
                status_code=response.status_code,
                body=response.text or '',
            )

        # 204 and empty bodies carry no data rather than broken JSON
        if response.status_code == 204 or not response.content:
            raw_data = None
        else:
            try:
                raw_data = response.json()
            except ValueError as e:
                raise DeserializationError(
                    f"Response from {request.url} is not valid JSON: {e}",
                    status_code=response.status_code,
                ) from e

        return APIResponse(
            raw_data=raw_data,
            status_code=response.status_code,
            headers=dict(response.headers),
            metadata={
                'url': request.url,
                'method': request.method,
                'parameters': dict(request.parameters),
            },
        )
