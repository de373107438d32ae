"""
TokenLifecycleManager module for OAuth2 client-credentials bearer tokens
"""

import hashlib
import logging
import threading
from enum import Enum
from typing import Any, Dict, Optional

import requests

from .exceptions import AuthError


class TokenState(Enum):
    """Lifecycle of the held credential"""
    NO_TOKEN = "no_token"
    AUTHORIZING = "authorizing"
    AUTHORIZED = "authorized"
    FAILED = "failed"


class TokenLifecycleManager:
    """
    Acquires, caches and refreshes the bearer credential for one connected account

    Refreshes are serialised through a lock. The credential carries a version
    counter; a caller that observed version N and then finds version N+1 after
    taking the lock reuses the newer token instead of issuing its own request,
    so concurrent 401s collapse into a single token-endpoint round trip.
    """

    GRANT_TYPE = 'client_credentials'

    def __init__(self, token_url: str, client_id: str, client_secret: str,
                 session: Optional[requests.Session] = None,
                 cert: Any = None, timeout: float = 30.0):
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.cert = cert
        self.timeout = timeout
        self.session = session
        self._owns_session = session is None

        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._version = 0
        self.state = TokenState.NO_TOKEN
        self.refresh_count = 0
        self.refresh_token: Optional[str] = None
        self.expires_in: Optional[int] = None
        self._fingerprint: Optional[str] = None

        self.logger = logging.getLogger(__name__)

    @property
    def version(self) -> int:
        return self._version

    @property
    def credential_fingerprint(self) -> str:
        """Stable hash of the credential set, safe to log"""
        if self._fingerprint is None:
            raw = f"{self.GRANT_TYPE}::{self.token_url}::{self.client_id}::{self.client_secret}"
            self._fingerprint = hashlib.md5(raw.encode('utf-8')).hexdigest()
        return self._fingerprint

    def ensure_authorized(self, request) -> int:
        """
        Attach a bearer token to the request, fetching one first if none is held

        Args:
            request: Object with a mutable 'headers' dictionary

        Returns:
            Version of the credential that was attached

        Raises:
            AuthError: If the token endpoint cannot issue a token
        """
        with self._lock:
            if self._token is None:
                self._refresh_locked()
            token, version = self._token, self._version

        request.headers['Authorization'] = f"Bearer {token}"
        return version

    def handle_unauthorized(self, request, observed_version: int) -> int:
        """
        Force a refresh after a 401/403 and re-attach the new token

        Args:
            request: Request that was rejected
            observed_version: Credential version the rejected request carried

        Returns:
            Version of the credential now attached

        Raises:
            AuthError: If the token endpoint cannot issue a token
        """
        with self._lock:
            if self._token is None or self._version == observed_version:
                self._refresh_locked()
            else:
                self.logger.debug(
                    f"Token already refreshed to version {self._version}, reusing it"
                )
            token, version = self._token, self._version

        request.headers['Authorization'] = f"Bearer {token}"
        return version

    def invalidate(self) -> None:
        """Drop the held credential so the next request re-authorises"""
        with self._lock:
            self._token = None
            self.state = TokenState.NO_TOKEN

    def close(self) -> None:
        if self._owns_session and self.session is not None:
            self.session.close()
            self.session = None

    def _refresh_locked(self) -> None:
        """Perform the token request; caller must hold the lock"""
        self.state = TokenState.AUTHORIZING
        try:
            payload = self._request_token()
        except AuthError:
            self._token = None
            self.state = TokenState.FAILED
            raise

        self._token = payload['access_token']
        self.refresh_token = payload.get('refresh_token')
        self.expires_in = payload.get('expires_in')
        self._version += 1
        self.refresh_count += 1
        self.state = TokenState.AUTHORIZED
        self.logger.info(
            f"Obtained access token version {self._version} "
            f"for credential {self.credential_fingerprint[:8]}"
        )

    def _request_token(self) -> Dict[str, Any]:
        if self.session is None:
            self.session = requests.Session()

        form = {
            'grant_type': self.GRANT_TYPE,
            'client_id': self.client_id,
            'client_secret': self.client_secret,
        }

        try:
            response = self.session.post(
                self.token_url, data=form, cert=self.cert, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Token request to {self.token_url} failed: {e}")
            raise AuthError(f"Token request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            self.logger.error(
                "Unsuccessful response while retrieving OAuth token, verify your "
                f"credentials. Status code: {response.status_code}"
            )
            raise AuthError(
                f"Token endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthError(
                "Token endpoint returned a body that is not JSON",
                status_code=response.status_code,
            ) from e

        if not isinstance(payload, dict) or not payload.get('access_token'):
            self.logger.error("OAuth token response did not contain an 'access_token' property")
            raise AuthError(
                "Token response did not contain an 'access_token' property",
                status_code=response.status_code,
            )

        return payload
