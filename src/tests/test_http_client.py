"""
Test suite for RateLimitedGateway component
Following AAA pattern and descriptive naming
"""

import threading
from unittest.mock import Mock

import pytest
import requests

from payroll_sync.exceptions import (
    AuthError,
    DeserializationError,
    HttpStatusError,
    SyncCancelledError,
    TransportError,
)
from payroll_sync.http_client import APIRequest, APIResponse, RateLimitedGateway
from payroll_sync.rate_limiter import RateLimiter
from payroll_sync.token_manager import TokenLifecycleManager

BASE_URL = "https://api.adp.com/"


def _http_response(status_code=200, payload=None, text=None):
    response = Mock()
    response.status_code = status_code
    response.headers = {'Content-Type': 'application/json'}
    if payload is not None:
        response.content = b'{}'
        response.json.return_value = payload
        response.text = text or '{}'
    else:
        response.content = text.encode('utf-8') if text else b''
        response.text = text or ''
        response.json.side_effect = ValueError("No JSON object could be decoded")
    return response


def _token_session(*tokens):
    session = Mock()
    responses = []
    for token in tokens:
        response = Mock(status_code=200)
        response.json.return_value = {'access_token': token}
        responses.append(response)
    session.post.side_effect = responses
    return session


def _gateway(session, token_session=None, rate_limiter=None, cancel_event=None, cert=None):
    token_manager = TokenLifecycleManager(
        "https://accounts.adp.com/token", "client-id", "client-secret",
        session=token_session or _token_session("t1", "t2", "t3"),
    )
    return RateLimitedGateway(
        BASE_URL,
        rate_limiter or RateLimiter(0.0),
        token_manager,
        session=session,
        cert=cert,
        cancel_event=cancel_event,
    )


class TestRateLimitedGatewaySend:
    """Test suite for successful sends and response mapping"""

    def test_get_with_successful_response_returns_api_response(self):
        """
        Test that a 200 response is decoded into an APIResponse
        """
        # Arrange
        session = Mock()
        session.request.return_value = _http_response(200, {'workers': [{'associateOID': 'A1'}]})
        gateway = _gateway(session, cert="/certs/client.pem")

        # Act
        result = gateway.get("hr/v2/workers", {'$top': 100, '$skip': 0})

        # Assert
        assert isinstance(result, APIResponse)
        assert result.raw_data == {'workers': [{'associateOID': 'A1'}]}
        assert result.status_code == 200
        call_args = session.request.call_args
        assert call_args[0] == ('GET', "https://api.adp.com/hr/v2/workers")
        assert call_args[1]['params'] == {'$top': 100, '$skip': 0}
        assert call_args[1]['headers']['Authorization'] == "Bearer t1"
        assert call_args[1]['cert'] == "/certs/client.pem"

    def test_no_content_response_returns_none_data(self):
        """
        Test that a 204 response yields no data instead of a decode error
        """
        # Arrange
        session = Mock()
        session.request.return_value = _http_response(204)
        gateway = _gateway(session)

        # Act
        result = gateway.get("payroll/v1/workers/A1/us-tax-profiles")

        # Assert
        assert result.raw_data is None

    def test_invalid_json_body_raises_deserialization_error(self):
        """
        Test that an unparseable body is reported as DeserializationError
        """
        # Arrange
        session = Mock()
        session.request.return_value = _http_response(200, text="<html>maintenance</html>")
        gateway = _gateway(session)

        # Act & Assert
        with pytest.raises(DeserializationError):
            gateway.get("hr/v2/workers")

    def test_non_2xx_response_raises_http_status_error_with_status_and_body(self):
        """
        Test that a 500 keeps both the status code and the body
        """
        # Arrange
        session = Mock()
        session.request.return_value = _http_response(500, text='{"error": "boom"}')
        gateway = _gateway(session)

        # Act & Assert
        with pytest.raises(HttpStatusError) as exc_info:
            gateway.get("hr/v2/workers")

        assert exc_info.value.status_code == 500
        assert exc_info.value.body == '{"error": "boom"}'

    def test_failed_request_is_not_retried_at_gateway_level(self):
        """
        Test that a 503 is returned to the caller after a single attempt
        """
        # Arrange
        session = Mock()
        session.request.return_value = _http_response(503, text="unavailable")
        gateway = _gateway(session)

        # Act
        with pytest.raises(HttpStatusError):
            gateway.get("hr/v2/workers")

        # Assert
        assert session.request.call_count == 1

    @pytest.mark.parametrize("exception", [
        requests.exceptions.ConnectionError("refused"),
        requests.exceptions.Timeout("timed out"),
        requests.exceptions.SSLError("bad certificate"),
    ])
    def test_transport_failures_raise_transport_error(self, exception):
        """
        Test that connection, timeout and TLS failures map to TransportError
        """
        # Arrange
        session = Mock()
        session.request.side_effect = exception
        gateway = _gateway(session)

        # Act & Assert
        with pytest.raises(TransportError) as exc_info:
            gateway.get("hr/v2/workers")

        assert exc_info.value.__cause__ is exception

    def test_every_dispatch_waits_on_the_shared_rate_limiter(self):
        """
        Test that each HTTP call, including the auth resend, acquires the limiter
        """
        # Arrange
        session = Mock()
        session.request.side_effect = [_http_response(401, text=""), _http_response(200, {'ok': True})]
        limiter = Mock()
        gateway = _gateway(session, rate_limiter=limiter)

        # Act
        gateway.get("hr/v2/workers")

        # Assert
        assert limiter.acquire.call_count == 2

    def test_cancelled_gateway_raises_before_any_http_call(self):
        """
        Test that a set cancellation signal stops new requests
        """
        # Arrange
        session = Mock()
        cancel_event = threading.Event()
        cancel_event.set()
        gateway = _gateway(session, cancel_event=cancel_event)

        # Act & Assert
        with pytest.raises(SyncCancelledError):
            gateway.get("hr/v2/workers")

        session.request.assert_not_called()

    def test_cancelled_gateway_does_not_request_a_token(self):
        """
        Test that a cancelled gateway never reaches the token endpoint
        """
        # Arrange
        token_session = _token_session("t1")
        cancel_event = threading.Event()
        cancel_event.set()
        gateway = _gateway(Mock(), token_session=token_session, cancel_event=cancel_event)

        # Act & Assert
        with pytest.raises(SyncCancelledError):
            gateway.get("hr/v2/workers")

        token_session.post.assert_not_called()

    def test_context_manager_closes_session(self):
        """
        Test that leaving the context closes the HTTP session
        """
        # Arrange
        session = Mock()

        # Act
        with _gateway(session) as gateway:
            pass

        # Assert
        session.close.assert_called_once()
        assert gateway.session is None


class TestRateLimitedGatewayAuthentication:
    """Test suite for re-authorisation on 401/403"""

    def test_unauthorized_response_refreshes_token_and_resends_once(self):
        """
        Test that a 401 triggers one refresh and one resend with the new token
        """
        # Arrange
        session = Mock()
        session.request.side_effect = [_http_response(401, text=""), _http_response(200, {'ok': True})]
        token_session = _token_session("t1", "t2")
        gateway = _gateway(session, token_session=token_session)

        # Act
        result = gateway.get("hr/v2/workers")

        # Assert
        assert result.raw_data == {'ok': True}
        assert token_session.post.call_count == 2
        assert session.request.call_args[1]['headers']['Authorization'] == "Bearer t2"

    def test_unauthorized_after_refresh_raises_auth_error(self):
        """
        Test that a 401 surviving the refresh is surfaced as AuthError
        """
        # Arrange
        session = Mock()
        session.request.return_value = _http_response(401, text="")
        gateway = _gateway(session)

        # Act & Assert
        with pytest.raises(AuthError) as exc_info:
            gateway.get("hr/v2/workers")

        assert exc_info.value.status_code == 401
        assert session.request.call_count == 2

    def test_forbidden_reauthorisation_is_allowed_once_per_gateway(self):
        """
        Test that a second 403 after the one-time re-auth is not retried
        """
        # Arrange
        session = Mock()
        session.request.side_effect = [
            _http_response(403, text=""),
            _http_response(200, {'ok': True}),
            _http_response(403, text=""),
        ]
        token_session = _token_session("t1", "t2", "t3")
        gateway = _gateway(session, token_session=token_session)
        gateway.get("hr/v2/workers")

        # Act & Assert
        with pytest.raises(AuthError) as exc_info:
            gateway.get("hr/v2/workers")

        assert exc_info.value.status_code == 403
        assert token_session.post.call_count == 2
        assert session.request.call_count == 3

    def test_token_endpoint_rejection_prevents_any_resource_call(self):
        """
        Test that a 401 from the token endpoint raises AuthError before any resource request
        """
        # Arrange
        session = Mock()
        token_session = Mock()
        token_session.post.return_value = Mock(status_code=401)
        gateway = _gateway(session, token_session=token_session)

        # Act & Assert
        with pytest.raises(AuthError):
            gateway.send(APIRequest(url=gateway.build_url("hr/v2/workers")))

        session.request.assert_not_called()
