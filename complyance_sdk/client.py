"""
HTTP client for the GETS Unify API.

Posts serialized UnifyRequest bodies over a requests.Session and maps
HTTP and transport failures onto APIError with the matching ErrorCode.
Foreground sends run through RetryStrategy and the shared CircuitBreaker;
the queue poller uses ``dispatch`` for a single attempt per poll cycle.
"""

import logging
from typing import Any, Optional

import requests

from .errors import APIError, ErrorCode, ErrorDetail
from .models import Environment, UnifyRequest
from .resilience.circuit_breaker import CircuitBreaker
from .resilience.retry import RetryConfig, RetryStrategy

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60          # read timeout, seconds
DEFAULT_CONNECT_TIMEOUT = 10
DEFAULT_RETRY_AFTER = 60
MAX_BODY_IN_CONTEXT = 2000

# status -> (code, retryable)
_STATUS_ERRORS: dict[int, tuple[ErrorCode, bool]] = {
    400: (ErrorCode.VALIDATION_FAILED, False),
    401: (ErrorCode.AUTHENTICATION_FAILED, False),
    403: (ErrorCode.AUTHORIZATION_FAILED, False),
    404: (ErrorCode.API_ERROR, False),
    422: (ErrorCode.VALIDATION_FAILED, False),
    429: (ErrorCode.RATE_LIMIT_EXCEEDED, True),
    500: (ErrorCode.SERVER_ERROR, True),
    502: (ErrorCode.SERVICE_UNAVAILABLE, True),
    503: (ErrorCode.SERVICE_UNAVAILABLE, True),
    504: (ErrorCode.TIMEOUT_ERROR, True),
}

_SUGGESTIONS = {
    ErrorCode.VALIDATION_FAILED: "Check the request payload against the API requirements.",
    ErrorCode.AUTHENTICATION_FAILED: "Check that your API key is valid.",
    ErrorCode.AUTHORIZATION_FAILED: "Your API key does not have access to this resource.",
    ErrorCode.RATE_LIMIT_EXCEEDED: "Too many requests. Wait before retrying.",
    ErrorCode.SERVER_ERROR: "The server encountered an error. The request will be retried.",
    ErrorCode.SERVICE_UNAVAILABLE: "The service is temporarily unavailable. Please try again later.",
    ErrorCode.TIMEOUT_ERROR: "The server timed out. The request will be retried.",
}


def _parse_retry_after(value: Optional[str]) -> int:
    try:
        return int(value) if value else DEFAULT_RETRY_AFTER
    except ValueError:
        return DEFAULT_RETRY_AFTER


def error_from_response(response: requests.Response) -> APIError:
    """Build an APIError for a non-2xx HTTP response."""
    status = response.status_code
    code, retryable = _STATUS_ERRORS.get(
        status,
        (ErrorCode.SERVER_ERROR, True) if status >= 500 else (ErrorCode.API_ERROR, False),
    )

    body = response.text or ""
    message = f"HTTP {status} from Unify API"
    try:
        data = response.json()
        if isinstance(data, dict):
            api_error = data.get("error") if isinstance(data.get("error"), dict) else {}
            message = api_error.get("message") or data.get("message") or message
    except ValueError:
        pass

    detail = ErrorDetail(
        code=code,
        message=message,
        suggestion=_SUGGESTIONS.get(code, "Check the API response for details."),
        retryable=retryable,
        context={"httpStatus": status, "responseBody": body[:MAX_BODY_IN_CONTEXT]},
    )
    if code == ErrorCode.RATE_LIMIT_EXCEEDED:
        detail.retry_after_seconds = _parse_retry_after(response.headers.get("Retry-After"))
    return APIError(detail)


class APIClient:
    """
    Sends requests to the Unify endpoint.

    Usage:
        client = APIClient(api_key, Environment.SANDBOX, RetryConfig(), shared_cb)
        response = client.send_unify_request(request)
    """

    def __init__(
        self,
        api_key: str,
        environment: Environment,
        retry_config: RetryConfig = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        correlation_id: Optional[str] = None,
    ):
        self.api_key = api_key
        self.environment = environment
        self.base_url = environment.base_url
        self.circuit_breaker = circuit_breaker
        self.retry_strategy = RetryStrategy(retry_config or RetryConfig(), circuit_breaker)
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.correlation_id = correlation_id
        self.session = session or requests.Session()

    def _headers(self, request_id: Optional[str], correlation_id: Optional[str]) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "Origin": "SDK",
        }
        if request_id:
            headers["X-Request-ID"] = request_id
        correlation_id = correlation_id or self.correlation_id
        if correlation_id:
            headers["X-Correlation-ID"] = correlation_id
        return headers

    def dispatch(self, body: dict[str, Any]) -> dict[str, Any]:
        """
        Single POST of an already serialized request body.

        Raises:
            APIError: Transport failure, non-2xx status or non-JSON body
        """
        request_id = body.get("requestId")
        headers = self._headers(request_id, body.get("correlationId"))

        try:
            response = self.session.post(
                self.base_url,
                json=body,
                headers=headers,
                timeout=(self.connect_timeout, self.timeout),
            )
        except requests.Timeout as e:
            raise APIError(ErrorDetail(
                code=ErrorCode.TIMEOUT_ERROR,
                message=f"Request timed out: {e}",
                suggestion="The request timed out. It will be retried.",
                retryable=True,
            )) from e
        except requests.RequestException as e:
            raise APIError(ErrorDetail.network_error(f"Network error: {e}")) from e

        if response.status_code >= 400:
            error = error_from_response(response)
            logger.warning(
                f"Unify API returned HTTP {response.status_code} for {request_id}: {error.detail.message}"
            )
            raise error

        try:
            data = response.json()
        except ValueError as e:
            raise APIError(ErrorDetail.api_error(
                "Unify API returned a non-JSON response",
                http_status=response.status_code,
                responseBody=(response.text or "")[:MAX_BODY_IN_CONTEXT],
            )) from e

        if not isinstance(data, dict):
            raise APIError(ErrorDetail.api_error(
                "Unify API returned an unexpected response shape",
                http_status=response.status_code,
            ))
        return data

    def send_unify_request(self, request: UnifyRequest) -> dict[str, Any]:
        """Send with retries and circuit breaker protection."""
        body = request.to_dict()
        logger.info(
            f"Sending {body['documentType']} for {body['country']} "
            f"(request {request.request_id}) to {self.base_url}"
        )
        return self.retry_strategy.execute(lambda: self.dispatch(body), "send_unify_request")

    def close(self) -> None:
        self.session.close()
