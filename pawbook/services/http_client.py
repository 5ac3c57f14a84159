"""
Backend HTTP client - credentialed requests and envelope unwrapping.

Every request carries the session credentials held by the underlying
httpx.AsyncClient (cookie jar and auth headers). Responses are unwrapped
from the {success, data, message} envelope into typed errors.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from structlog import get_logger

from pawbook.config import settings
from pawbook.exceptions import NetworkError, ServerRejectedError, UnauthenticatedError
from pawbook.models.api import ApiEnvelope
from pawbook.observability.metrics import track_backend_request
from pawbook.services.collaborators import SessionCredentials

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def generic_status_message(status: int) -> str:
    """Fallback message when an error body carries none."""
    return f"HTTP error! status: {status}"


def parse_json_body(response: httpx.Response) -> Any:
    """Parse a response body as JSON, or None when it is not JSON."""
    try:
        return response.json()
    except ValueError:
        return None


def error_from_response(response: httpx.Response) -> ServerRejectedError:
    """Build a ServerRejectedError from a non-2xx or success=false response."""
    payload = parse_json_body(response)
    message = generic_status_message(response.status_code)
    code = None
    if isinstance(payload, dict):
        try:
            envelope = ApiEnvelope.model_validate(payload)
        except PydanticValidationError:
            envelope = None
        if envelope is not None:
            message = envelope.error_message or message
            code = envelope.any_code
    return ServerRejectedError(response.status_code, message, code=code)


def parse_data(model: type[ModelT], data: Any, status: int = 200) -> ModelT:
    """
    Validate envelope data against a model.

    Raises:
        ServerRejectedError: If the backend sent a malformed payload
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        logger.error(
            "backend_payload_invalid",
            model=model.__name__,
            errors=exc.error_count(),
        )
        raise ServerRejectedError(status, f"Malformed {model.__name__} payload") from exc


class BackendClient:
    """Credentialed client for the PawBook backend."""

    def __init__(
        self,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        credentials: SessionCredentials | None = None,
    ) -> None:
        self.base_url = base_url or settings.api_base_url
        self._http_client = http_client
        self.credentials = credentials

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=settings.request_timeout_seconds,
            )
        return self._http_client

    def _auth_headers(self) -> dict[str, str] | None:
        if self.credentials is None:
            return None
        return self.credentials.headers()

    async def request_json(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        """
        Issue a JSON request and return the envelope's data.

        Raises:
            NetworkError: No usable response (transport, decoding or redirect failure)
            UnauthenticatedError: Backend answered 401
            ServerRejectedError: Non-2xx, success=false, or a non-envelope body
        """
        with track_backend_request(path, method) as tracker:
            try:
                response = await self.http_client.request(
                    method, path, json=json, params=params, headers=self._auth_headers()
                )
            except httpx.TimeoutException as exc:
                logger.warning("backend_request_timeout", method=method, path=path)
                raise NetworkError(f"Request timeout: {exc}", timed_out=True) from exc
            except httpx.RequestError as exc:
                logger.warning(
                    "backend_request_failed",
                    method=method,
                    path=path,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise NetworkError(str(exc) or type(exc).__name__) from exc
            tracker.set_status_code(response.status_code)

        logger.debug("backend_request", method=method, path=path, status=response.status_code)
        return self._unwrap(method, path, response)

    def _unwrap(self, method: str, path: str, response: httpx.Response) -> Any:
        if response.status_code == 401:
            logger.warning("backend_request_unauthenticated", method=method, path=path)
            raise UnauthenticatedError(f"{method} {path}")

        if not response.is_success:
            error = error_from_response(response)
            logger.error(
                "backend_request_rejected",
                method=method,
                path=path,
                status=error.status,
                message=error.message,
                code=error.code,
            )
            raise error

        payload = parse_json_body(response)
        if not isinstance(payload, dict):
            logger.error("backend_response_not_envelope", method=method, path=path)
            raise ServerRejectedError(response.status_code, "Invalid response body")

        envelope = parse_data(ApiEnvelope, payload, response.status_code)
        if not envelope.success:
            message = envelope.error_message or "Request failed"
            logger.error(
                "backend_request_unsuccessful",
                method=method,
                path=path,
                status=response.status_code,
                message=message,
            )
            raise ServerRejectedError(response.status_code, message, code=envelope.any_code)
        return envelope.data

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
    ) -> AsyncIterator[httpx.Response]:
        """
        Open a streamed request for raw (possibly binary) responses.

        The body is not read; callers decide how to consume it after looking
        at the headers. Transport failures while reading surface as
        NetworkError as well.
        """
        with track_backend_request(path, method) as tracker:
            try:
                async with self.http_client.stream(
                    method, path, params=params, headers=self._auth_headers()
                ) as response:
                    tracker.set_status_code(response.status_code)
                    yield response
            except httpx.TimeoutException as exc:
                logger.warning("backend_stream_timeout", method=method, path=path)
                raise NetworkError(f"Request timeout: {exc}", timed_out=True) from exc
            except httpx.RequestError as exc:
                logger.warning(
                    "backend_stream_failed",
                    method=method,
                    path=path,
                    error=str(exc),
                )
                raise NetworkError(str(exc) or type(exc).__name__) from exc

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
