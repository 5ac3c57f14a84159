"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fakes for testing the client core:
- Users and UI collaborators (notifier, redirect, prompts)
- Backend clients over httpx.MockTransport
- Envelope response builders
"""

import os
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

# Set environment variables BEFORE importing pawbook modules
os.environ.setdefault("API_BASE_URL", "http://backend.test")
os.environ.setdefault("TRACING_ENABLED", "false")

from pawbook.models.domain import CurrentUser
from pawbook.services.balance_cache import BalanceCache
from pawbook.services.http_client import BackendClient

BASE_URL = "http://backend.test"

Handler = Callable[[httpx.Request], Any]


# ============================================================================
# Response Builders
# ============================================================================


def envelope(data: Any = None, status: int = 200, success: bool = True, **extra: Any) -> httpx.Response:
    """Build a {success, data, message} envelope response."""
    body = {"success": success, "data": data, **extra}
    return httpx.Response(status, json=body)


def pdf_response(content: bytes = b"%PDF-1.4 fake", status: int = 200) -> httpx.Response:
    return httpx.Response(status, content=content, headers={"Content-Type": "application/pdf"})


def garbled_gzip_response() -> httpx.Response:
    """200 response advertising gzip whose body is not gzip."""

    async def body():
        yield b"not gzip at all"

    return httpx.Response(200, content=body(), headers={"Content-Encoding": "gzip"})


# ============================================================================
# User Fixtures
# ============================================================================


@pytest.fixture
def current_user() -> CurrentUser:
    """Signed-in user."""
    return CurrentUser(user_id="user-123", email="reader@example.com")


@pytest.fixture
def users(current_user: CurrentUser) -> MagicMock:
    """User accessor with a signed-in user."""
    accessor = MagicMock()
    accessor.current_user = MagicMock(return_value=current_user)
    return accessor


@pytest.fixture
def anonymous_users() -> MagicMock:
    """User accessor with nobody signed in."""
    accessor = MagicMock()
    accessor.current_user = MagicMock(return_value=None)
    return accessor


# ============================================================================
# Collaborator Fixtures
# ============================================================================


@pytest.fixture
def notifier() -> MagicMock:
    """Notification sink recording success/info/warning/error calls."""
    return MagicMock()


@pytest.fixture
def redirect() -> MagicMock:
    """Checkout redirect primitive."""
    return MagicMock()


@pytest.fixture
def balance_cache() -> BalanceCache:
    return BalanceCache()


# ============================================================================
# Backend Fixtures
# ============================================================================


@pytest.fixture
def backend_factory() -> Callable[[Handler], BackendClient]:
    """Factory for BackendClients answering through a handler function."""

    def _create(handler: Handler) -> BackendClient:
        http_client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        return BackendClient(base_url=BASE_URL, http_client=http_client)

    return _create


@pytest.fixture
def recorded_requests() -> list[httpx.Request]:
    """Requests seen by a handler built with recording_handler."""
    return []


@pytest.fixture
def recording_handler(
    recorded_requests: list[httpx.Request],
) -> Callable[[Callable[[httpx.Request], httpx.Response]], Handler]:
    """Wrap a handler so every request it sees is recorded."""

    def _wrap(handler: Callable[[httpx.Request], httpx.Response]) -> Handler:
        def _handler(request: httpx.Request) -> httpx.Response:
            recorded_requests.append(request)
            return handler(request)

        return _handler

    return _wrap
