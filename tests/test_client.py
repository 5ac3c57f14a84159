"""
Tests for the PawBookClient composition root.
"""

import httpx
import pytest
from conftest import BASE_URL, envelope

from pawbook.client import PawBookClient
from pawbook.services.http_client import BackendClient


@pytest.mark.asyncio
async def test_services_share_backend_and_balance(users, redirect, notifier):
    def handler(request):
        if request.url.path == "/api/credits/verify-purchase":
            return envelope({"creditsAdded": 100, "newBalance": 300})
        return envelope({"amount": 300})

    http_client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    backend = BackendClient(base_url=BASE_URL, http_client=http_client)

    async with PawBookClient(users=users, redirect=redirect, notifier=notifier, backend=backend) as client:
        assert client.purchases.client is backend
        assert client.downloads.purchases is client.purchases
        assert client.uploads.client is backend

        await client.verifier.verify("cs_1")
        assert client.balance.amount == 300

    assert http_client.is_closed
