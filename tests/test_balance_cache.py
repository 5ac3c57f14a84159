"""
Tests for the balance cache.
"""

import asyncio
from datetime import UTC, datetime

import httpx
import pytest
from conftest import envelope

from pawbook.exceptions import NetworkError, PawBookError
from pawbook.services.balance_cache import BALANCE_PATH, BalanceCache


class TestReads:
    def test_never_loaded(self, balance_cache):
        assert balance_cache.balance is None
        assert balance_cache.amount == 0

    def test_apply_verified_sets_timestamp(self):
        fixed = datetime(2024, 5, 1, tzinfo=UTC)
        cache = BalanceCache(clock=lambda: fixed)
        balance = cache.apply_verified(750)
        assert balance.amount == 750
        assert balance.last_refreshed_at == fixed
        assert cache.amount == 750

    def test_rejects_negative_verified_balance(self, balance_cache):
        balance_cache.apply_verified(10)
        with pytest.raises(ValueError):
            balance_cache.apply_verified(-1)
        assert balance_cache.amount == 10


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_reads_amount(self, balance_cache, backend_factory, recording_handler, recorded_requests):
        client = backend_factory(recording_handler(lambda request: envelope({"amount": 42})))
        balance = await balance_cache.refresh(client)
        assert balance.amount == 42
        assert recorded_requests[0].url.path == BALANCE_PATH

    @pytest.mark.asyncio
    async def test_refresh_accepts_balance_key(self, balance_cache, backend_factory):
        client = backend_factory(lambda request: envelope({"balance": 9}))
        assert (await balance_cache.refresh(client)).amount == 9

    @pytest.mark.asyncio
    async def test_failed_refresh_leaves_cache(self, balance_cache, backend_factory):
        balance_cache.apply_verified(5)

        def handler(request):
            raise httpx.ConnectError("down", request=request)

        with pytest.raises(NetworkError):
            await balance_cache.refresh(backend_factory(handler))
        assert balance_cache.amount == 5

    @pytest.mark.asyncio
    async def test_negative_server_balance_leaves_cache(self, balance_cache, backend_factory):
        balance_cache.apply_verified(5)
        with pytest.raises(PawBookError):
            await balance_cache.refresh(backend_factory(lambda request: envelope({"amount": -3})))
        assert balance_cache.amount == 5

    @pytest.mark.asyncio
    async def test_stale_refresh_does_not_overwrite_verified_balance(self, balance_cache, backend_factory):
        release = asyncio.Event()

        async def handler(request):
            await release.wait()
            return envelope({"amount": 100})

        client = backend_factory(handler)
        refresh = asyncio.create_task(balance_cache.refresh(client))
        await asyncio.sleep(0)
        balance_cache.apply_verified(600)
        release.set()

        result = await refresh
        assert result.amount == 600
        assert balance_cache.amount == 600


class TestSubscribe:
    def test_listener_notified_after_write(self, balance_cache):
        seen = []
        unsubscribe = balance_cache.subscribe(lambda balance: seen.append(balance.amount))
        balance_cache.apply_verified(1)
        unsubscribe()
        balance_cache.apply_verified(2)
        assert seen == [1]
