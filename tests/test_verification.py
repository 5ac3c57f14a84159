"""
Tests for the purchase verification reconciler.

The central property: at most one confirmation request per session
identifier, however many times the hosting view calls verify().
"""

import asyncio
import json

import httpx
import pytest
from conftest import envelope, garbled_gzip_response

from pawbook.models.domain import Failed, LoginRequired, Pending, Verified
from pawbook.services.balance_cache import BALANCE_PATH, BalanceCache
from pawbook.services.verification import (
    VERIFY_PATH,
    PurchaseVerifier,
    VerificationState,
    session_id_from_url,
)

VERIFIED_DATA = {"creditsAdded": 500, "newBalance": 750}


def backend_handler(verify_response, calls, balance_amount=750):
    """Answer verify and balance requests, counting verify calls."""

    def _handler(request):
        if request.url.path == VERIFY_PATH:
            calls.append(json.loads(request.content))
            return verify_response(request)
        if request.url.path == BALANCE_PATH:
            return envelope({"amount": balance_amount})
        return httpx.Response(404)

    return _handler


@pytest.fixture
def verify_calls():
    return []


@pytest.fixture
def verifier_factory(backend_factory, balance_cache, users, notifier):
    def _create(handler, user_accessor=None):
        return PurchaseVerifier(
            backend_factory(handler), balance_cache, user_accessor or users, notifier=notifier
        )

    return _create


class TestVerify:
    @pytest.mark.asyncio
    async def test_success_updates_balance_and_notifies(self, verifier_factory, verify_calls, balance_cache, notifier):
        verifier = verifier_factory(backend_handler(lambda r: envelope(VERIFIED_DATA), verify_calls))

        outcome = await verifier.verify("cs_1")

        assert outcome == Verified(session_id="cs_1", credits_added=500, new_balance=750)
        assert verify_calls == [{"sessionId": "cs_1"}]
        assert balance_cache.amount == 750
        assert verifier.state("cs_1") is VerificationState.VERIFIED
        notifier.success.assert_called_once_with("credits.purchaseSuccess")

    @pytest.mark.asyncio
    async def test_missing_session_id_fails_without_request(self, verifier_factory, verify_calls):
        verifier = verifier_factory(backend_handler(lambda r: envelope(VERIFIED_DATA), verify_calls))

        outcome = await verifier.verify(None)

        assert isinstance(outcome, Failed)
        assert outcome.reason == "missing_session_id"
        assert verify_calls == []

    @pytest.mark.asyncio
    async def test_no_user_requires_login(self, verifier_factory, verify_calls, anonymous_users):
        verifier = verifier_factory(
            backend_handler(lambda r: envelope(VERIFIED_DATA), verify_calls),
            user_accessor=anonymous_users,
        )

        outcome = await verifier.verify("cs_1", return_to="/credits/success?session_id=cs_1")

        assert outcome == LoginRequired(return_to="/credits/success?session_id=cs_1")
        assert verify_calls == []
        assert verifier.state("cs_1") is VerificationState.NOT_STARTED

    @pytest.mark.asyncio
    async def test_repeat_after_success_is_noop(self, verifier_factory, verify_calls):
        verifier = verifier_factory(backend_handler(lambda r: envelope(VERIFIED_DATA), verify_calls))

        first = await verifier.verify("cs_1")
        second = await verifier.verify("cs_1")

        assert len(verify_calls) == 1
        assert second == first

    @pytest.mark.asyncio
    async def test_concurrent_calls_issue_one_request(self, backend_factory, balance_cache, users, verify_calls):
        release = asyncio.Event()

        async def handler(request):
            if request.url.path == VERIFY_PATH:
                verify_calls.append(request.url.path)
                await release.wait()
                return envelope(VERIFIED_DATA)
            return envelope({"amount": 750})

        verifier = PurchaseVerifier(backend_factory(handler), balance_cache, users)

        tasks = [asyncio.create_task(verifier.verify("cs_1")) for _ in range(5)]
        await asyncio.sleep(0)
        release.set()
        outcomes = await asyncio.gather(*tasks)

        assert len(verify_calls) == 1
        assert sum(isinstance(o, Verified) for o in outcomes) == 1
        assert all(isinstance(o, (Verified, Pending)) for o in outcomes)

    @pytest.mark.asyncio
    async def test_state_is_verifying_while_in_flight(self, backend_factory, balance_cache, users):
        release = asyncio.Event()

        async def handler(request):
            await release.wait()
            return envelope(VERIFIED_DATA if request.url.path == VERIFY_PATH else {"amount": 750})

        verifier = PurchaseVerifier(backend_factory(handler), balance_cache, users)
        task = asyncio.create_task(verifier.verify("cs_1"))
        await asyncio.sleep(0)

        assert verifier.state("cs_1") is VerificationState.VERIFYING
        assert await verifier.verify("cs_1") == Pending(session_id="cs_1")

        release.set()
        await task
        assert verifier.state("cs_1") is VerificationState.VERIFIED

    @pytest.mark.asyncio
    async def test_failure_clears_latch_and_allows_retry(self, verifier_factory, verify_calls, balance_cache, notifier):
        responses = iter(
            [
                httpx.Response(400, json={"success": False, "message": "Payment not completed"}),
                envelope(VERIFIED_DATA),
            ]
        )
        verifier = verifier_factory(backend_handler(lambda r: next(responses), verify_calls))

        failed = await verifier.verify("cs_1")
        assert isinstance(failed, Failed)
        assert verifier.state("cs_1") is VerificationState.FAILED
        assert balance_cache.balance is None
        notifier.error.assert_called_once_with("Payment not completed")

        retried = await verifier.verify("cs_1")
        assert isinstance(retried, Verified)
        assert len(verify_calls) == 2

    @pytest.mark.asyncio
    async def test_network_failure_is_failed_outcome(self, verifier_factory, verify_calls):
        def raise_connect(request):
            raise httpx.ConnectError("down", request=request)

        verifier = verifier_factory(backend_handler(raise_connect, verify_calls))
        outcome = await verifier.verify("cs_1")
        assert isinstance(outcome, Failed)

    @pytest.mark.asyncio
    async def test_undecodable_response_fails_and_allows_retry(self, verifier_factory, verify_calls):
        responses = iter([garbled_gzip_response(), envelope(VERIFIED_DATA)])
        verifier = verifier_factory(backend_handler(lambda r: next(responses), verify_calls))

        outcome = await verifier.verify("cs_1")
        assert isinstance(outcome, Failed)
        assert verifier.state("cs_1") is VerificationState.FAILED

        retried = await verifier.verify("cs_1")
        assert isinstance(retried, Verified)
        assert len(verify_calls) == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_releases_latch(self, backend_factory, users, verify_calls):
        class BrokenCache(BalanceCache):
            def apply_verified(self, amount):
                raise RuntimeError("cache exploded")

        handler = backend_handler(lambda r: envelope(VERIFIED_DATA), verify_calls)
        verifier = PurchaseVerifier(backend_factory(handler), BrokenCache(), users)

        with pytest.raises(RuntimeError, match="cache exploded"):
            await verifier.verify("cs_1")

        assert verifier.state("cs_1") is VerificationState.FAILED
        assert verifier.outcome("cs_1") == Failed(session_id="cs_1", reason="cache exploded")
        with pytest.raises(RuntimeError):
            await verifier.verify("cs_1")
        assert len(verify_calls) == 2

    @pytest.mark.asyncio
    async def test_refresh_failure_does_not_undo_verification(self, backend_factory, balance_cache, users):
        def handler(request):
            if request.url.path == VERIFY_PATH:
                return envelope(VERIFIED_DATA)
            return httpx.Response(500, json={"message": "Server error"})

        verifier = PurchaseVerifier(backend_factory(handler), balance_cache, users)
        outcome = await verifier.verify("cs_1")

        assert isinstance(outcome, Verified)
        assert balance_cache.amount == 750

    @pytest.mark.asyncio
    async def test_cancelled_verification_can_run_again(self, backend_factory, balance_cache, users):
        blocker = asyncio.Event()

        async def handler(request):
            await blocker.wait()
            return envelope(VERIFIED_DATA)

        verifier = PurchaseVerifier(backend_factory(handler), balance_cache, users)
        task = asyncio.create_task(verifier.verify("cs_1"))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert verifier.state("cs_1") is VerificationState.NOT_STARTED
        assert verifier.outcome("cs_1") is None


class TestReturnUrl:
    def test_session_id_from_url(self):
        assert session_id_from_url("https://app/credits/success?session_id=cs_9") == "cs_9"
        assert session_id_from_url("https://app/credits/success") is None
        assert session_id_from_url("https://app/credits/success?session_id=") is None

    @pytest.mark.asyncio
    async def test_verify_from_return_url(self, verifier_factory, verify_calls):
        verifier = verifier_factory(backend_handler(lambda r: envelope(VERIFIED_DATA), verify_calls))
        outcome = await verifier.verify_from_return_url("https://app/credits/success?session_id=cs_7")
        assert isinstance(outcome, Verified)
        assert verify_calls == [{"sessionId": "cs_7"}]
