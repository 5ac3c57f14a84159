"""
Purchase Verification Reconciler - confirm a returned checkout exactly once.

When the user comes back from the payment processor, the hosting view calls
verify() with the session identifier from the return URL. The view may fire
that more than once (re-mount, repeated effects, re-navigation); at most one
confirmation request per session identifier is issued for the lifetime of
this object.

State per session identifier:

    NOT_STARTED -> VERIFYING -> VERIFIED   (terminal, latch kept)
                             -> FAILED     (latch cleared, retry allowed)

The latch is a plain set checked and written synchronously before the first
await, so two calls scheduled back to back cannot both reach the network.
No locks, no polling, no automatic retry.
"""

import asyncio
from enum import Enum
from urllib.parse import parse_qs, urlsplit

from structlog import get_logger

from pawbook.exceptions import PawBookError
from pawbook.models.api import VerifyPurchaseData, VerifyPurchaseRequest
from pawbook.models.domain import (
    Failed,
    LoginRequired,
    Pending,
    VerificationOutcome,
    Verified,
)
from pawbook.observability.metrics import metrics
from pawbook.observability.tracing import trace_operation
from pawbook.services.balance_cache import BalanceCache
from pawbook.services.collaborators import (
    Notifier,
    Translate,
    UserAccessor,
    identity_translate,
)
from pawbook.services.error_messages import report_error
from pawbook.services.http_client import BackendClient, parse_data

logger = get_logger(__name__)

VERIFY_PATH = "/api/credits/verify-purchase"
SESSION_ID_PARAM = "session_id"
MISSING_SESSION_REASON = "missing_session_id"


class VerificationState(str, Enum):
    """Lifecycle of one session identifier."""

    NOT_STARTED = "not_started"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    FAILED = "failed"


def session_id_from_url(url: str) -> str | None:
    """Read the session identifier from a checkout return URL."""
    values = parse_qs(urlsplit(url).query).get(SESSION_ID_PARAM)
    if not values:
        return None
    return values[0] or None


class PurchaseVerifier:
    """Verifies completed checkouts, at most once per session identifier."""

    def __init__(
        self,
        client: BackendClient,
        balance_cache: BalanceCache,
        users: UserAccessor,
        notifier: Notifier | None = None,
        translate: Translate = identity_translate,
    ) -> None:
        self.client = client
        self.balance_cache = balance_cache
        self.users = users
        self.notifier = notifier
        self.translate = translate
        self._attempted: set[str] = set()
        self._states: dict[str, VerificationState] = {}
        self._outcomes: dict[str, VerificationOutcome] = {}

    def state(self, session_id: str) -> VerificationState:
        return self._states.get(session_id, VerificationState.NOT_STARTED)

    def outcome(self, session_id: str) -> VerificationOutcome | None:
        """Latest outcome for a session identifier, if any attempt was made."""
        return self._outcomes.get(session_id)

    async def verify_from_return_url(self, url: str) -> VerificationOutcome:
        """Verify using the session identifier carried by a return URL."""
        split = urlsplit(url)
        return_to = split.path + (f"?{split.query}" if split.query else "")
        return await self.verify(session_id_from_url(url), return_to=return_to)

    async def verify(
        self, session_id: str | None, return_to: str = "/credits/success"
    ) -> VerificationOutcome:
        """
        Confirm a completed checkout with the backend.

        Args:
            session_id: Identifier from the return URL
            return_to: Where login should send the user back to

        Returns:
            Failed when the identifier is missing or confirmation failed,
            LoginRequired when nobody is signed in, Pending when another call
            already owns this identifier, Verified on success
        """
        if not session_id:
            logger.warning("verification_missing_session_id")
            return Failed(session_id=None, reason=MISSING_SESSION_REASON)

        if self.users.current_user() is None:
            logger.info("verification_requires_login", session_id=session_id)
            return LoginRequired(return_to=return_to)

        if session_id in self._attempted:
            logger.info(
                "verification_skipped_already_attempted",
                session_id=session_id,
                state=self.state(session_id).value,
            )
            return self._outcomes.get(session_id, Pending(session_id=session_id))

        # Latch before the first await
        self._attempted.add(session_id)
        self._states[session_id] = VerificationState.VERIFYING
        self._outcomes[session_id] = Pending(session_id=session_id)

        with trace_operation("purchase_verification", session_id=session_id):
            try:
                verified = await self._confirm(session_id)
            except PawBookError as exc:
                return self._fail(session_id, exc)
            except Exception as exc:
                # Unexpected error: release the latch so the user can retry
                self._release(session_id, str(exc) or type(exc).__name__)
                logger.exception("purchase_verification_crashed", session_id=session_id)
                raise
            except asyncio.CancelledError:
                # Hosting view went away mid-flight; nothing was decided
                self._attempted.discard(session_id)
                self._states[session_id] = VerificationState.NOT_STARTED
                self._outcomes.pop(session_id, None)
                raise

        self._states[session_id] = VerificationState.VERIFIED
        self._outcomes[session_id] = verified
        metrics.record_verification("verified")
        logger.info(
            "purchase_verified",
            session_id=session_id,
            credits_added=verified.credits_added,
            new_balance=verified.new_balance,
        )
        if self.notifier is not None:
            self.notifier.success(self.translate("credits.purchaseSuccess"))

        await self._refresh_balance(session_id)
        return verified

    async def _confirm(self, session_id: str) -> Verified:
        request = VerifyPurchaseRequest(session_id=session_id)
        data = await self.client.request_json(
            "POST", VERIFY_PATH, json=request.model_dump(by_alias=True)
        )
        parsed = parse_data(VerifyPurchaseData, data)
        if parsed.new_balance is not None:
            self.balance_cache.apply_verified(parsed.new_balance)
        return Verified(
            session_id=session_id,
            credits_added=parsed.credits_added,
            new_balance=parsed.new_balance,
        )

    def _release(self, session_id: str, reason: str) -> Failed:
        self._attempted.discard(session_id)
        self._states[session_id] = VerificationState.FAILED
        failed = Failed(session_id=session_id, reason=reason)
        self._outcomes[session_id] = failed
        metrics.record_verification("failed")
        return failed

    def _fail(self, session_id: str, exc: PawBookError) -> Failed:
        failed = self._release(session_id, str(exc))
        logger.error(
            "purchase_verification_failed",
            session_id=session_id,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        report_error(exc, self.notifier, self.translate, "verify_purchase")
        return failed

    async def _refresh_balance(self, session_id: str) -> None:
        """Follow-up balance fetch; the verification already succeeded."""
        try:
            await self.balance_cache.refresh(self.client)
        except PawBookError as exc:
            logger.warning(
                "balance_refresh_after_verification_failed",
                session_id=session_id,
                error=str(exc),
            )
