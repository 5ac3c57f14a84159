"""
Purchase Session Orchestrator - turn a credit amount into a checkout redirect.

Creates a checkout session with the backend and hands the browsing context
to the external payment processor. Nothing is retried; failures leave the
balance cache untouched and the user re-invokes.
"""

from collections.abc import Callable

from structlog import get_logger

from pawbook.exceptions import (
    PawBookError,
    ServerRejectedError,
    UnauthenticatedError,
    ValidationError,
)
from pawbook.models.api import CreditHistoryPage, PurchaseSessionData, PurchaseSessionRequest
from pawbook.models.domain import PurchaseSession
from pawbook.observability.metrics import metrics
from pawbook.observability.tracing import trace_operation
from pawbook.services.collaborators import (
    CheckoutRedirect,
    Notifier,
    Translate,
    UserAccessor,
    identity_translate,
)
from pawbook.services.error_messages import report_error
from pawbook.services.http_client import BackendClient, parse_data

logger = get_logger(__name__)

PURCHASE_PATH = "/api/credits/purchase"
HISTORY_PATH = "/api/credits/history"


class PurchaseOrchestrator:
    """Creates checkout sessions and starts the external checkout."""

    def __init__(
        self,
        client: BackendClient,
        users: UserAccessor,
        redirect: CheckoutRedirect,
        notifier: Notifier | None = None,
        translate: Translate = identity_translate,
    ) -> None:
        self.client = client
        self.users = users
        self.redirect = redirect
        self.notifier = notifier
        self.translate = translate

    async def create_session(self, credit_amount: int, context: str = "pricing") -> PurchaseSession:
        """
        Create a checkout session for a credit amount.

        Args:
            credit_amount: Credits to buy; must be a positive integer
            context: Where the purchase started (pricing, book-creation, ...)

        Returns:
            Purchase session carrying the checkout URL

        Raises:
            ValidationError: Non-positive or non-integer amount (no network call)
            UnauthenticatedError: No signed-in user (no network call)
            NetworkError: Transport failure
            ServerRejectedError: Backend refused, or answered without a checkout URL
        """
        if isinstance(credit_amount, bool) or not isinstance(credit_amount, int):
            raise ValidationError("creditAmount", f"Invalid credit amount: {credit_amount!r}")
        if credit_amount <= 0:
            raise ValidationError("creditAmount", "Credit amount must be positive")

        user = self.users.current_user()
        if user is None:
            raise UnauthenticatedError("credit purchase")

        request = PurchaseSessionRequest(credit_amount=credit_amount, context=context)

        with trace_operation("purchase_session_create", credit_amount=credit_amount, context=context):
            logger.info(
                "creating_purchase_session",
                user_id=user.user_id,
                credit_amount=credit_amount,
                context=context,
            )
            try:
                data = await self.client.request_json(
                    "POST", PURCHASE_PATH, json=request.model_dump(by_alias=True)
                )
                parsed = parse_data(PurchaseSessionData, data)
                checkout_url = parsed.resolved_checkout_url
                if not checkout_url:
                    raise ServerRejectedError(200, "Checkout URL missing from purchase session")
            except PawBookError as exc:
                metrics.record_purchase_session("failed")
                logger.error(
                    "purchase_session_failed",
                    credit_amount=credit_amount,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise

        session = PurchaseSession(
            session_id=parsed.session_id,
            credit_amount=credit_amount,
            checkout_url=checkout_url,
        )
        metrics.record_purchase_session("created")
        logger.info(
            "purchase_session_created",
            session_id=session.session_id,
            credit_amount=credit_amount,
        )
        return session

    async def start_checkout(
        self,
        credit_amount: int,
        context: str = "pricing",
        on_purchase_start: Callable[[], None] | None = None,
    ) -> PurchaseSession:
        """
        Create a session and redirect the browsing context to checkout.

        on_purchase_start runs before the session is requested so the caller
        can stash unsaved form state; the redirect leaves the application.

        Raises:
            Same as create_session; the error is also reported to the notifier
        """
        if on_purchase_start is not None:
            on_purchase_start()

        try:
            session = await self.create_session(credit_amount, context)
        except PawBookError as exc:
            report_error(exc, self.notifier, self.translate, "start_checkout")
            raise

        logger.info("redirecting_to_checkout", session_id=session.session_id)
        self.redirect.navigate(session.checkout_url)
        return session

    async def history(self, page: int = 1, limit: int = 20) -> CreditHistoryPage:
        """
        Fetch one page of the user's credit transactions.

        Raises:
            ValidationError: page or limit below 1
            UnauthenticatedError: No signed-in user
        """
        if page < 1:
            raise ValidationError("page", "Page must be at least 1")
        if limit < 1:
            raise ValidationError("limit", "Limit must be at least 1")
        if self.users.current_user() is None:
            raise UnauthenticatedError("credit history")

        data = await self.client.request_json(
            "GET", HISTORY_PATH, params={"page": str(page), "limit": str(limit)}
        )
        return parse_data(CreditHistoryPage, data)
