"""
PawBook Client - composition root for the credit and content-delivery core.

Builds every service around one credentialed backend client and one storage
client, and closes both on exit:

    async with PawBookClient(users=session, redirect=browser) as client:
        await client.purchases.start_checkout(500)
"""

from types import TracebackType

import httpx

from pawbook.config import settings
from pawbook.observability import get_logger, setup_logging, setup_tracing
from pawbook.services.balance_cache import BalanceCache
from pawbook.services.charities import CharityService
from pawbook.services.collaborators import (
    CharitySelector,
    CheckoutPrompt,
    CheckoutRedirect,
    Notifier,
    SaveFilePicker,
    SessionCredentials,
    Translate,
    UserAccessor,
    identity_translate,
)
from pawbook.services.download import DirectorySaver, DownloadNegotiator, LocalSaver
from pawbook.services.http_client import BackendClient
from pawbook.services.purchase import PurchaseOrchestrator
from pawbook.services.upload import UploadPipeline
from pawbook.services.verification import PurchaseVerifier

setup_logging()
logger = get_logger(__name__)

_tracing_configured = False


def _setup_tracing_once() -> None:
    global _tracing_configured
    if not _tracing_configured:
        setup_tracing()
        _tracing_configured = True


class PawBookClient:
    """Wires the client core services together."""

    def __init__(
        self,
        users: UserAccessor,
        redirect: CheckoutRedirect,
        notifier: Notifier | None = None,
        translate: Translate = identity_translate,
        checkout_prompt: CheckoutPrompt | None = None,
        charity_selector: CharitySelector | None = None,
        save_picker: SaveFilePicker | None = None,
        credentials: SessionCredentials | None = None,
        backend: BackendClient | None = None,
        transfer_client: httpx.AsyncClient | None = None,
    ) -> None:
        _setup_tracing_once()

        self.backend = backend or BackendClient(credentials=credentials)
        self.balance = BalanceCache()
        self.purchases = PurchaseOrchestrator(
            self.backend, users, redirect, notifier=notifier, translate=translate
        )
        self.verifier = PurchaseVerifier(
            self.backend, self.balance, users, notifier=notifier, translate=translate
        )
        self.downloads = DownloadNegotiator(
            self.backend,
            users,
            saver=LocalSaver(picker=save_picker, fallback=DirectorySaver(settings.download_dir)),
            purchases=self.purchases,
            redirect=redirect,
            checkout_prompt=checkout_prompt,
            charity_selector=charity_selector,
            notifier=notifier,
            translate=translate,
        )
        self.uploads = UploadPipeline(
            self.backend,
            users,
            transfer_client=transfer_client,
            notifier=notifier,
            translate=translate,
        )
        self.charities = CharityService(self.backend)

    async def __aenter__(self) -> "PawBookClient":
        logger.info(
            "client_starting",
            service=settings.service_name,
            version=settings.client_version,
            api_base_url=self.backend.base_url,
            tracing_enabled=settings.tracing_enabled,
            metrics_enabled=settings.metrics_enabled,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Close backend and storage clients."""
        logger.info("client_shutting_down")
        await self.backend.close()
        await self.uploads.close()
        logger.info("client_closed")
