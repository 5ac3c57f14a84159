"""
Gated Download Negotiator - fetch a book PDF the server may withhold.

The download endpoint answers with either the PDF or a JSON negotiation
payload (checkout required, charity required, or an error). The variant is
decided by the declared content type, never by status code alone; a binary
body is never parsed as JSON and a JSON body is never saved as a file.
"""

import asyncio
import os
import re
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError
from structlog import get_logger

from pawbook.config import settings
from pawbook.exceptions import (
    CharityRequiredError,
    DownloadCancelled,
    DownloadWriteError,
    PawBookError,
    PaymentRequiredError,
    ServerError,
    UnauthenticatedError,
    UserCancelledError,
)
from pawbook.models.api import DownloadNegotiationPayload
from pawbook.models.domain import (
    Binary,
    CharityRequired,
    DownloadNegotiation,
    DownloadRejected,
    DownloadResult,
    PaymentRequired,
)
from pawbook.observability.logging import log_context
from pawbook.observability.metrics import metrics
from pawbook.observability.tracing import trace_operation
from pawbook.services.collaborators import (
    CharitySelector,
    CheckoutPrompt,
    CheckoutRedirect,
    Notifier,
    SaveFilePicker,
    Translate,
    UserAccessor,
    identity_translate,
)
from pawbook.services.error_messages import report_error
from pawbook.services.http_client import BackendClient, generic_status_message
from pawbook.services.purchase import PurchaseOrchestrator

logger = get_logger(__name__)

BINARY_CONTENT_TYPES = ("application/pdf", "application/octet-stream")
MAX_TITLE_LENGTH = 50
PAYMENT_REQUIRED_KEY = "books.paymentRequired"
PAYMENT_REQUIRED_FALLBACK = "Payment is required to download this book."

_DISALLOWED_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9\s_-]")
_WHITESPACE_RUNS = re.compile(r"\s+")


# ============================================================================
# Filenames
# ============================================================================


def generate_filename(title: str | None, book_id: str) -> str:
    """
    Build a safe PDF filename from a book title.

    Characters other than [A-Za-z0-9_-] and whitespace are dropped. Each
    whitespace run (tabs and newlines included) becomes one underscore, the
    title is cut to 50 characters and the book id is appended:
    "My Dog's Tale! 🐶" + "abc123" -> "My_Dogs_Tale_abc123.pdf".
    """
    cleaned = _DISALLOWED_FILENAME_CHARS.sub("", title or "").strip()
    cleaned = _WHITESPACE_RUNS.sub("_", cleaned)[:MAX_TITLE_LENGTH]
    if not cleaned:
        cleaned = "book"
    return f"{cleaned}_{book_id}.pdf"


def generate_book_pdf_filename(book: Mapping[str, Any] | Any) -> str:
    """Filename for a book given as a mapping or an object with title/id."""
    if isinstance(book, Mapping):
        title, book_id = book.get("title"), book.get("id") or book.get("_id")
    else:
        title, book_id = getattr(book, "title", None), getattr(book, "id", None)
    if not book_id:
        raise ValueError("Book has no id")
    return generate_filename(title, str(book_id))


# ============================================================================
# Response classification
# ============================================================================


def media_type(response: httpx.Response) -> str:
    """Declared media type without parameters, lower-cased."""
    return response.headers.get("content-type", "").split(";")[0].strip().lower()


def _is_json(media: str) -> bool:
    return media == "application/json" or media.endswith("+json")


async def classify_response(response: httpx.Response) -> DownloadNegotiation:
    """
    Turn a (streamed) download response into a negotiation variant.

    Binary content types are read as bytes only on 2xx. JSON bodies are
    inspected for requiresPayment / charityRequired whatever the status, so
    a 402 with a checkout payload is still a checkout prompt.
    """
    media = media_type(response)
    status = response.status_code

    if media in BINARY_CONTENT_TYPES:
        if not response.is_success:
            return DownloadRejected(status=status, message=generic_status_message(status))
        artifact = await response.aread()
        return Binary(artifact=artifact, content_type=media)

    if _is_json(media):
        await response.aread()
        try:
            raw = response.json()
        except ValueError:
            raw = None
        payload = None
        if isinstance(raw, dict):
            try:
                payload = DownloadNegotiationPayload.model_validate(raw)
            except PydanticValidationError:
                logger.warning("download_payload_invalid", status=status)
        if payload is not None:
            if payload.requires_payment:
                return PaymentRequired(
                    checkout_url=payload.checkout_url,
                    is_guest=payload.is_guest,
                    message=payload.message,
                    required_credits=payload.required_credits,
                )
            if payload.charity_required:
                return CharityRequired(message=payload.message)
            if payload.message:
                return DownloadRejected(status=status, message=payload.message)
        if response.is_success:
            return DownloadRejected(status=status, message="Unexpected download response")
        return DownloadRejected(status=status, message=generic_status_message(status))

    if response.is_success:
        return DownloadRejected(status=status, message=f"Unexpected content type: {media or 'none'}")
    return DownloadRejected(status=status, message=generic_status_message(status))


def _variant_name(negotiation: DownloadNegotiation) -> str:
    if isinstance(negotiation, Binary):
        return "binary"
    if isinstance(negotiation, PaymentRequired):
        return "payment_required"
    if isinstance(negotiation, CharityRequired):
        return "charity_required"
    return "error"


# ============================================================================
# Local persistence
# ============================================================================


def _unique_path(directory: Path, filename: str) -> Path:
    candidate = directory / filename
    stem, suffix = candidate.stem, candidate.suffix
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem} ({counter}){suffix}"
        counter += 1
    return candidate


def write_atomic(path: Path, data: bytes) -> None:
    """
    Write bytes through a temporary file renamed into place.

    The temporary file is removed whether the write succeeds or fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".pawbook-", suffix=".part", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)


class DirectorySaver:
    """Non-interactive saver writing into a downloads directory."""

    def __init__(self, directory: Path | None = None) -> None:
        self.directory = directory or settings.download_dir

    async def save(self, artifact: bytes, filename: str) -> DownloadResult:
        """
        Raises:
            DownloadWriteError: The directory is not writable
        """
        path = _unique_path(self.directory, filename)
        try:
            await asyncio.to_thread(write_atomic, path, artifact)
        except OSError as exc:
            logger.error("download_write_failed", path=str(path), error=str(exc))
            raise DownloadWriteError(filename, str(path), exc.strerror or str(exc)) from exc
        logger.info("download_saved", path=str(path), size=len(artifact), via_picker=False)
        return DownloadResult(path=path, filename=path.name, size=len(artifact), via_picker=False)


class LocalSaver:
    """
    Persists an artifact, preferring the interactive save surface.

    Cancelling the picker aborts the download; there is no silent fallback in
    that case. A missing or failing picker, or a failed write to the chosen
    path, falls back to the downloads directory.
    """

    def __init__(
        self,
        picker: SaveFilePicker | None = None,
        fallback: DirectorySaver | None = None,
    ) -> None:
        self.picker = picker
        self.fallback = fallback or DirectorySaver()

    async def save(self, artifact: bytes, filename: str) -> DownloadResult:
        """
        Raises:
            DownloadCancelled: The user dismissed the save surface
            DownloadWriteError: The fallback write failed too
        """
        if self.picker is not None:
            try:
                chosen = await self.picker.pick_save_path(filename)
            except UserCancelledError as exc:
                logger.info("download_cancelled_by_user", filename=filename)
                raise DownloadCancelled(filename) from exc
            except Exception as exc:
                logger.warning("save_picker_failed_using_fallback", error=str(exc))
            else:
                if chosen is None:
                    logger.info("download_cancelled_by_user", filename=filename)
                    raise DownloadCancelled(filename)
                try:
                    await asyncio.to_thread(write_atomic, chosen, artifact)
                except OSError as exc:
                    logger.warning(
                        "save_to_chosen_path_failed_using_fallback",
                        path=str(chosen),
                        error=str(exc),
                    )
                else:
                    logger.info(
                        "download_saved", path=str(chosen), size=len(artifact), via_picker=True
                    )
                    return DownloadResult(
                        path=chosen, filename=chosen.name, size=len(artifact), via_picker=True
                    )

        return await self.fallback.save(artifact, filename)


# ============================================================================
# Negotiator
# ============================================================================


class DownloadNegotiator:
    """Drives a gated book download through checkout and charity sub-flows."""

    def __init__(
        self,
        client: BackendClient,
        users: UserAccessor,
        saver: LocalSaver | None = None,
        purchases: PurchaseOrchestrator | None = None,
        redirect: CheckoutRedirect | None = None,
        checkout_prompt: CheckoutPrompt | None = None,
        charity_selector: CharitySelector | None = None,
        notifier: Notifier | None = None,
        translate: Translate = identity_translate,
    ) -> None:
        self.client = client
        self.users = users
        self.saver = saver or LocalSaver()
        self.purchases = purchases
        self.redirect = redirect
        self.checkout_prompt = checkout_prompt
        self.charity_selector = charity_selector
        self.notifier = notifier
        self.translate = translate

    async def fetch(
        self,
        book_id: str,
        session_id: str | None = None,
        charity_id: str | None = None,
    ) -> DownloadNegotiation:
        """
        Issue one credentialed download request and classify the answer.

        Guests may download with the session_id of their completed checkout;
        everyone else needs a signed-in user.

        Raises:
            UnauthenticatedError: No user and no guest session_id
            NetworkError: Transport failure
        """
        if session_id is None and self.users.current_user() is None:
            raise UnauthenticatedError("book download")

        params: dict[str, str] = {}
        if session_id:
            params["session_id"] = session_id
        if charity_id:
            params["charity_id"] = charity_id

        path = f"/api/books/{book_id}/download-pdf"
        async with self.client.stream("GET", path, params=params or None) as response:
            negotiation = await classify_response(response)

        variant = _variant_name(negotiation)
        metrics.record_download(variant)
        logger.info(
            "download_negotiated",
            book_id=book_id,
            variant=variant,
            status=response.status_code,
            with_session=session_id is not None,
            with_charity=charity_id is not None,
        )
        return negotiation

    async def download_artifact(
        self,
        book_id: str,
        filename: str | None = None,
        title: str | None = None,
        session_id: str | None = None,
        charity_id: str | None = None,
    ) -> DownloadResult:
        """
        Download a book PDF, running whichever sub-flow the server requires.

        A charity requirement blocks on the charity selector and retries once
        with the chosen charity. A payment requirement prompts for checkout,
        starts it when confirmed, and surfaces PaymentRequiredError; the
        caller retries after the user returns from checkout.

        Raises:
            UnauthenticatedError, NetworkError: See fetch()
            PaymentRequiredError: Checkout needed (expected control flow)
            CharityRequiredError: No charity chosen (expected control flow)
            ServerError: The server answered with an error
            DownloadCancelled: The user dismissed the save surface
            DownloadWriteError: The PDF could not be written locally
        """
        filename = filename or generate_filename(title, book_id)
        with log_context(book_id=book_id), trace_operation("book_download", book_id=book_id):
            try:
                return await self._negotiate(book_id, filename, session_id, charity_id)
            except (PaymentRequiredError, CharityRequiredError):
                raise
            except PawBookError as exc:
                report_error(exc, self.notifier, self.translate, "download_artifact")
                raise

    async def _negotiate(
        self,
        book_id: str,
        filename: str,
        session_id: str | None,
        charity_id: str | None,
    ) -> DownloadResult:
        negotiation = await self.fetch(book_id, session_id=session_id, charity_id=charity_id)

        if isinstance(negotiation, CharityRequired):
            if charity_id is not None or self.charity_selector is None:
                raise CharityRequiredError(negotiation.message)
            chosen = await self.charity_selector.select_charity(negotiation.message)
            if not chosen:
                logger.info("charity_selection_dismissed", book_id=book_id)
                raise CharityRequiredError(negotiation.message)
            logger.info("charity_selected_retrying", book_id=book_id, charity_id=chosen)
            negotiation = await self.fetch(book_id, session_id=session_id, charity_id=chosen)
            if isinstance(negotiation, CharityRequired):
                raise CharityRequiredError(negotiation.message)

        if isinstance(negotiation, PaymentRequired):
            self._notify_payment_required(negotiation)
            started = await self._offer_checkout(negotiation)
            raise PaymentRequiredError(
                checkout_url=negotiation.checkout_url,
                is_guest=negotiation.is_guest,
                message=negotiation.message,
                checkout_started=started,
                required_credits=negotiation.required_credits,
            )

        if isinstance(negotiation, DownloadRejected):
            raise ServerError(negotiation.status, negotiation.message)

        return await self.saver.save(negotiation.artifact, filename)

    async def checkout(self, gate: PaymentRequired | PaymentRequiredError) -> bool:
        """
        Leave for checkout so the download can be retried afterwards.

        Navigates to the server-provided checkout URL. Without one, a
        checkout session is created for the required credits.

        Returns:
            True when the user is on the way to checkout
        """
        if gate.checkout_url and self.redirect is not None:
            logger.info("redirecting_to_download_checkout", is_guest=gate.is_guest)
            self.redirect.navigate(gate.checkout_url)
            return True

        if self.purchases is not None and gate.required_credits:
            try:
                await self.purchases.start_checkout(gate.required_credits, context="book-download")
            except PawBookError as exc:
                # start_checkout already notified the user
                logger.warning("download_checkout_failed", error=str(exc))
                return False
            return True

        logger.warning("checkout_unavailable", has_url=bool(gate.checkout_url))
        return False

    async def _offer_checkout(self, negotiation: PaymentRequired) -> bool:
        """Prompt for checkout and start it on confirmation."""
        if self.checkout_prompt is None:
            return False

        if not await self.checkout_prompt.confirm_checkout(negotiation):
            logger.info("checkout_declined")
            return False

        return await self.checkout(negotiation)

    def _notify_payment_required(self, negotiation: PaymentRequired) -> None:
        if self.notifier is None:
            return
        text = self.translate(PAYMENT_REQUIRED_KEY)
        if text == PAYMENT_REQUIRED_KEY:
            text = negotiation.message or PAYMENT_REQUIRED_FALLBACK
        self.notifier.info(text)
