"""
Direct Upload Pipeline - user images straight to object storage.

Three phases, each failing with its own error:

1. acquire   backend issues a short-lived write URL and the final public URL
             (CredentialError)
2. transfer  PUT the bytes directly to storage with progress and abort
             (TransferError, UploadAborted)
3. commit    backend records the final URL on the owning record
             (CommitFailedAfterUpload: the object exists, the record is stale)

Validation runs before phase 1 and never touches the network.
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx
from structlog import get_logger

from pawbook.config import settings
from pawbook.exceptions import (
    CommitFailedAfterUpload,
    CredentialError,
    NetworkError,
    PawBookError,
    ServerRejectedError,
    TransferError,
    UnauthenticatedError,
    UploadAborted,
    ValidationError,
)
from pawbook.models.api import UploadUrlData, UploadUrlRequest
from pawbook.models.domain import ImageFile, UploadSession
from pawbook.observability.metrics import metrics
from pawbook.observability.tracing import trace_operation
from pawbook.services.collaborators import (
    Notifier,
    ProgressCallback,
    Translate,
    UserAccessor,
    identity_translate,
)
from pawbook.services.error_messages import report_error
from pawbook.services.http_client import BackendClient, parse_data

logger = get_logger(__name__)

NO_FILE_MESSAGE = "No file selected"
INVALID_TYPE_MESSAGE = "Invalid file type. Only JPG and PNG files are allowed."
TOO_LARGE_MESSAGE = "File size too large. Maximum size is 5MB."


@dataclass(frozen=True)
class UploadTarget:
    """Where an upload gets its credential and where the result is recorded."""

    name: str
    upload_url_path: str
    commit_path: str
    url_field: str


AVATAR_TARGET = UploadTarget(
    name="avatar",
    upload_url_path="/api/user/avatar/upload-url",
    commit_path="/api/user/avatar",
    url_field="avatarUrl",
)


def character_portrait_target(character_id: str) -> UploadTarget:
    """Upload target for a character's portrait image."""
    if not character_id:
        raise ValueError("character_id cannot be empty")
    return UploadTarget(
        name="character_portrait",
        upload_url_path=f"/api/characters/{character_id}/image/upload-url",
        commit_path=f"/api/characters/{character_id}/image",
        url_field="imageUrl",
    )


def validate_image_file(file: ImageFile | None) -> ImageFile:
    """
    Check type and size before anything is sent.

    Raises:
        ValidationError: Missing file, type not JPEG/PNG, or over the size limit
    """
    if file is None or (not file.data and not file.content_type):
        raise ValidationError("file", NO_FILE_MESSAGE)
    if file.content_type.lower() not in settings.allowed_upload_types:
        raise ValidationError("file", INVALID_TYPE_MESSAGE)
    if file.size > settings.upload_max_bytes:
        raise ValidationError("file", TOO_LARGE_MESSAGE)
    return file


class UploadPipeline:
    """Acquire, transfer and commit user images."""

    def __init__(
        self,
        client: BackendClient,
        users: UserAccessor,
        transfer_client: httpx.AsyncClient | None = None,
        notifier: Notifier | None = None,
        translate: Translate = identity_translate,
        chunk_size: int | None = None,
    ) -> None:
        self.client = client
        self.users = users
        self._transfer_client = transfer_client
        self.notifier = notifier
        self.translate = translate
        self.chunk_size = chunk_size or settings.upload_chunk_size

    @property
    def transfer_client(self) -> httpx.AsyncClient:
        """Storage client. Carries no application credentials."""
        if self._transfer_client is None:
            self._transfer_client = httpx.AsyncClient(timeout=settings.request_timeout_seconds)
        return self._transfer_client

    # ========================================================================
    # Phase 1 - acquire
    # ========================================================================

    async def acquire(self, target: UploadTarget, content_type: str) -> UploadSession:
        """
        Request a write credential for one upload.

        Raises:
            CredentialError: Backend refused or could not be reached
        """
        request = UploadUrlRequest(content_type=content_type)
        try:
            data = await self.client.request_json(
                "POST", target.upload_url_path, json=request.model_dump(by_alias=True)
            )
            parsed = parse_data(UploadUrlData, data)
        except ServerRejectedError as exc:
            metrics.record_upload("acquire", "failed")
            raise CredentialError(exc.status, exc.message) from exc
        except UnauthenticatedError as exc:
            metrics.record_upload("acquire", "failed")
            raise CredentialError(401, str(exc)) from exc
        except NetworkError as exc:
            metrics.record_upload("acquire", "failed")
            raise CredentialError(0, exc.message) from exc

        final_url = parsed.final_url(target.url_field)
        if not final_url:
            metrics.record_upload("acquire", "failed")
            raise CredentialError(200, f"Upload credential missing {target.url_field}")

        metrics.record_upload("acquire", "ok")
        logger.info("upload_credential_acquired", target=target.name, content_type=content_type)
        return UploadSession(
            content_type=content_type,
            upload_url=parsed.upload_url,
            final_url=final_url,
        )

    # ========================================================================
    # Phase 2 - transfer
    # ========================================================================

    async def transfer(
        self,
        session: UploadSession,
        file: ImageFile,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """
        PUT the file to the credential's URL.

        Progress percentages are non-decreasing; a zero-byte file reports
        none, and 100 is not guaranteed before this returns. Setting
        cancel_event aborts the transfer.

        Raises:
            UploadAborted: cancel_event was set
            TransferError: Storage refused, could not be reached, or sent an
                unreadable response
        """
        total = file.size

        async def body() -> AsyncIterator[bytes]:
            sent = 0
            for start in range(0, total, self.chunk_size):
                if cancel_event is not None and cancel_event.is_set():
                    raise UploadAborted()
                chunk = file.data[start : start + self.chunk_size]
                yield chunk
                sent += len(chunk)
                if on_progress is not None:
                    on_progress(sent / total * 100)

        headers = {
            "Content-Type": session.content_type,
            "Content-Length": str(total),
            "ACL": "public-read",
        }

        try:
            response = await self.transfer_client.put(
                session.upload_url, content=body(), headers=headers
            )
        except UploadAborted:
            metrics.record_upload("transfer", "aborted")
            logger.warning("upload_aborted", size=total)
            raise
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            metrics.record_upload("transfer", "failed")
            logger.error("upload_transfer_error", error=str(exc), error_type=type(exc).__name__)
            raise TransferError(0, "Upload error") from exc

        if cancel_event is not None and cancel_event.is_set():
            metrics.record_upload("transfer", "aborted")
            logger.warning("upload_aborted", size=total)
            raise UploadAborted()

        if not response.is_success:
            metrics.record_upload("transfer", "failed")
            logger.error("upload_transfer_rejected", status=response.status_code)
            raise TransferError(response.status_code, "Upload failed")

        metrics.record_upload("transfer", "ok", size=total)
        logger.info("upload_transferred", size=total)

    # ========================================================================
    # Phase 3 - commit
    # ========================================================================

    async def commit(self, target: UploadTarget, session: UploadSession) -> Any:
        """
        Record the final URL on the owning record.

        Raises:
            NetworkError, UnauthenticatedError, ServerRejectedError
        """
        data = await self.client.request_json(
            "PUT", target.commit_path, json={target.url_field: session.final_url}
        )
        metrics.record_upload("commit", "ok")
        logger.info("upload_committed", target=target.name)
        return data

    # ========================================================================
    # Whole pipeline
    # ========================================================================

    async def upload(
        self,
        file: ImageFile | None,
        target: UploadTarget = AVATAR_TARGET,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Any:
        """
        Validate, acquire, transfer and commit one image.

        Returns:
            The commit response data (the updated record)

        Raises:
            ValidationError: Before any network call
            UnauthenticatedError: No signed-in user
            CredentialError, TransferError, UploadAborted: Phase 1 or 2
            CommitFailedAfterUpload: Phase 3 failed after phase 2 succeeded
        """
        try:
            return await self._run(file, target, on_progress, cancel_event)
        except PawBookError as exc:
            report_error(exc, self.notifier, self.translate, f"upload_{target.name}")
            raise

    async def upload_avatar(
        self,
        file: ImageFile | None,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Any:
        return await self.upload(file, AVATAR_TARGET, on_progress, cancel_event)

    async def _run(
        self,
        file: ImageFile | None,
        target: UploadTarget,
        on_progress: ProgressCallback | None,
        cancel_event: asyncio.Event | None,
    ) -> Any:
        checked = validate_image_file(file)

        if self.users.current_user() is None:
            raise UnauthenticatedError(f"{target.name} upload")

        with trace_operation("image_upload", target=target.name, size=checked.size):
            session = await self.acquire(target, checked.content_type)
            await self.transfer(session, checked, on_progress, cancel_event)
            try:
                return await self.commit(target, session)
            except PawBookError as exc:
                metrics.record_upload("commit", "failed")
                logger.error(
                    "upload_commit_failed_after_transfer",
                    target=target.name,
                    final_url=session.final_url,
                    error=str(exc),
                )
                raise CommitFailedAfterUpload(session.final_url, exc) from exc

    async def close(self) -> None:
        """Close storage client."""
        if self._transfer_client:
            await self._transfer_client.aclose()
