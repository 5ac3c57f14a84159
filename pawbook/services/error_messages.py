"""
Error message mapping - backend errors to localized user-facing text.

Backend messages and codes map to translation keys; the host's translate
function turns keys into text. Unknown keys fall back to the backend's own
message.
"""

from structlog import get_logger

from pawbook.exceptions import (
    CharityRequiredError,
    CommitFailedAfterUpload,
    CredentialError,
    DownloadWriteError,
    NetworkError,
    PawBookError,
    PaymentRequiredError,
    ServerRejectedError,
    TransferError,
    UnauthenticatedError,
    UserCancelledError,
    ValidationError,
)
from pawbook.services.collaborators import Notifier, Translate

logger = get_logger(__name__)

GENERIC_ERROR_KEY = "errors.genericError"
COMMIT_FAILED_KEY = "errors.uploadNotSaved"
COMMIT_FAILED_FALLBACK = "Upload succeeded but could not be saved. Please try again."
SAVE_FAILED_KEY = "books.saveFailed"
SAVE_FAILED_FALLBACK = "The book could not be saved on this device."

ERROR_MESSAGE_MAP: dict[str, str] = {
    # Authentication
    "Invalid token": "errors.invalidToken",
    "Token expired": "errors.tokenExpired",
    "Session expired": "errors.sessionExpired",
    "Authentication required": "errors.authenticationRequired",
    "Access denied": "errors.accessDenied",
    "Unauthorized": "errors.unauthorized",
    "User not found": "errors.userNotFound",
    # Credits
    "Insufficient credits": "credits.insufficientCredits",
    "Invalid credit amount": "credits.invalidAmount",
    "Payment not completed": "credits.paymentNotCompleted",
    "Session not found": "credits.sessionNotFound",
    "Purchase already processed": "credits.alreadyProcessed",
    # Uploads
    "No file selected": "profile.noFileSelected",
    "Invalid file type. Only JPG and PNG files are allowed.": "profile.invalidFileType",
    "File size too large. Maximum size is 5MB.": "profile.fileTooLarge",
    # Books
    "Book not found": "books.bookNotFound",
    "PDF not available": "books.pdfNotAvailable",
    # Server
    "Internal server error": "errors.internalServerError",
    "Server error": "errors.serverError",
    "Service unavailable": "errors.serviceUnavailable",
    "Network error": "errors.networkError",
    "Request timeout": "errors.requestTimeout",
    # Rate limiting
    "Too many requests": "errors.tooManyRequests",
    "Rate limit exceeded": "errors.rateLimitExceeded",
    # Generic
    "Bad request": "errors.badRequest",
    "Not found": "errors.notFound",
    "Forbidden": "errors.forbidden",
    "Conflict": "errors.conflict",
}

ERROR_CODE_MAP: dict[str, str] = {
    "AUTH_005": "errors.sessionExpired",
    "AUTH_006": "errors.authenticationRequired",
    "TOKEN_001": "errors.invalidToken",
    "TOKEN_002": "errors.tokenExpired",
    "SERVER_001": "errors.internalServerError",
    "SERVER_002": "errors.serviceUnavailable",
    "SERVER_003": "errors.networkError",
    "RATE_001": "errors.tooManyRequests",
    "CREDIT_001": "credits.insufficientCredits",
    "CREDIT_002": "credits.invalidAmount",
    "CREDIT_003": "credits.paymentNotCompleted",
}

# (all substrings, key) checked in order on the lower-cased message
_PARTIAL_MATCHES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("insufficient", "credit"), "credits.insufficientCredits"),
    (("token", "expired"), "errors.tokenExpired"),
    (("session", "expired"), "errors.sessionExpired"),
    (("timeout",), "errors.requestTimeout"),
    (("network",), "errors.networkError"),
    (("connection",), "errors.networkError"),
    (("server",), "errors.serverError"),
    (("internal",), "errors.serverError"),
)


def map_error_to_translation_key(message: str | None, code: str | None = None) -> str:
    """Map a backend error message or code to a translation key."""
    if code and code in ERROR_CODE_MAP:
        return ERROR_CODE_MAP[code]

    if message and message in ERROR_MESSAGE_MAP:
        return ERROR_MESSAGE_MAP[message]

    lower = (message or "").lower()
    for needles, key in _PARTIAL_MATCHES:
        if all(needle in lower for needle in needles):
            return key

    return GENERIC_ERROR_KEY


def translate_error(message: str | None, code: str | None, translate: Translate) -> str:
    """Localized text for a backend error, falling back to its own message."""
    key = map_error_to_translation_key(message, code)
    translated = translate(key)
    if translated == key:
        if message:
            return message
        generic = translate(GENERIC_ERROR_KEY)
        return generic if generic != GENERIC_ERROR_KEY else "Something went wrong"
    return translated


def describe_error(exc: PawBookError, translate: Translate) -> str:
    """User-facing text for any client core error."""
    if isinstance(exc, NetworkError):
        return translate_error(
            "Request timeout" if exc.timed_out else "Network error", None, translate
        )

    if isinstance(exc, CommitFailedAfterUpload):
        translated = translate(COMMIT_FAILED_KEY)
        return COMMIT_FAILED_FALLBACK if translated == COMMIT_FAILED_KEY else translated

    if isinstance(exc, DownloadWriteError):
        translated = translate(SAVE_FAILED_KEY)
        return SAVE_FAILED_FALLBACK if translated == SAVE_FAILED_KEY else translated

    if isinstance(exc, UnauthenticatedError):
        return translate_error("Authentication required", None, translate)

    if isinstance(exc, (ServerRejectedError, CredentialError, TransferError)):
        return translate_error(exc.message, getattr(exc, "code", None), translate)

    if isinstance(exc, ValidationError):
        return translate_error(exc.message, None, translate)

    if isinstance(exc, (PaymentRequiredError, CharityRequiredError)):
        return translate_error(exc.message, None, translate)

    return translate_error(None, None, translate)


def report_error(
    exc: PawBookError,
    notifier: Notifier | None,
    translate: Translate,
    operation: str,
) -> None:
    """
    Surface an error through the notification sink.

    User cancellations are logged quietly and never shown. A commit failure
    after a successful upload is a warning, not an error.
    """
    if isinstance(exc, UserCancelledError):
        logger.info("operation_cancelled_by_user", operation=operation)
        return

    if notifier is None:
        return

    text = describe_error(exc, translate)
    if isinstance(exc, CommitFailedAfterUpload):
        notifier.warning(text)
    else:
        notifier.error(text)
