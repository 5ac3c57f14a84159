"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class PawBookError(Exception):
    """Base exception for all client core errors."""

    pass


class UnauthenticatedError(PawBookError):
    """Raised when an operation needs a signed-in user and there is none."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Authentication required for {operation}")


class ValidationError(PawBookError):
    """Raised when client-side validation fails before any network call."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(message)


class NetworkError(PawBookError):
    """Raised when the transport fails and no response was received."""

    def __init__(self, message: str, timed_out: bool = False) -> None:
        self.message = message
        self.timed_out = timed_out
        super().__init__(f"Network error: {message}")


class ServerRejectedError(PawBookError):
    """Raised when a response arrived but was non-2xx or success=false."""

    def __init__(self, status: int, message: str, code: str | None = None) -> None:
        self.status = status
        self.message = message
        self.code = code
        super().__init__(f"Server rejected request ({status}): {message}")


class ServerError(ServerRejectedError):
    """Raised when the gated download endpoint answers with an error."""

    pass


class PaymentRequiredError(PawBookError):
    """Raised when a download is gated behind checkout."""

    def __init__(
        self,
        checkout_url: str | None,
        is_guest: bool,
        message: str | None = None,
        checkout_started: bool = False,
        required_credits: int | None = None,
    ) -> None:
        self.checkout_url = checkout_url
        self.is_guest = is_guest
        self.message = message
        self.checkout_started = checkout_started
        self.required_credits = required_credits
        super().__init__(f"Payment required: {message or 'checkout needed'}")


class CharityRequiredError(PawBookError):
    """Raised when a download is gated behind a charity choice."""

    def __init__(self, message: str | None = None) -> None:
        self.message = message
        super().__init__(f"Charity selection required: {message or 'no charity chosen'}")


class UserCancelledError(PawBookError):
    """Base for user-initiated aborts. Not a failure, no error toast."""

    pass


class DownloadCancelled(UserCancelledError):
    """Raised when the user dismisses the save-as surface."""

    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"Download of {filename} cancelled by user")


class PickerCancelled(UserCancelledError):
    """Raised by a save-as surface that reports dismissal as an exception."""

    def __init__(self, message: str = "Save dialog dismissed") -> None:
        super().__init__(message)


class DownloadWriteError(PawBookError):
    """Raised when the downloaded artifact could not be written locally."""

    def __init__(self, filename: str, path: str, message: str) -> None:
        self.filename = filename
        self.path = path
        self.message = message
        super().__init__(f"Could not save {filename} to {path}: {message}")


class UploadAborted(UserCancelledError):
    """Raised when the user aborts a direct-to-storage transfer."""

    def __init__(self) -> None:
        super().__init__("Upload aborted")


class CredentialError(PawBookError):
    """Raised when the upload write credential cannot be acquired."""

    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"Upload credential error ({status}): {message}")


class TransferError(PawBookError):
    """Raised when the direct write to storage fails."""

    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"Upload transfer failed ({status}): {message}")


class CommitFailedAfterUpload(PawBookError):
    """
    Raised when storage accepted the object but the record was not updated.

    The object exists at final_url; the owning record still points at the
    previous value. Callers warn rather than report a plain failure.
    """

    def __init__(self, final_url: str, cause: PawBookError) -> None:
        self.final_url = final_url
        self.cause = cause
        super().__init__(f"Upload succeeded but could not be saved: {cause}")
