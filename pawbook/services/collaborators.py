"""
Collaborator Protocols - The narrow contracts the UI layer provides.

The client core never renders anything, navigates, or looks up strings on
its own. Whatever hosts it (a desktop shell, a test, a web bridge) supplies
objects implementing these protocols.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from pawbook.models.domain import CurrentUser, PaymentRequired

# Translation function: key -> localized text. Returns the key when unknown.
Translate = Callable[[str], str]

# Upload progress observer: percentage in [0, 100].
ProgressCallback = Callable[[float], None]


def identity_translate(key: str) -> str:
    """Translator used when the host supplies none."""
    return key


class UserAccessor(Protocol):
    """Authenticated-user accessor."""

    def current_user(self) -> CurrentUser | None:
        """Return the signed-in user, or None for guests."""
        ...


class Notifier(Protocol):
    """Transient notification (toast) sink."""

    def success(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class CheckoutRedirect(Protocol):
    """Full navigation of the browsing context to an external URL."""

    def navigate(self, url: str) -> None:
        """
        Leave the application for the given URL.

        This is a full-page redirect, not an in-app transition; the external
        processor runs its own flow and later returns to the app.
        """
        ...


class CheckoutPrompt(Protocol):
    """Asks the user whether to proceed to checkout for a gated download."""

    async def confirm_checkout(self, negotiation: PaymentRequired) -> bool: ...


class CharitySelector(Protocol):
    """Charity-selection UI."""

    async def select_charity(self, message: str | None) -> str | None:
        """
        Let the user pick a charity.

        Returns:
            Charity identifier, or None when the user dismissed the dialog
        """
        ...


class SaveFilePicker(Protocol):
    """Interactive "save as" surface of the host environment."""

    async def pick_save_path(self, suggested_name: str) -> Path | None:
        """
        Ask the user where to save a file.

        Returns:
            Chosen path, or None when the user cancelled

        Raises:
            PickerCancelled: Also means the user cancelled
            Any other exception when the surface is unavailable or broken
        """
        ...


class SessionCredentials(Protocol):
    """Session credentials attached to every backend request."""

    def headers(self) -> dict[str, str]:
        """Current auth headers (bearer token, session cookie, ...)."""
        ...
