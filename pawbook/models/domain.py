"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
Tagged variants are plain frozen dataclasses joined in a union alias and
discriminated with isinstance().
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from pathlib import Path


@dataclass(frozen=True)
class CurrentUser:
    """Signed-in user as exposed by the auth collaborator."""

    user_id: str
    email: str | None = None

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValueError("user_id cannot be empty")


@dataclass(frozen=True)
class CreditBalance:
    """Last-known credit balance."""

    amount: int
    last_refreshed_at: datetime

    def __post_init__(self) -> None:
        """Validate balance constraints."""
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError(f"Balance must be an integer: {self.amount!r}")
        if self.amount < 0:
            raise ValueError(f"Balance cannot be negative: {self.amount}")


@dataclass(frozen=True)
class RegenerationAllowance:
    """Free-regeneration quota for one book. Derived, never stored."""

    page_count: int
    free_limit: int
    used: int

    def __post_init__(self) -> None:
        if self.used < 0:
            raise ValueError(f"Used regenerations cannot be negative: {self.used}")

    @property
    def remaining(self) -> int:
        return max(0, self.free_limit - self.used)

    @property
    def has_exceeded_limit(self) -> bool:
        return self.remaining == 0


@dataclass(frozen=True)
class CreditPackage:
    """Purchasable credit bundle. Computed, not persisted."""

    credits: int
    price: Decimal
    popular: bool = False
    is_shortfall: bool = False

    def __post_init__(self) -> None:
        """Validate package configuration."""
        if self.credits <= 0:
            raise ValueError(f"Credits must be positive: {self.credits}")
        if self.price < 0:
            raise ValueError(f"Price cannot be negative: {self.price}")


@dataclass(frozen=True)
class PurchaseSession:
    """Checkout session issued by the payment processor via the backend."""

    session_id: str
    credit_amount: int
    checkout_url: str

    def __post_init__(self) -> None:
        if not self.session_id:
            raise ValueError("session_id cannot be empty")
        if self.credit_amount <= 0:
            raise ValueError(f"Credit amount must be positive: {self.credit_amount}")
        if not self.checkout_url:
            raise ValueError("checkout_url cannot be empty")


# ============================================================================
# Verification Outcome (tagged variant)
# ============================================================================


@dataclass(frozen=True)
class Pending:
    """Verification in flight, or not yet resolved."""

    session_id: str


@dataclass(frozen=True)
class Verified:
    """Backend confirmed the purchase and credited the account."""

    session_id: str
    credits_added: int | None
    new_balance: int | None


@dataclass(frozen=True)
class Failed:
    """Verification could not be completed. Retry is allowed."""

    session_id: str | None
    reason: str


@dataclass(frozen=True)
class LoginRequired:
    """No signed-in user; the caller should route to login and come back."""

    return_to: str


VerificationOutcome = Pending | Verified | Failed | LoginRequired


# ============================================================================
# Download Negotiation (tagged variant)
# ============================================================================


@dataclass(frozen=True)
class Binary:
    """The protected artifact itself."""

    artifact: bytes
    content_type: str


@dataclass(frozen=True)
class PaymentRequired:
    """Server withheld the artifact until checkout completes."""

    checkout_url: str | None
    is_guest: bool
    message: str | None = None
    required_credits: int | None = None


@dataclass(frozen=True)
class CharityRequired:
    """Server withheld the artifact until a charity is chosen."""

    message: str | None = None


@dataclass(frozen=True)
class DownloadRejected:
    """Server answered with an error instead of the artifact."""

    status: int
    message: str


DownloadNegotiation = Binary | PaymentRequired | CharityRequired | DownloadRejected


@dataclass(frozen=True)
class DownloadResult:
    """Where a downloaded artifact ended up on the local filesystem."""

    path: Path
    filename: str
    size: int
    via_picker: bool


# ============================================================================
# Uploads
# ============================================================================


@dataclass(frozen=True)
class ImageFile:
    """User-selected image to upload."""

    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class UploadSession:
    """Short-lived write credential for one upload call. Never persisted."""

    content_type: str
    upload_url: str
    final_url: str

    def __post_init__(self) -> None:
        if not self.upload_url:
            raise ValueError("upload_url cannot be empty")
        if not self.final_url:
            raise ValueError("final_url cannot be empty")


@dataclass(frozen=True)
class Charity:
    """Charity a download's proceeds can be directed to."""

    charity_id: str
    name: str
    description: str | None = None
