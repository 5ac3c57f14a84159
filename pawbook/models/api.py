"""
API Models - Pydantic models for backend request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
The backend speaks camelCase; fields are snake_case with aliases.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BackendModel(BaseModel):
    """Base for backend payloads - camelCase aliases, unknown keys ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ApiEnvelope(BackendModel):
    """Uniform response envelope {success, data, message}."""

    success: bool = True
    data: Any = None
    message: str | None = None
    error: str | None = None
    code: str | None = Field(None, alias="code")
    error_code: str | None = Field(None, alias="errorCode")

    @property
    def error_message(self) -> str | None:
        return self.message or self.error

    @property
    def any_code(self) -> str | None:
        return self.code or self.error_code


# ============================================================================
# Credit Purchase Models
# ============================================================================


class PurchaseSessionRequest(BackendModel):
    """POST /api/credits/purchase request body."""

    credit_amount: int = Field(..., alias="creditAmount", gt=0)
    context: str = Field("pricing", min_length=1)


class PurchaseSessionData(BackendModel):
    """POST /api/credits/purchase response data."""

    session_id: str = Field(..., alias="sessionId", min_length=1)
    checkout_url: str | None = Field(None, alias="checkoutUrl")
    url: str | None = None

    @property
    def resolved_checkout_url(self) -> str | None:
        """Checkout URL, accepting the legacy `url` key."""
        return self.checkout_url or self.url


class VerifyPurchaseRequest(BackendModel):
    """POST /api/credits/verify-purchase request body."""

    session_id: str = Field(..., alias="sessionId", min_length=1)


class CreditTransaction(BackendModel):
    """One credit ledger entry as reported by the backend."""

    transaction_id: str | None = Field(None, alias="id")
    transaction_type: str | None = Field(None, alias="type")
    amount: int
    description: str | None = None
    balance_after: int | None = Field(None, alias="balanceAfter")
    created_at: datetime | None = Field(None, alias="createdAt")


class VerifyPurchaseData(BackendModel):
    """POST /api/credits/verify-purchase response data."""

    credits_added: int | None = Field(None, alias="creditsAdded", ge=0)
    new_balance: int | None = Field(None, alias="newBalance", ge=0)
    transaction: CreditTransaction | None = None


class BalanceData(BackendModel):
    """GET /api/credits/balance response data."""

    amount: int | None = Field(None, ge=0)
    balance: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def require_amount(self) -> "BalanceData":
        if self.amount is None and self.balance is None:
            raise ValueError("balance response carries neither amount nor balance")
        return self

    @property
    def resolved_amount(self) -> int:
        return self.amount if self.amount is not None else self.balance  # type: ignore[return-value]


class Pagination(BackendModel):
    """Pagination block of list responses."""

    current_page: int = Field(1, alias="currentPage")
    total_pages: int = Field(1, alias="totalPages")
    total_transactions: int = Field(0, alias="totalTransactions")
    has_next_page: bool = Field(False, alias="hasNextPage")
    has_prev_page: bool = Field(False, alias="hasPrevPage")


class CreditHistoryPage(BackendModel):
    """GET /api/credits/history response data."""

    transactions: list[CreditTransaction] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


# ============================================================================
# Gated Download Models
# ============================================================================


class DownloadNegotiationPayload(BackendModel):
    """JSON body returned by the download endpoint instead of the PDF."""

    requires_payment: bool = Field(False, alias="requiresPayment")
    is_guest: bool = Field(False, alias="isGuest")
    checkout_url: str | None = Field(None, alias="checkoutUrl")
    required_credits: int | None = Field(None, alias="requiredCredits", gt=0)
    charity_required: bool = Field(False, alias="charityRequired")
    message: str | None = None
    success: bool | None = None


# ============================================================================
# Upload Models
# ============================================================================


class UploadUrlRequest(BackendModel):
    """POST .../upload-url request body."""

    content_type: str = Field(..., alias="contentType", min_length=1)


class UploadUrlData(BackendModel):
    """POST .../upload-url response data."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    upload_url: str = Field(..., alias="uploadUrl", min_length=1)

    def final_url(self, field: str) -> str | None:
        """Public URL under the target-specific key, or the generic finalUrl."""
        extra = self.model_extra or {}
        value = extra.get(field) or extra.get("finalUrl")
        return value if isinstance(value, str) and value else None


# ============================================================================
# Charity Models
# ============================================================================


class CharityModel(BackendModel):
    """Entry of GET /api/charities."""

    charity_id: str = Field(..., alias="_id")
    name: str
    description: str | None = None

    @model_validator(mode="before")
    @classmethod
    def accept_plain_id(cls, values: Any) -> Any:
        if isinstance(values, dict):
            raw_id = values.get("_id", values.get("id"))
            if raw_id is not None:
                values = {**values, "_id": str(raw_id)}
        return values
