"""
Credit package catalog.

Suggested bundles plus a synthetic package covering exactly the shortfall
when an action needs more credits than the user holds.
"""

from decimal import ROUND_HALF_UP, Decimal

from pawbook.config import settings
from pawbook.exceptions import ValidationError
from pawbook.models.domain import CreditPackage

# Suggested packages shown in the purchase dialog (1 credit = 1 cent)
SUGGESTED_PACKAGES: tuple[CreditPackage, ...] = (
    CreditPackage(credits=250, price=Decimal("2.50")),
    CreditPackage(credits=500, price=Decimal("5.00"), popular=True),
    CreditPackage(credits=1000, price=Decimal("10.00")),
)

_CENT = Decimal("0.01")


def price_for(credits: int) -> Decimal:
    """Price of a credit amount at the configured per-credit rate."""
    return (settings.price_per_credit * credits).quantize(_CENT, rounding=ROUND_HALF_UP)


def shortfall(required_credits: int, current_balance: int) -> int:
    """Credits missing to cover a requirement, never negative."""
    return max(0, required_credits - current_balance)


def build_packages(required_credits: int = 0, current_balance: int = 0) -> list[CreditPackage]:
    """
    List purchasable packages.

    When the requirement exceeds the balance, a package for exactly the
    missing credits is listed first.
    """
    missing = shortfall(required_credits, current_balance)
    packages = list(SUGGESTED_PACKAGES)
    if missing > 0:
        packages.insert(
            0,
            CreditPackage(credits=missing, price=price_for(missing), is_shortfall=True),
        )
    return packages


def validate_custom_amount(value: int | str | None) -> int:
    """
    Validate a user-entered credit amount.

    Args:
        value: Integer or numeric string from an input field

    Returns:
        The amount as an int

    Raises:
        ValidationError: If the amount is not an integer in 1..max_credit_purchase
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError("creditAmount", "Credit amount is required")

    if isinstance(value, str):
        value = value.strip()
        try:
            amount = int(value)
        except ValueError:
            raise ValidationError("creditAmount", f"Invalid credit amount: {value!r}") from None
    elif isinstance(value, int):
        amount = value
    else:
        raise ValidationError("creditAmount", f"Invalid credit amount: {value!r}")

    if amount <= 0:
        raise ValidationError("creditAmount", "Credit amount must be positive")
    if amount > settings.max_credit_purchase:
        raise ValidationError(
            "creditAmount",
            f"Credit amount cannot exceed {settings.max_credit_purchase}",
        )
    return amount


def format_price(price: Decimal) -> str:
    """Format a price for display, e.g. Decimal('2.5') -> '$2.50'."""
    quantized = price.quantize(_CENT, rounding=ROUND_HALF_UP)
    symbol = "$" if settings.currency == "USD" else f"{settings.currency} "
    return f"{symbol}{quantized:,.2f}"
