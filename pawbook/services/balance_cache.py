"""
Balance Cache - Last-known credit balance.

Single-writer discipline: only purchase verification (apply_verified) and an
explicit refresh() write it. Reads never block on the network and may be
stale. The balance is never decremented optimistically.
"""

from collections.abc import Callable
from datetime import UTC, datetime

from structlog import get_logger

from pawbook.models.api import BalanceData
from pawbook.models.domain import CreditBalance
from pawbook.services.http_client import BackendClient, parse_data

logger = get_logger(__name__)

BALANCE_PATH = "/api/credits/balance"

BalanceListener = Callable[[CreditBalance], None]


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class BalanceCache:
    """Holds the user's last-known credit balance."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or _utc_now
        self._balance: CreditBalance | None = None
        self._generation = 0
        self._listeners: list[BalanceListener] = []

    @property
    def balance(self) -> CreditBalance | None:
        """Last-known balance, or None if never loaded."""
        return self._balance

    @property
    def amount(self) -> int:
        """Last-known credit amount, 0 if never loaded."""
        return self._balance.amount if self._balance is not None else 0

    def subscribe(self, listener: BalanceListener) -> Callable[[], None]:
        """
        Register a listener called after every write.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def apply_verified(self, new_balance: int) -> CreditBalance:
        """Store the balance reported by a successful purchase verification."""
        return self._write(new_balance, source="verification")

    async def refresh(self, client: BackendClient) -> CreditBalance:
        """
        Fetch the balance from the backend and store it.

        If another write lands while this request is in flight, the older
        response is discarded and the current value is returned.

        Raises:
            NetworkError, ServerRejectedError: The fetch failed; cache untouched
        """
        generation = self._generation
        data = await client.request_json("GET", BALANCE_PATH)
        parsed = parse_data(BalanceData, data)

        if generation != self._generation and self._balance is not None:
            logger.info(
                "balance_refresh_discarded_stale",
                fetched=parsed.resolved_amount,
                current=self._balance.amount,
            )
            return self._balance

        return self._write(parsed.resolved_amount, source="refresh")

    def _write(self, amount: int, source: str) -> CreditBalance:
        balance = CreditBalance(amount=amount, last_refreshed_at=self._clock())
        previous = self._balance.amount if self._balance is not None else None
        self._balance = balance
        self._generation += 1

        logger.info("balance_updated", source=source, previous=previous, amount=amount)

        for listener in list(self._listeners):
            listener(balance)
        return balance
