"""
Charity listing - choices offered when a download needs a charity.
"""

from typing import Any

from structlog import get_logger

from pawbook.exceptions import ServerRejectedError
from pawbook.models.api import CharityModel
from pawbook.models.domain import Charity
from pawbook.services.http_client import BackendClient, parse_data

logger = get_logger(__name__)

CHARITIES_PATH = "/api/charities"


class CharityService:
    """Reads the enabled charities from the backend."""

    def __init__(self, client: BackendClient) -> None:
        self.client = client

    async def list_enabled(self) -> list[Charity]:
        """
        Get enabled charities.

        The backend answers with either a bare list or {"charities": [...]}.

        Raises:
            NetworkError, ServerRejectedError
        """
        data = await self.client.request_json("GET", CHARITIES_PATH)
        entries = _entries(data)
        charities = []
        for entry in entries:
            parsed = parse_data(CharityModel, entry)
            charities.append(
                Charity(
                    charity_id=parsed.charity_id,
                    name=parsed.name,
                    description=parsed.description,
                )
            )
        logger.debug("charities_listed", count=len(charities))
        return charities


def _entries(data: Any) -> list[Any]:
    if isinstance(data, dict):
        data = data.get("charities")
    if data is None:
        return []
    if not isinstance(data, list):
        logger.error("charities_payload_invalid", payload_type=type(data).__name__)
        raise ServerRejectedError(200, "Malformed charities payload")
    return data
