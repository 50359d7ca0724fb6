"""Username validation: local syntax check, then ILS availability."""

from __future__ import annotations

import logging
import re

from pydantic import BaseModel

from patron_creator.errors import BadUsername, NoILSClient
from patron_creator.ils.gateway import IdentityGateway

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9]{5,25}$")


class UsernameResponse(BaseModel):
    type: str
    message: str
    card_type: str | None = None


INVALID = UsernameResponse(
    type="invalid-username",
    message=(
        "Usernames should be 5-25 characters, letters or numbers only. "
        "Please revise your username."
    ),
)
UNAVAILABLE = UsernameResponse(
    type="unavailable-username",
    message="This username is unavailable. Please try another.",
)
AVAILABLE = UsernameResponse(
    type="available-username",
    card_type="standard",
    message="This username is available.",
)


class UsernameValidationAdapter:
    def __init__(self, gateway: IdentityGateway | None) -> None:
        self._gateway = gateway

    async def validate(self, username: str) -> UsernameResponse:
        """Return the available response, or raise ``BadUsername``."""
        if not username or not USERNAME_PATTERN.match(username):
            raise BadUsername(INVALID.message, response_type=INVALID.type)
        if self._gateway is None:
            raise NoILSClient("ILS Client not set in Username Validation API.")

        if not await self._gateway.available(username, is_barcode=False):
            logger.info("Username %s is already taken", username)
            raise BadUsername(UNAVAILABLE.message, response_type=UNAVAILABLE.type)
        return AVAILABLE
