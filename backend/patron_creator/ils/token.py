"""Bearer token state for the ILS client."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable

from pydantic import BaseModel, ConfigDict

# Tokens live for an hour on the ILS side; refresh a minute early.
TOKEN_LIFETIME: timedelta = timedelta(milliseconds=3_540_000)


class TokenState(str, Enum):
    ABSENT = "absent"
    VALID = "valid"
    EXPIRED = "expired"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


Clock = Callable[[], datetime]


class IdentityToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    issued_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now - self.issued_at >= TOKEN_LIFETIME


def token_state(token: IdentityToken | None, now: datetime) -> TokenState:
    if token is None:
        return TokenState.ABSENT
    if token.is_expired(now):
        return TokenState.EXPIRED
    return TokenState.VALID
