"""Pydantic model for a patron address.

An ``Address`` is built from request input, then replaced wholesale by the
vendor-normalized copy once it has been validated.  It is frozen so nothing
mutates a validated address field by field.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

MAX_LINES_LENGTH: int = 100

ALLOWED_STATES: tuple[str, ...] = ("ny", "new york")
ALLOWED_CITIES: tuple[str, ...] = ("new york",)
ALLOWED_COUNTIES: tuple[str, ...] = ("richmond", "queens", "new york", "kings", "bronx")

US_STATE_CODES: frozenset[str] = frozenset(
    """
    AL AK AZ AR CA CO CT DE DC FL GA HI ID IL IN IA KS KY LA ME MD MA MI MN
    MS MO MT NE NV NH NJ NM NY NC ND OH OK OR PA RI SC SD TN TX UT VT VA WA
    WV WI WY AS GU MP PR VI AA AE AP
    """.split()
)

_CITY_STATE_ZIP = re.compile(
    r"^\s*(?P<city>[^,]+),\s*(?P<state>[A-Za-z]{2})\s+(?P<zip>\d{5}(?:-\d{4})?)\s*$"
)


def str_to_bool(value: Any) -> bool | None:
    """Coerce the vendor's ``"true"``/``"false"`` strings to a tri-state bool."""
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text == "true":
        return True
    if text == "false":
        return False
    return None


class Address(BaseModel):
    """Home or work address of an applicant."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    line1: str = ""
    line2: str = ""
    city: str = ""
    county: str = ""
    state: str = ""
    zip: str = ""
    is_residential: bool | None = None
    has_been_validated: bool = False
    validated_by: str | None = None

    @field_validator("line1", "line2", "city", "county", "state", "zip", mode="before")
    @classmethod
    def _blank_if_none(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("is_residential", mode="before")
    @classmethod
    def _coerce_residential(cls, value: Any) -> bool | None:
        return str_to_bool(value)

    @model_validator(mode="after")
    def _check_lines_length(self) -> Address:
        if len(self.line1) + len(self.line2) > MAX_LINES_LENGTH:
            raise ValueError(
                f"Address lines must be less than {MAX_LINES_LENGTH} characters combined"
            )
        return self

    # -- Location facts --

    def in_state(self) -> bool:
        return self.state.strip().lower() in ALLOWED_STATES

    def in_city(self) -> bool:
        city = self.city.strip().lower()
        county = self.county.strip().lower().removesuffix(" county")
        return city in ALLOWED_CITIES or county in ALLOWED_COUNTIES

    def in_country(self) -> bool:
        return self.state.strip().upper() in US_STATE_CODES or self.in_state()

    def is_empty(self) -> bool:
        return not (self.line1 or self.city or self.state or self.zip)

    def for_temporary_card(self, is_work_address: bool = False) -> bool:
        """Return True when this address only supports a temporary card.

        A residential work address or a non-residential home address is not
        enough for a standard card.
        """
        if is_work_address:
            return self.is_residential is True
        return self.is_residential is False

    # -- Conversions --

    def to_lines(self) -> list[str]:
        """Format the address as the two upper-cased lines the ILS stores."""
        street = self.line1.strip()
        if self.line2.strip():
            street = f"{street}, {self.line2.strip()}"
        locality = f"{self.city.strip()}, {self.state.strip()} {self.zip.strip()}"
        return [street.upper(), locality.strip().upper()]

    def validated_copy(self, validated_by: str, **changes: Any) -> Address:
        return self.model_copy(
            update={**changes, "has_been_validated": True, "validated_by": validated_by}
        )

    @classmethod
    def from_ils_lines(cls, lines: list[str]) -> Address | None:
        """Parse an ILS ``{lines: [...]}`` address back into a trusted copy.

        Returns ``None`` when the lines are not a street line followed by a
        ``City, ST 12345`` line.
        """
        if len(lines) < 2:
            return None
        match = _CITY_STATE_ZIP.match(lines[-1])
        if match is None:
            return None
        return cls(
            line1=", ".join(line.strip() for line in lines[:-1]),
            city=match.group("city").strip(),
            state=match.group("state").upper(),
            zip=match.group("zip"),
            has_been_validated=True,
            validated_by="ils",
        )
