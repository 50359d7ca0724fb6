"""Pydantic model for a prospective patron (the "card").

A ``CandidateRecord`` is owned by exactly one pipeline run.  Validation
stages record field-level problems in ``errors``; ptype, expiration,
agency and barcode are only set once validation has succeeded.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from patron_creator import constants
from patron_creator.models.address import Address
from patron_creator.models.patron import VarField
from patron_creator.models.policy import LocationFacts, Policy, PolicyDecision, PolicyType, get_policy

BIRTHDATE_FORMATS: tuple[str, ...] = ("%m/%d/%Y", "%Y-%m-%d")

CARD_CREATED_MESSAGE: str = "Your library card has been created."


class Location(str, Enum):
    """Where the web application believes the applicant is."""

    NYC = "nyc"
    NYS = "nys"
    US = "us"
    UNKNOWN = ""


class CandidateRecord(BaseModel):
    """A library-card application moving through validation and creation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = ""
    address: Address | None = None
    work_address: Address | None = None
    username: str = ""
    pin: str = ""
    email: str = ""
    birthdate: date | None = None
    age_gate: bool = False
    accept_terms: bool = False
    policy_type: PolicyType = PolicyType.STANDARD_RESIDENT
    home_library_code: str = constants.DEFAULT_HOME_LIBRARY_CODE
    ecommunications_pref: bool = False
    var_fields: list[VarField] = []
    location: Location = Location.UNKNOWN
    patron_agency: str | None = None
    username_has_been_validated: bool = False

    # Set while processing
    errors: dict[str, str] = {}
    valid: bool = False
    ptype: int | None = None
    expiration_date: date | None = None
    expiration_days: int | None = None
    agency: str | None = None
    temporary: bool = False
    barcode: str | None = None
    patron_id: int | None = None

    @field_validator("birthdate", mode="before")
    @classmethod
    def _parse_birthdate(cls, value: Any) -> Any:
        if value in (None, ""):
            return None
        if isinstance(value, str):
            for fmt in BIRTHDATE_FORMATS:
                try:
                    return datetime.strptime(value.strip(), fmt).date()
                except ValueError:
                    continue
        return value

    @field_validator("home_library_code", mode="before")
    @classmethod
    def _default_home_library(cls, value: Any) -> Any:
        return value or constants.DEFAULT_HOME_LIBRARY_CODE

    @field_validator("location", mode="before")
    @classmethod
    def _normalize_location(cls, value: Any) -> Any:
        if value is None:
            return Location.UNKNOWN
        if isinstance(value, str):
            value = value.strip().lower()
            if value not in {member.value for member in Location}:
                return Location.UNKNOWN
        return value

    @property
    def policy(self) -> Policy:
        return get_policy(self.policy_type)

    def requires(self, field: str) -> bool:
        return self.policy.is_required(field)

    def age_on(self, today: date) -> int | None:
        if self.birthdate is None:
            return None
        born = self.birthdate
        age = today.year - born.year
        if (today.month, today.day) < (born.month, born.day):
            age -= 1
        return age

    # -- Location --

    def works_in_city(self) -> bool:
        return self.work_address is not None and self.work_address.in_city()

    def lives_in_country(self) -> bool | None:
        if self.location is not Location.UNKNOWN:
            return True
        if self.address is None or not self.address.state.strip():
            return None
        return self.address.in_country()

    def location_facts(self) -> LocationFacts:
        address = self.address or Address()
        return LocationFacts(
            lives_in_city=address.in_city(),
            lives_in_state=address.in_state(),
            lives_in_country=self.lives_in_country(),
            works_in_city=self.works_in_city(),
            residential=address.is_residential,
            validated=address.has_been_validated,
            work_address_residential=(
                self.work_address.is_residential if self.work_address is not None else None
            ),
        )

    # -- Results --

    def apply_decision(self, decision: PolicyDecision, today: date) -> None:
        self.ptype = decision.ptype
        self.agency = decision.agency
        self.temporary = decision.temporary
        self.expiration_days = decision.expiration_days
        self.expiration_date = today + timedelta(days=decision.expiration_days)
        self.valid = True

    def valid_for_ils(self) -> bool:
        return self.valid and self.ptype is not None

    def set_patron_id(self, link: str) -> int:
        """Record the patron id carried as the last segment of *link*."""
        self.patron_id = int(link.rstrip("/").rsplit("/", 1)[-1])
        return self.patron_id

    def temporary_reason(self) -> str:
        if self.address is not None and self.address.is_residential is not True:
            return "address"
        if self.work_address is not None and self.work_address.is_residential:
            return "work address"
        return "personal information"

    def message(self) -> str:
        if not self.temporary:
            return CARD_CREATED_MESSAGE
        days = self.expiration_days or self.policy.horizons["temporary"]
        return (
            f"Your library card is temporary because your {self.temporary_reason()} "
            f"could not be verified. Visit your local NYPL branch within {days} days "
            "to upgrade to a standard card."
        )

    def details(self) -> dict[str, Any]:
        details: dict[str, Any] = {
            "barcode": self.barcode,
            "username": self.username,
            "pin": self.pin,
            "temporary": self.temporary,
            "message": self.message(),
            "ptype": self.ptype,
            "expiration_date": self.expiration_date.isoformat() if self.expiration_date else None,
        }
        if self.patron_id is not None:
            details["patron_id"] = self.patron_id
        return details
