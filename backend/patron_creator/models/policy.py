"""Card policies and the location facts they are evaluated against."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from patron_creator import constants
from patron_creator.errors import InvalidRequest


class PolicyType(str, Enum):
    STANDARD_RESIDENT = "simplye"
    WEB_APPLICANT = "webApplicant"
    DEPENDENT_JUVENILE = "simplyeJuvenile"


class Policy(BaseModel):
    """Immutable description of one card policy."""

    model_config = ConfigDict(frozen=True)

    policy_type: PolicyType
    agency: str
    ptypes: dict[str, int]
    horizons: dict[str, int]
    required_fields: frozenset[str] = frozenset()
    minimum_age: int | None = None
    service_area: bool = False

    def is_required(self, field: str) -> bool:
        return field in self.required_fields


class LocationFacts(BaseModel):
    """Resolved location flags for one applicant.

    ``lives_in_country`` is ``None`` when the applicant's location is unknown.
    """

    model_config = ConfigDict(frozen=True)

    lives_in_city: bool = False
    lives_in_state: bool = False
    lives_in_country: bool | None = None
    works_in_city: bool = False
    residential: bool | None = None
    validated: bool = False
    work_address_residential: bool | None = None


class PolicyDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    ptype: int
    expiration_days: int
    agency: str
    temporary: bool = False


POLICIES: dict[PolicyType, Policy] = {
    PolicyType.STANDARD_RESIDENT: Policy(
        policy_type=PolicyType.STANDARD_RESIDENT,
        agency=constants.DEFAULT_PATRON_AGENCY,
        ptypes={
            "metro": constants.SIMPLYE_METRO_PTYPE,
            "default": constants.SIMPLYE_NON_METRO_PTYPE,
        },
        horizons={
            "standard": constants.STANDARD_EXPIRATION_DAYS,
            "temporary": constants.TEMPORARY_EXPIRATION_DAYS,
        },
        required_fields=frozenset({"email", "barcode", "ageGate"}),
        minimum_age=constants.MINIMUM_AGE,
        service_area=True,
    ),
    PolicyType.WEB_APPLICANT: Policy(
        policy_type=PolicyType.WEB_APPLICANT,
        agency=constants.WEB_APPLICANT_AGENCY,
        ptypes={
            "default": constants.WEB_APPLICANT_PTYPE,
            "digitalTemporary": constants.WEB_DIGITAL_TEMPORARY_PTYPE,
            "digitalNonMetro": constants.WEB_DIGITAL_NON_METRO_PTYPE,
            "digitalMetro": constants.WEB_DIGITAL_METRO_PTYPE,
        },
        horizons={
            "standard": constants.WEB_APPLICANT_EXPIRATION_DAYS,
            "temporary": constants.WEB_APPLICANT_EXPIRATION_DAYS,
        },
        required_fields=frozenset({"email", "barcode", "birthdate"}),
        minimum_age=constants.MINIMUM_AGE,
    ),
    PolicyType.DEPENDENT_JUVENILE: Policy(
        policy_type=PolicyType.DEPENDENT_JUVENILE,
        agency=constants.DEFAULT_PATRON_AGENCY,
        ptypes={"default": constants.SIMPLYE_JUVENILE_PTYPE},
        horizons={
            "standard": constants.STANDARD_EXPIRATION_DAYS,
            "temporary": constants.STANDARD_EXPIRATION_DAYS,
        },
        required_fields=frozenset({"barcode"}),
    ),
}


def get_policy(policy_type: PolicyType | str | None = None) -> Policy:
    """Return the policy registered under *policy_type*.

    Defaults to the standard-resident policy when nothing is passed.
    """
    if not policy_type:
        return POLICIES[PolicyType.STANDARD_RESIDENT]
    try:
        return POLICIES[PolicyType(policy_type)]
    except ValueError as exc:
        valid = ", ".join(member.value for member in PolicyType)
        raise InvalidRequest(f"{policy_type} is invalid, must be one of {valid}") from exc
