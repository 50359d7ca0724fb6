"""Policy engine.

Maps a policy and an applicant's location facts onto a patron type,
expiration horizon and agency code.  Everything here is pure: no I/O and
no hidden state, so the same inputs always yield the same decision.
"""

from __future__ import annotations

from patron_creator import constants
from patron_creator.models.policy import LocationFacts, Policy, PolicyDecision, PolicyType

_PTYPE_HORIZONS: dict[int, int] = {
    constants.WEB_APPLICANT_PTYPE: constants.WEB_APPLICANT_EXPIRATION_DAYS,
    constants.SIMPLYE_METRO_PTYPE: constants.STANDARD_EXPIRATION_DAYS,
    constants.SIMPLYE_NON_METRO_PTYPE: constants.STANDARD_EXPIRATION_DAYS,
    constants.SIMPLYE_JUVENILE_PTYPE: constants.STANDARD_EXPIRATION_DAYS,
    constants.WEB_DIGITAL_TEMPORARY_PTYPE: constants.WEB_APPLICANT_EXPIRATION_DAYS,
    constants.WEB_DIGITAL_NON_METRO_PTYPE: constants.ONE_YEAR_EXPIRATION_DAYS,
    constants.WEB_DIGITAL_METRO_PTYPE: constants.STANDARD_EXPIRATION_DAYS,
}


def expiration_days_for_ptype(ptype: int | None) -> int:
    """Return the expiration horizon for *ptype*, shortest when unknown."""
    if ptype is None:
        return constants.WEB_APPLICANT_EXPIRATION_DAYS
    return _PTYPE_HORIZONS.get(ptype, constants.WEB_APPLICANT_EXPIRATION_DAYS)


def web_applicant_ptype(policy: Policy, facts: LocationFacts) -> int:
    """Classify a web applicant.

    Rules are checked in order; anything that does not reach a digital
    metro or non-metro card gets the temporary digital card.
    """
    temporary = policy.ptypes["digitalTemporary"]
    # Unknown (None) and foreign locations both fall here.
    if not facts.lives_in_country:
        return temporary

    confirmed = facts.residential is True and facts.validated
    if not confirmed:
        return temporary
    if facts.lives_in_city:
        return policy.ptypes["digitalMetro"]
    if facts.lives_in_state and not facts.works_in_city:
        return policy.ptypes["digitalNonMetro"]
    return temporary


def standard_resident_ptype(policy: Policy, facts: LocationFacts) -> int:
    if facts.lives_in_city or facts.works_in_city:
        return policy.ptypes["metro"]
    return policy.ptypes["default"]


def is_permanent_card(facts: LocationFacts) -> bool:
    """A standard card needs a validated residential home address and no
    residential work address."""
    if facts.work_address_residential is True:
        return False
    return facts.residential is True and facts.validated


def web_applicant_agency(patron_agency: str | None) -> str:
    if patron_agency is not None and str(patron_agency).strip() == constants.WEB_APPLICANT_NYS_AGENCY:
        return constants.WEB_APPLICANT_NYS_AGENCY
    return constants.WEB_APPLICANT_AGENCY


def decide(
    policy: Policy,
    facts: LocationFacts,
    patron_agency: str | None = None,
) -> PolicyDecision:
    """Return the classification, horizon and agency for one applicant."""
    if policy.policy_type is PolicyType.DEPENDENT_JUVENILE:
        return PolicyDecision(
            ptype=policy.ptypes["default"],
            expiration_days=policy.horizons["standard"],
            agency=policy.agency,
        )

    if policy.policy_type is PolicyType.WEB_APPLICANT:
        ptype = web_applicant_ptype(policy, facts)
        return PolicyDecision(
            ptype=ptype,
            expiration_days=expiration_days_for_ptype(ptype),
            agency=web_applicant_agency(patron_agency),
            temporary=ptype == policy.ptypes["digitalTemporary"],
        )

    permanent = is_permanent_card(facts)
    return PolicyDecision(
        ptype=standard_resident_ptype(policy, facts),
        expiration_days=policy.horizons["standard" if permanent else "temporary"],
        agency=policy.agency,
        temporary=not permanent,
    )
