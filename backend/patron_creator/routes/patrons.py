"""Patron creation and dependent-account endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from patron_creator.dependents import DependentAccountEligibility, EligibilityStatus
from patron_creator.errors import InvalidRequest, PatronCreatorError
from patron_creator.models.address import Address
from patron_creator.models.card import CandidateRecord
from patron_creator.models.policy import PolicyType
from patron_creator.provisioning import PatronProvisioner
from patron_creator.routes.deps import get_dependents, get_provisioner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v0.3/patrons", tags=["patrons"])


class PatronRequest(BaseModel):
    """Fields an applicant may submit; processing fields are never accepted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = ""
    address: Address | None = None
    work_address: Address | None = None
    username: str = ""
    pin: str = ""
    email: str = ""
    birthdate: str | None = None
    age_gate: bool = False
    accept_terms: bool = False
    policy_type: PolicyType = PolicyType.STANDARD_RESIDENT
    home_library_code: str | None = None
    ecommunications_pref: bool = False
    location: str | None = None
    patron_agency: str | None = None
    username_has_been_validated: bool = False

    def to_card(self) -> CandidateRecord:
        try:
            return self._build_card()
        except ValidationError as exc:
            raise InvalidRequest("The application contains invalid values.", debug_message=str(exc)) from exc

    def _build_card(self) -> CandidateRecord:
        return CandidateRecord(
            name=self.name,
            address=self.address,
            work_address=self.work_address,
            username=self.username,
            pin=self.pin,
            email=self.email,
            birthdate=self.birthdate,
            age_gate=self.age_gate,
            accept_terms=self.accept_terms,
            policy_type=self.policy_type,
            home_library_code=self.home_library_code,
            ecommunications_pref=self.ecommunications_pref,
            location=self.location,
            patron_agency=self.patron_agency,
            username_has_been_validated=self.username_has_been_validated,
        )


class DependentRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    parent_barcode: str | None = None
    parent_username: str | None = None
    name: str = ""
    username: str = ""
    pin: str = ""
    email: str | None = None
    birthdate: str | None = None
    accept_terms: bool = False
    ecommunications_pref: bool = False
    username_has_been_validated: bool = False


def _problem(exc: PatronCreatorError, context: str) -> HTTPException:
    if exc.status >= 500:
        logger.exception("%s failed", context)
    else:
        logger.info("%s rejected: %s", context, exc.message)
    return HTTPException(status_code=exc.status, detail=exc.to_detail())


@router.post("", status_code=201)
async def create_patron(
    body: PatronRequest,
    provisioner: PatronProvisioner = Depends(get_provisioner),
) -> dict[str, Any]:
    """Validate an application and create the patron in the ILS."""
    try:
        card = body.to_card()
        return await provisioner.create_patron(card)
    except PatronCreatorError as exc:
        raise _problem(exc, f"Patron creation for {body.username}") from exc


@router.get("/dependent-eligibility")
async def dependent_eligibility(
    barcode: str | None = None,
    username: str | None = None,
    dependents: DependentAccountEligibility = Depends(get_dependents),
) -> dict[str, Any]:
    """Report whether a parent may create another dependent account."""
    try:
        result = await dependents.is_eligible(barcode=barcode, username=username)
    except PatronCreatorError as exc:
        raise _problem(exc, f"Dependent eligibility for {barcode or username}") from exc

    if result.status is EligibilityStatus.SERVICE_ERROR:
        raise HTTPException(status_code=502, detail=result.error)
    return result.to_response()


@router.post("/dependents", status_code=201)
async def create_dependent(
    body: DependentRequest,
    provisioner: PatronProvisioner = Depends(get_provisioner),
) -> dict[str, Any]:
    """Create a juvenile account linked to an eligible parent."""
    fields = body.model_dump(exclude={"parent_barcode", "parent_username"})
    try:
        return await provisioner.create_dependent(
            parent_barcode=body.parent_barcode,
            parent_username=body.parent_username,
            **fields,
        )
    except PatronCreatorError as exc:
        raise _problem(exc, f"Dependent creation for {body.parent_barcode or body.parent_username}") from exc
