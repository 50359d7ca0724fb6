"""Username and address validation endpoints.

The web application calls these while the applicant fills in the form,
before any patron is created.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from patron_creator.errors import PatronCreatorError, SOAuthorizationError
from patron_creator.models.address import Address
from patron_creator.models.policy import PolicyType, get_policy
from patron_creator.routes.deps import get_address_validator, get_username_validator
from patron_creator.validation.address import AddressStatus, AddressValidationAdapter, card_type_for
from patron_creator.validation.username import UsernameValidationAdapter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v0.3/validations", tags=["validations"])


class UsernameRequest(BaseModel):
    username: str = ""


class AddressRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    address: Address
    policy_type: PolicyType = PolicyType.STANDARD_RESIDENT
    is_work_address: bool = False


@router.post("/username")
async def validate_username(
    body: UsernameRequest,
    validator: UsernameValidationAdapter = Depends(get_username_validator),
):
    """Check that a username is well-formed and not taken in the ILS."""
    try:
        response = await validator.validate(body.username)
    except PatronCreatorError as exc:
        if exc.status >= 500:
            logger.exception("Username validation failed for %s", body.username)
        raise HTTPException(status_code=exc.status, detail=exc.to_detail()) from exc
    return response.model_dump(mode="json")


@router.post("/address")
async def validate_address(
    body: AddressRequest,
    validator: AddressValidationAdapter = Depends(get_address_validator),
):
    """Validate an address with Service Objects.

    A single match returns the normalized address with the card type it
    would lead to; several matches return the alternates.  Unrecognized
    addresses are a 400 and vendor failures a 502, both with the vendor's
    error attached.  A rejected license key is a 502 problem detail.
    """
    try:
        result = await validator.validate(body.address)
    except SOAuthorizationError as exc:
        logger.error("Service Objects rejected the license key: %s", exc.message)
        raise HTTPException(status_code=exc.status, detail=exc.to_detail()) from exc
    response = result.to_response()

    if result.status is AddressStatus.VALID and result.address is not None:
        response.update(
            card_type_for(get_policy(body.policy_type), result.address, body.is_work_address)
        )
        return response
    if result.status is AddressStatus.ALTERNATE:
        return response
    if result.status is AddressStatus.UNRECOGNIZED:
        raise HTTPException(status_code=400, detail=response)

    logger.error("Address validation vendor error: %s", result.error)
    raise HTTPException(status_code=502, detail=response)
