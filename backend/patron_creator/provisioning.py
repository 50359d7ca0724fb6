"""Patron provisioning.

Drives one application from validation to a created ILS patron:

    pending -> validated -> barcode_reserved -> created [-> linked]

A failure after the barcode was reserved but before the ILS accepted the
patron releases the barcode before the error propagates.
"""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from typing import Any

from pydantic import ValidationError

from patron_creator import constants
from patron_creator.allocator import BarcodeAllocator
from patron_creator.dependents import DependentAccountEligibility, EligibilityStatus
from patron_creator.errors import (
    CardValidationFailed,
    DependentIneligible,
    ILSIntegrationError,
    InvalidRequest,
    NotILSValid,
    PatronCreatorError,
)
from patron_creator.ils.gateway import IdentityGateway
from patron_creator.models.address import Address
from patron_creator.models.card import CandidateRecord
from patron_creator.models.patron import Patron, VarField
from patron_creator.models.policy import PolicyType
from patron_creator.validation.card import CardValidationPipeline

logger = logging.getLogger(__name__)


class ProvisioningState(str, Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    BARCODE_RESERVED = "barcode_reserved"
    CREATED = "created"
    LINKED = "linked"
    FAILED = "failed"


def parent_address(parent: Patron) -> Address | None:
    """Return the parent's home address as a trusted, validated address."""
    home = parent.home_address
    if home is None or not home.lines:
        return None
    parsed = Address.from_ils_lines(home.lines)
    if parsed is not None:
        return parsed
    return Address(line1=", ".join(home.lines), has_been_validated=True, validated_by="ils")


def build_dependent_card(
    parent: Patron,
    *,
    name: str,
    username: str,
    pin: str,
    email: str | None = None,
    birthdate: date | str | None = None,
    accept_terms: bool = False,
    ecommunications_pref: bool = False,
    username_has_been_validated: bool = False,
) -> CandidateRecord:
    try:
        return CandidateRecord(
            name=name,
            username=username,
            pin=pin,
            email=email or parent.email or "",
            birthdate=birthdate,
            address=parent_address(parent),
            policy_type=PolicyType.DEPENDENT_JUVENILE,
            accept_terms=accept_terms,
            ecommunications_pref=ecommunications_pref,
            username_has_been_validated=username_has_been_validated,
            var_fields=[
                VarField(field_tag=constants.NOTE_FIELD_TAG, content=f"DEPENDENT OF {parent.barcode}")
            ],
        )
    except ValidationError as exc:
        raise InvalidRequest("The dependent application contains invalid values.", debug_message=str(exc)) from exc


class PatronProvisioner:
    """Creates standard and dependent patrons in the ILS."""

    def __init__(
        self,
        pipeline: CardValidationPipeline,
        allocator: BarcodeAllocator,
        gateway: IdentityGateway,
        dependents: DependentAccountEligibility,
    ) -> None:
        self.pipeline = pipeline
        self.allocator = allocator
        self.gateway = gateway
        self.dependents = dependents

    def _transition(self, card: CandidateRecord, state: ProvisioningState) -> None:
        logger.info("Patron %s: %s", card.username, state.value)

    async def validate(self, card: CandidateRecord) -> CandidateRecord:
        self._transition(card, ProvisioningState.PENDING)
        await self.pipeline.validate(card)
        if not card.valid:
            raise CardValidationFailed("The card could not be validated.", errors=card.errors)
        self._transition(card, ProvisioningState.VALIDATED)
        return card

    async def create_ils_patron(self, card: CandidateRecord) -> int:
        """Reserve a barcode if the policy needs one, then create the patron."""
        if not card.valid_for_ils():
            raise NotILSValid("The card has not been validated or has no ptype.")
        if card.requires("barcode"):
            card.barcode = await self.allocator.allocate()
            self._transition(card, ProvisioningState.BARCODE_RESERVED)
        created = False
        try:
            patron_id = await self.gateway.create_patron(card)
            created = True
        finally:
            if not created:
                self._transition(card, ProvisioningState.FAILED)
                await self.allocator.release(card.barcode)
                card.barcode = None
        self._transition(card, ProvisioningState.CREATED)
        return patron_id

    async def create_patron(self, card: CandidateRecord) -> dict[str, Any]:
        await self.validate(card)
        await self.create_ils_patron(card)
        return card.details()

    async def create_dependent(
        self,
        *,
        parent_barcode: str | None = None,
        parent_username: str | None = None,
        **card_fields: Any,
    ) -> dict[str, Any]:
        """Create a juvenile account and link it to its parent.

        Once the ILS has accepted the dependent its barcode is committed, so
        a failure to link it to the parent is reported but does not release
        the barcode.
        """
        eligibility = await self.dependents.is_eligible(
            barcode=parent_barcode, username=parent_username
        )
        if eligibility.status is EligibilityStatus.SERVICE_ERROR:
            raise ILSIntegrationError(eligibility.description)
        if not eligibility.eligible or eligibility.parent is None:
            raise DependentIneligible(eligibility.description)
        parent = eligibility.parent

        card = build_dependent_card(parent, **card_fields)
        await self.validate(card)
        await self.create_ils_patron(card)

        try:
            links = await self.dependents.update_parent_with_dependent(parent, card.barcode or "")
        except PatronCreatorError:
            logger.error(
                "Dependent %s (barcode %s) was created but not linked to parent %s",
                card.patron_id,
                card.barcode,
                parent.id,
            )
            raise
        self._transition(card, ProvisioningState.LINKED)

        return {
            "dependent": {
                "id": card.patron_id,
                "username": card.username,
                "name": card.name,
                "barcode": card.barcode,
                "pin": card.pin,
            },
            "parent": {
                "updated": True,
                "barcode": parent.barcode,
                "dependents": list(links.barcodes),
            },
        }
