"""Card validation pipeline.

Runs one ``CandidateRecord`` through the validation stages:

    unvalidated -> terms -> required fields -> policy fields -> formats
                -> username -> address(es) -> valid | invalid

Only two preconditions fail fast (terms not accepted, missing core
fields).  Every other stage records its problem in ``card.errors`` under a
stable key so the caller gets all field errors at once.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from enum import Enum
from typing import Callable

from patron_creator.errors import BadUsername, MissingRequiredValues, TermsNotAccepted
from patron_creator.models.card import CandidateRecord
from patron_creator.policy import decide
from patron_creator.validation.address import (
    CARD_DENIED_MESSAGE,
    AddressStatus,
    AddressValidationAdapter,
)
from patron_creator.validation.username import UsernameValidationAdapter

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")
PIN_PATTERN = re.compile(r"^\d{4}$")

TERMS_ERROR: str = "The terms and conditions were not accepted."
REQUIRED_ERROR: str = "'name', 'address', 'username', 'pin', and 'email' are all required fields."
UNVALIDATED_ADDRESS_ERROR: str = "Address has not been validated."


class PipelineStage(str, Enum):
    UNVALIDATED = "unvalidated"
    TERMS = "terms"
    REQUIRED_FIELDS = "required_fields"
    POLICY_FIELDS = "policy_fields"
    FORMATS = "formats"
    USERNAME = "username"
    ADDRESS = "address"
    VALID = "valid"
    INVALID = "invalid"


class CardValidationPipeline:
    """Validate cards.  Holds collaborators only, never per-card state."""

    def __init__(
        self,
        username_validator: UsernameValidationAdapter,
        address_validator: AddressValidationAdapter,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._username_validator = username_validator
        self._address_validator = address_validator
        self._today = today

    async def validate(self, card: CandidateRecord) -> CandidateRecord:
        """Validate *card* in place and return it.

        Raises
        ------
        TermsNotAccepted
            ``accept_terms`` is false.  No remote call is made.
        MissingRequiredValues
            Name, address, username, PIN or email is missing.
        """
        card.errors = {}
        card.valid = False
        self._log_stage(card, PipelineStage.TERMS)
        if not card.accept_terms:
            raise TermsNotAccepted(TERMS_ERROR)

        self._log_stage(card, PipelineStage.REQUIRED_FIELDS)
        self.check_required(card)

        self._log_stage(card, PipelineStage.POLICY_FIELDS)
        self.check_policy_fields(card)

        self._log_stage(card, PipelineStage.FORMATS)
        self.check_formats(card)

        self._log_stage(card, PipelineStage.USERNAME)
        await self.check_username(card)

        self._log_stage(card, PipelineStage.ADDRESS)
        await self.check_addresses(card)

        if card.errors:
            self._log_stage(card, PipelineStage.INVALID)
            return card

        card.apply_decision(
            decide(card.policy, card.location_facts(), card.patron_agency),
            self._today(),
        )
        self._log_stage(card, PipelineStage.VALID)
        return card

    def _log_stage(self, card: CandidateRecord, stage: PipelineStage) -> None:
        logger.debug("Card for %s entering stage %s", card.username or "<no username>", stage.value)

    # -- Stages --

    def check_required(self, card: CandidateRecord) -> None:
        missing_address = card.address is None or card.address.is_empty()
        if not card.name or missing_address or not card.username or not card.pin or not card.email:
            raise MissingRequiredValues(REQUIRED_ERROR)

    def check_policy_fields(self, card: CandidateRecord) -> None:
        policy = card.policy
        minimum_age = policy.minimum_age
        if policy.is_required("ageGate") and not card.age_gate:
            card.errors["ageGate"] = f"You must be {minimum_age} years or older to continue."
        if policy.is_required("birthdate"):
            age = card.age_on(self._today())
            if age is None:
                card.errors["birthdate"] = "A date of birth is required."
            elif minimum_age is not None and age < minimum_age:
                card.errors["age"] = f"Date of birth is below the minimum age of {minimum_age}."

    def check_formats(self, card: CandidateRecord) -> None:
        if not EMAIL_PATTERN.match(card.email):
            card.errors["email"] = "Email address must be valid"
        if not PIN_PATTERN.match(card.pin):
            card.errors["pin"] = "PIN should be 4 numeric characters only. Please revise your PIN."

    async def check_username(self, card: CandidateRecord) -> None:
        if card.username_has_been_validated:
            return
        try:
            await self._username_validator.validate(card.username)
        except BadUsername as exc:
            card.errors["username"] = exc.message
            return
        card.username_has_been_validated = True

    async def check_addresses(self, card: CandidateRecord) -> None:
        await self._check_address(card, is_work_address=False)
        if card.work_address is not None and not card.work_address.is_empty():
            await self._check_address(card, is_work_address=True)

        address = card.address
        if (
            card.policy.service_area
            and address is not None
            and not address.in_state()
            and not card.works_in_city()
            and "address" not in card.errors
        ):
            card.errors["address"] = CARD_DENIED_MESSAGE

    async def _check_address(self, card: CandidateRecord, is_work_address: bool) -> None:
        key = "workAddress" if is_work_address else "address"
        address = card.work_address if is_work_address else card.address
        if address is None or address.has_been_validated:
            return

        result = await self._address_validator.validate(address)
        if result.status is AddressStatus.VALID and result.address is not None:
            if is_work_address:
                card.work_address = result.address
            else:
                card.address = result.address
        elif result.status is AddressStatus.VENDOR_ERROR:
            # Outage only; authorization errors propagate from the adapter.
            # Left unvalidated, so the policy engine grants a temporary card.
            logger.warning(
                "Could not validate %s for %s: %s", key, card.username, result.error
            )
        else:
            card.errors[key] = result.message or UNVALIDATED_ADDRESS_ERROR
