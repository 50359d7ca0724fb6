"""Dependent-account eligibility and parent linking.

A parent may create dependent (juvenile) accounts when their card is not
expired, their ptype is on the allow-list and fewer than three dependents
are already linked through the ``DEPENDENTS`` note field.
"""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel

from patron_creator import constants
from patron_creator.errors import (
    ILSIntegrationError,
    InvalidBarcode,
    InvalidRequest,
    NoILSClient,
    PatronCreatorError,
    PatronNotFound,
)
from patron_creator.ils.gateway import IdentityGateway
from patron_creator.models.patron import DependentLinks, Patron, VarField

logger = logging.getLogger(__name__)

ELIGIBLE_DESCRIPTION: str = "This patron can create dependent accounts."
LIMIT_DESCRIPTION: str = "This patron has reached the limit to create dependent accounts."
PTYPE_DESCRIPTION: str = "This patron does not have an eligible ptype."
EXPIRED_DESCRIPTION: str = "This patron's card has expired."
LEGACY_DESCRIPTION: str = "Patrons with 7-digit barcodes cannot create dependent accounts."


class EligibilityStatus(str, Enum):
    ELIGIBLE = "eligible"
    INELIGIBLE = "ineligible"
    SERVICE_ERROR = "service-error"


class EligibilityResult(BaseModel):
    """Outcome of a dependent eligibility check.

    A service error means the answer is unknown; it is never a refusal.
    """

    status: EligibilityStatus
    description: str
    parent: Patron | None = None
    error: dict[str, Any] | None = None

    @property
    def eligible(self) -> bool:
        return self.status is EligibilityStatus.ELIGIBLE

    @classmethod
    def ineligible(cls, reason: str, parent: Patron | None = None) -> EligibilityResult:
        return cls(status=EligibilityStatus.INELIGIBLE, description=reason, parent=parent)

    def to_response(self) -> dict[str, Any]:
        return {"eligible": self.eligible, "description": self.description}


def can_create_dependents(var_fields: list[VarField]) -> bool:
    return DependentLinks.from_var_fields(var_fields).can_add()


def check_barcode(barcode: str) -> None:
    if not barcode.isdigit() or (
        len(barcode) not in constants.BARCODE_LENGTHS
        and len(barcode) != constants.LEGACY_BARCODE_LENGTH
    ):
        raise InvalidBarcode("The barcode passed is not a 14 or 16-digit number.")


class DependentAccountEligibility:
    def __init__(
        self,
        gateway: IdentityGateway | None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._gateway = gateway
        self._today = today

    def _require_gateway(self) -> IdentityGateway:
        if self._gateway is None:
            raise NoILSClient("ILS Client not set in the Dependent Eligibility API.")
        return self._gateway

    async def get_patron(self, barcode: str | None = None, username: str | None = None) -> Patron:
        gateway = self._require_gateway()
        try:
            if barcode:
                return await gateway.find_patron(barcode, by_barcode=True)
            return await gateway.find_patron(username or "", by_barcode=False)
        except PatronNotFound as exc:
            raise PatronNotFound("The patron couldn't be found.") from exc

    async def is_eligible(
        self, barcode: str | None = None, username: str | None = None
    ) -> EligibilityResult:
        """Check whether the patron identified by *barcode* or *username* may
        create a dependent account.

        Raises
        ------
        NoILSClient
            No gateway was configured.
        InvalidRequest
            Neither identifier was passed, or the barcode is malformed.
        PatronNotFound
            The ILS has no such patron.
        """
        self._require_gateway()
        barcode = (barcode or "").strip()
        username = (username or "").strip()
        if not barcode and not username:
            raise InvalidRequest("No barcode passed.")
        if barcode:
            check_barcode(barcode)
            if len(barcode) == constants.LEGACY_BARCODE_LENGTH:
                return EligibilityResult.ineligible(LEGACY_DESCRIPTION)

        try:
            parent = await self.get_patron(barcode=barcode, username=username)
        except ILSIntegrationError as exc:
            logger.error("Eligibility lookup for %s failed: %s", barcode or username, exc)
            return EligibilityResult(
                status=EligibilityStatus.SERVICE_ERROR,
                description=exc.message,
                error=exc.to_detail(),
            )
        return self.evaluate(parent)

    def evaluate(self, parent: Patron) -> EligibilityResult:
        if parent.is_expired(self._today()):
            return EligibilityResult.ineligible(EXPIRED_DESCRIPTION, parent)
        if parent.patron_type not in constants.CAN_CREATE_DEPENDENTS:
            return EligibilityResult.ineligible(PTYPE_DESCRIPTION, parent)
        if not can_create_dependents(parent.var_fields):
            return EligibilityResult.ineligible(LIMIT_DESCRIPTION, parent)
        return EligibilityResult(
            status=EligibilityStatus.ELIGIBLE, description=ELIGIBLE_DESCRIPTION, parent=parent
        )

    async def update_parent_with_dependent(self, parent: Patron, child_barcode: str) -> DependentLinks:
        """Append *child_barcode* to the parent's dependent list in the ILS.

        The parent is re-read first so links written by a concurrent request
        are kept.  Only the ``DEPENDENTS`` field is sent; other note fields
        on the record are left alone.
        """
        gateway = self._require_gateway()
        if not child_barcode:
            raise InvalidRequest("The dependent account has no barcode. Cannot update parent account.")

        current = await gateway.get_patron(parent.id)
        links = current.dependent_links().with_dependent(child_barcode)
        try:
            await gateway.update_patron(parent.id, {"varFields": [links.to_var_field().to_ils()]})
        except PatronCreatorError as exc:
            logger.error("Could not link dependent %s to parent %s: %s", child_barcode, parent.id, exc)
            raise ILSIntegrationError(
                "The parent patron couldn't be updated.", debug_message=exc.message
            ) from exc
        logger.info("Linked dependent %s to parent %s", child_barcode, parent.id)
        return links
