"""Address validation against Service Objects.

``ServiceObjectsClient`` talks to the vendor and turns its error envelope
(sent even with HTTP 200) into exceptions.  ``AddressValidationAdapter``
classifies the outcome as valid, alternate, unrecognized or vendor-error.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from patron_creator import config
from patron_creator.errors import SOAuthorizationError, SODomainSpecificError, SOIntegrationError
from patron_creator.models.address import Address
from patron_creator.models.policy import Policy

logger = logging.getLogger(__name__)

VENDOR_TAG: str = "service_objects"

# Domain-specific error codes that describe a problem with the address itself.
USER_ERROR_DESC_CODES: frozenset[str] = frozenset({"1", "5", "7", "8", "14", "15", "21"})
AUTHORIZATION_TYPE_CODE: str = "1"
DOMAIN_SPECIFIC_TYPE_CODE: str = "4"

CARD_DENIED_MESSAGE: str = (
    "Library cards are only available for residents of New York State or "
    "students and commuters working in New York City."
)
TEMPORARY_CARD_MESSAGE: str = (
    "This address will result in a temporary library card. You must visit an "
    "NYPL branch within the next 30 days to receive a standard card."
)
STANDARD_CARD_MESSAGE: str = "This valid address will result in a standard library card."


class ServiceObjectsClient:
    """Calls the Service Objects ``GetBestMatchesJSON`` endpoint."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        license_key: str | None,
        url: str = config.DEFAULT_SO_API_URL,
        backup_url: str | None = None,
    ) -> None:
        if not license_key:
            raise SOIntegrationError("No credentials for Service Objects were passed.")
        self._client = client
        self._license_key = license_key
        self._url = url
        if backup_url is None and "//ws.serviceobjects.com" in url:
            backup_url = url.replace("//ws.serviceobjects.com", "//wsbackup.serviceobjects.com")
        self._backup_url = backup_url

    @classmethod
    def from_config(cls, client: httpx.AsyncClient) -> ServiceObjectsClient:
        return cls(client, config.get_so_license_key(), config.get_so_api_url())

    def _params(self, address: Address) -> dict[str, str]:
        return {
            "Address": address.line1,
            "Address2": address.line2,
            "City": address.city,
            "State": address.state,
            "PostalCode": address.zip,
            "LicenseKey": self._license_key,
        }

    async def _get(self, address: Address) -> httpx.Response:
        params = self._params(address)
        try:
            return await self._client.get(self._url, params=params)
        except httpx.TransportError as exc:
            if not self._backup_url:
                raise
            logger.warning("Service Objects unreachable (%s); trying the backup endpoint.", exc)
            return await self._client.get(self._backup_url, params=params)

    async def best_matches(self, address: Address) -> list[dict[str, Any]]:
        """Return the vendor's candidate addresses for *address*.

        Raises
        ------
        SOAuthorizationError
            The license key was rejected.
        SODomainSpecificError
            The address itself could not be matched.
        SOIntegrationError
            Any other failure.
        """
        try:
            response = await self._get(address)
        except httpx.HTTPError as exc:
            message = f"Error using the Service Objects API: {exc}"
            logger.error(message)
            raise SOIntegrationError(message) from exc

        if response.status_code != 200:
            logger.error("Service Objects returned status %s", response.status_code)
            raise SOIntegrationError("Unexpected response status from Service Objects.")

        try:
            body = response.json()
        except ValueError as exc:
            raise SOIntegrationError("Service Objects returned a malformed body.") from exc
        if not isinstance(body, dict):
            raise SOIntegrationError("Service Objects returned a malformed body.")

        addresses = body.get("Addresses") or []
        error = body.get("Error")
        if addresses:
            return addresses
        if isinstance(error, dict) and error.get("Type"):
            raise self.error_from_envelope(error)
        raise SOIntegrationError("Unknown Error")

    @staticmethod
    def error_from_envelope(error: dict[str, Any]) -> SOIntegrationError:
        type_code = str(error.get("TypeCode", ""))
        desc_code = str(error.get("DescCode", ""))
        desc = str(error.get("Desc", ""))
        if type_code == AUTHORIZATION_TYPE_CODE:
            exc: SOIntegrationError = SOAuthorizationError(desc, code=desc_code)
        elif type_code == DOMAIN_SPECIFIC_TYPE_CODE and desc_code in USER_ERROR_DESC_CODES:
            exc = SODomainSpecificError(desc, code=desc_code)
        else:
            exc = SOIntegrationError(desc, code=desc_code or None)
        logger.error("Service Objects error %s/%s: %s", type_code, desc_code, desc)
        return exc


class AddressStatus(str, Enum):
    VALID = "valid"
    ALTERNATE = "alternate"
    UNRECOGNIZED = "unrecognized"
    VENDOR_ERROR = "vendor-error"


RESPONSES: dict[AddressStatus, tuple[str, str]] = {
    AddressStatus.VALID: ("valid-address", "Valid address."),
    AddressStatus.ALTERNATE: ("alternate-addresses", "Alternate addresses have been identified."),
    AddressStatus.UNRECOGNIZED: ("unrecognized-address", "Unrecognized address."),
    AddressStatus.VENDOR_ERROR: ("unrecognized-address", "Unrecognized address."),
}


class AddressValidationResult(BaseModel):
    status: AddressStatus
    message: str
    original_address: Address
    address: Address | None = None
    alternates: list[Address] = []
    error: dict[str, Any] | None = None

    @property
    def type(self) -> str:
        return RESPONSES[self.status][0]

    def to_response(self) -> dict[str, Any]:
        response: dict[str, Any] = {
            "type": self.type,
            "message": self.message,
            "original_address": self.original_address.model_dump(mode="json", by_alias=True),
        }
        if self.address is not None:
            response["address"] = self.address.model_dump(mode="json", by_alias=True)
        if self.alternates:
            response["addresses"] = [alt.model_dump(mode="json", by_alias=True) for alt in self.alternates]
        if self.error is not None:
            response["error"] = self.error
        return response


def address_from_vendor(match: dict[str, Any]) -> Address:
    return Address(
        line1=match.get("Address1") or "",
        line2=match.get("Address2") or "",
        city=match.get("City") or "",
        county=match.get("CountyName") or "",
        state=match.get("State") or "",
        zip=match.get("Zip") or "",
        is_residential=match.get("IsResidential"),
        has_been_validated=True,
        validated_by=VENDOR_TAG,
    )


class AddressValidationAdapter:
    """Classifies an address using Service Objects."""

    def __init__(self, client: ServiceObjectsClient) -> None:
        self._client = client

    def _result(self, status: AddressStatus, original: Address, **fields: Any) -> AddressValidationResult:
        message = fields.pop("message", RESPONSES[status][1])
        return AddressValidationResult(
            status=status, message=message, original_address=original, **fields
        )

    async def validate(self, address: Address) -> AddressValidationResult:
        if address.has_been_validated:
            return self._result(AddressStatus.VALID, address, address=address)

        try:
            matches = await self._client.best_matches(address)
        except SODomainSpecificError as exc:
            return self._result(
                AddressStatus.UNRECOGNIZED,
                address,
                message=f"{RESPONSES[AddressStatus.UNRECOGNIZED][1]} {exc.message}",
                error=exc.to_error(),
            )
        except SOIntegrationError as exc:
            if isinstance(exc, SOAuthorizationError):
                raise
            return self._result(AddressStatus.VENDOR_ERROR, address, error=exc.to_error())

        try:
            candidates = [address_from_vendor(match) for match in matches]
        except ValidationError as exc:
            logger.error("Service Objects returned an unusable address: %s", exc)
            error = SOIntegrationError("Service Objects returned an unusable address.")
            return self._result(AddressStatus.VENDOR_ERROR, address, error=error.to_error())

        if len(candidates) > 1:
            return self._result(AddressStatus.ALTERNATE, address, alternates=candidates)
        return self._result(AddressStatus.VALID, address, address=candidates[0])


def card_type_for(policy: Policy, address: Address, is_work_address: bool = False) -> dict[str, Any]:
    """Describe the card a validated *address* leads to under *policy*."""
    if policy.service_area and not address.in_state() and not is_work_address:
        return {"card_type": None, "message": CARD_DENIED_MESSAGE}
    if address.for_temporary_card(is_work_address):
        return {"card_type": "temporary", "message": TEMPORARY_CARD_MESSAGE}
    return {"card_type": "standard", "message": STANDARD_CARD_MESSAGE}
