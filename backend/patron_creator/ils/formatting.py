"""Conversion of a validated card into the ILS patron schema."""

from __future__ import annotations

from typing import Any

from patron_creator import constants
from patron_creator.models.address import Address
from patron_creator.models.card import CandidateRecord


def format_patron_name(name: str | None = None) -> str:
    """Return *name* as the ILS expects it.

    ``"Abraham Lincoln"`` becomes ``"LINCOLN, ABRAHAM"``; a single word or
    a name that already contains a comma is only upper-cased.
    """
    if not name or not name.strip():
        return ""
    name = " ".join(name.split())
    if "," in name or " " not in name:
        return name.upper()
    first, last = name.rsplit(" ", 1)
    return f"{last}, {first}".upper()


def format_address(address: Address, address_type: str = constants.ADDRESS_FIELD_TAG) -> dict[str, Any]:
    return {"lines": address.to_lines(), "type": address_type}


def format_patron_data(card: CandidateRecord) -> dict[str, Any]:
    """Build the JSON body for creating *card* in the ILS.

    The ILS has no username column, so the username travels as a ``u``
    var field alongside any var fields already on the card.
    """
    addresses = []
    if card.address is not None:
        addresses.append(format_address(card.address))
    if card.work_address is not None:
        addresses.append(format_address(card.work_address, constants.WORK_ADDRESS_FIELD_TAG))

    var_fields = [field.to_ils() for field in card.var_fields]
    var_fields.append({"fieldTag": constants.USERNAME_FIELD_TAG, "content": card.username})

    notice_preference = (
        constants.NOTICE_PREFERENCE_EMAIL if card.email else constants.NOTICE_PREFERENCE_NONE
    )
    ecommunications = (
        constants.ECOMMUNICATIONS_SUBSCRIBED
        if card.ecommunications_pref
        else constants.ECOMMUNICATIONS_NOT_SUBSCRIBED
    )

    data: dict[str, Any] = {
        "names": [format_patron_name(card.name)],
        "addresses": addresses,
        "pin": card.pin,
        "patronType": card.ptype,
        "expirationDate": card.expiration_date.isoformat() if card.expiration_date else None,
        "emails": [card.email] if card.email else [],
        "barcodes": [card.barcode] if card.barcode else [],
        "homeLibraryCode": card.home_library_code,
        "patronCodes": {"pcode1": ecommunications},
        "varFields": var_fields,
        "fixedFields": {
            constants.PATRON_AGENCY_FIELD: {"label": "AGENCY", "value": card.agency},
            constants.NOTICE_PREFERENCE_FIELD: {
                "label": "NOTICE PREFERENCE",
                "value": notice_preference,
            },
        },
    }
    if card.birthdate is not None:
        data["birthDate"] = card.birthdate.isoformat()
    return data
