"""ILS codes and limits shared across patron-creator."""

from __future__ import annotations

# -- Var field tags --
BARCODE_FIELD_TAG: str = "b"
USERNAME_FIELD_TAG: str = "u"
ADDRESS_FIELD_TAG: str = "a"
WORK_ADDRESS_FIELD_TAG: str = "h"
NOTE_FIELD_TAG: str = "x"

# -- Fixed fields --
PATRON_AGENCY_FIELD: str = "158"
NOTICE_PREFERENCE_FIELD: str = "268"

# -- Patron types --
WEB_APPLICANT_PTYPE: int = 1
SIMPLYE_METRO_PTYPE: int = 2
SIMPLYE_NON_METRO_PTYPE: int = 3
SIMPLYE_JUVENILE_PTYPE: int = 4
WEB_DIGITAL_TEMPORARY_PTYPE: int = 7
WEB_DIGITAL_NON_METRO_PTYPE: int = 8
WEB_DIGITAL_METRO_PTYPE: int = 9
ADULT_METRO_PTYPE: int = 10
ADULT_NYS_PTYPE: int = 11
SENIOR_METRO_PTYPE: int = 20
SENIOR_NYS_PTYPE: int = 21
TEEN_METRO_PTYPE: int = 50
TEEN_NYS_PTYPE: int = 51
MARLI_PTYPE: int = 81
DISABLED_METRO_NY_PTYPE: int = 101

CAN_CREATE_DEPENDENTS: frozenset[int] = frozenset(
    {
        ADULT_METRO_PTYPE,
        ADULT_NYS_PTYPE,
        WEB_DIGITAL_NON_METRO_PTYPE,
        WEB_DIGITAL_METRO_PTYPE,
        SENIOR_METRO_PTYPE,
        SENIOR_NYS_PTYPE,
        DISABLED_METRO_NY_PTYPE,
        SIMPLYE_METRO_PTYPE,
        SIMPLYE_NON_METRO_PTYPE,
        TEEN_METRO_PTYPE,
        TEEN_NYS_PTYPE,
        MARLI_PTYPE,
    }
)

# -- Agencies --
DEFAULT_PATRON_AGENCY: str = "202"
WEB_APPLICANT_AGENCY: str = "198"
WEB_APPLICANT_NYS_AGENCY: str = "199"

# -- Expiration horizons, in days --
STANDARD_EXPIRATION_DAYS: int = 1095
ONE_YEAR_EXPIRATION_DAYS: int = 365
WEB_APPLICANT_EXPIRATION_DAYS: int = 90
TEMPORARY_EXPIRATION_DAYS: int = 30

# -- Patron codes --
ECOMMUNICATIONS_SUBSCRIBED: str = "s"
ECOMMUNICATIONS_NOT_SUBSCRIBED: str = "-"
NOTICE_PREFERENCE_EMAIL: str = "z"
NOTICE_PREFERENCE_NONE: str = "-"

DEFAULT_HOME_LIBRARY_CODE: str = "eb"
MINIMUM_AGE: int = 13
MAX_DEPENDENTS: int = 3

# Barcode lengths the ILS accepts for patron lookups.
BARCODE_LENGTHS: tuple[int, ...] = (14, 16)
LEGACY_BARCODE_LENGTH: int = 7

ILS_RESPONSE_FIELDS: str = "patronType,varFields,names,addresses,emails,expirationDate,barcodes"
