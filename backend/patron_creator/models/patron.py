"""Pydantic models for patron records as the ILS returns them.

Also holds ``DependentLinks``, the typed view of the ``DEPENDENTS a,b``
note field that links a parent to its dependent accounts.  Parsing and
serialising that field happens only here.
"""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field

from patron_creator import constants
from patron_creator.errors import InvalidRequest

DEPENDENTS_SENTINEL: str = "DEPENDENTS"


class VarField(BaseModel):
    """A tagged free-text field on an ILS record."""

    model_config = ConfigDict(populate_by_name=True)

    field_tag: str = Field(alias="fieldTag")
    content: str = ""

    def to_ils(self) -> dict[str, str]:
        return {"fieldTag": self.field_tag, "content": self.content}


class PatronAddress(BaseModel):
    lines: list[str] = []
    type: str = constants.ADDRESS_FIELD_TAG


class Patron(BaseModel):
    """The subset of an ILS patron record this service reads."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    patron_type: int | None = Field(default=None, alias="patronType")
    var_fields: list[VarField] = Field(default_factory=list, alias="varFields")
    names: list[str] = []
    addresses: list[PatronAddress] = []
    emails: list[str] = []
    barcodes: list[str] = []
    expiration_date: date | None = Field(default=None, alias="expirationDate")

    def var_field(self, tag: str) -> str | None:
        for field in self.var_fields:
            if field.field_tag == tag:
                return field.content
        return None

    @property
    def barcode(self) -> str | None:
        if self.barcodes:
            return self.barcodes[0]
        return self.var_field(constants.BARCODE_FIELD_TAG)

    @property
    def username(self) -> str | None:
        return self.var_field(constants.USERNAME_FIELD_TAG)

    @property
    def email(self) -> str | None:
        return self.emails[0] if self.emails else None

    @property
    def home_address(self) -> PatronAddress | None:
        for address in self.addresses:
            if address.type == constants.ADDRESS_FIELD_TAG:
                return address
        return self.addresses[0] if self.addresses else None

    def is_expired(self, today: date) -> bool:
        return self.expiration_date is not None and today > self.expiration_date

    def dependent_links(self) -> DependentLinks:
        return DependentLinks.from_var_fields(self.var_fields)


class DependentLimitReached(InvalidRequest):
    type = "dependent-limit-reached"
    title = "Dependent Limit Reached"


class DependentLinks(BaseModel):
    """Child barcodes linked to a parent account, capped at three."""

    model_config = ConfigDict(frozen=True)

    barcodes: tuple[str, ...] = ()

    @classmethod
    def parse(cls, content: str) -> DependentLinks:
        """Parse ``"DEPENDENTS a,b"``; content without the sentinel yields no links."""
        text = content.strip()
        if not text.startswith(DEPENDENTS_SENTINEL):
            return cls()
        listed = text[len(DEPENDENTS_SENTINEL):]
        return cls(barcodes=tuple(part.strip() for part in listed.split(",") if part.strip()))

    @classmethod
    def from_var_fields(cls, var_fields: list[VarField]) -> DependentLinks:
        for field in var_fields:
            if field.field_tag == constants.NOTE_FIELD_TAG and field.content.strip().startswith(
                DEPENDENTS_SENTINEL
            ):
                return cls.parse(field.content)
        return cls()

    @property
    def count(self) -> int:
        return len(self.barcodes)

    def can_add(self) -> bool:
        return self.count < constants.MAX_DEPENDENTS

    def with_dependent(self, barcode: str) -> DependentLinks:
        """Return a copy with *barcode* appended.

        Raises
        ------
        DependentLimitReached
            If the parent already has the maximum number of dependents.
        """
        if barcode in self.barcodes:
            return self
        if not self.can_add():
            raise DependentLimitReached(
                "This patron has reached the limit to create dependent accounts."
            )
        return DependentLinks(barcodes=(*self.barcodes, barcode))

    def serialize(self) -> str:
        return f"{DEPENDENTS_SENTINEL} {','.join(self.barcodes)}"

    def to_var_field(self) -> VarField:
        return VarField(field_tag=constants.NOTE_FIELD_TAG, content=self.serialize())
