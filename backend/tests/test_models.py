"""Tests for addresses, cards, ILS formatting and dependent links."""

from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from patron_creator.ils.formatting import format_patron_data, format_patron_name
from patron_creator.models.address import Address
from patron_creator.models.card import CandidateRecord, Location
from patron_creator.models.patron import DependentLimitReached, DependentLinks, Patron, VarField
from patron_creator.models.policy import PolicyDecision

FIFTH_AVENUE = Address(line1="476 5th Avenue", city="New York", state="NY", zip="10018")


@pytest.mark.unit
class TestAddress:
    def test_lines_are_upper_cased(self) -> None:
        assert FIFTH_AVENUE.to_lines() == ["476 5TH AVENUE", "NEW YORK, NY 10018"]

    def test_second_line_joins_street(self) -> None:
        address = FIFTH_AVENUE.model_copy(update={"line2": "Apt 4"})
        assert address.to_lines()[0] == "476 5TH AVENUE, APT 4"

    def test_lines_over_limit_are_rejected(self) -> None:
        with pytest.raises(ValidationError, match="less than 100 characters"):
            Address(line1="x" * 60, line2="y" * 41)

    def test_camel_case_input(self) -> None:
        address = Address.model_validate({"line1": "1 Main St", "isResidential": "true"})
        assert address.is_residential is True

    def test_residential_string_false(self) -> None:
        assert Address(is_residential="false").is_residential is False

    def test_location_checks(self) -> None:
        assert FIFTH_AVENUE.in_city()
        assert FIFTH_AVENUE.in_state()
        assert FIFTH_AVENUE.in_country()

    def test_county_counts_as_city(self) -> None:
        address = Address(city="Brooklyn", county="Kings County", state="NY")
        assert address.in_city()

    def test_other_state_in_country_only(self) -> None:
        address = Address(city="Newark", state="NJ")
        assert not address.in_state()
        assert address.in_country()

    def test_foreign_state_not_in_country(self) -> None:
        assert not Address(city="Toronto", state="ON").in_country()

    def test_from_ils_lines(self) -> None:
        parsed = Address.from_ils_lines(["476 5TH AVENUE", "NEW YORK, NY 10018"])
        assert parsed is not None
        assert parsed.line1 == "476 5TH AVENUE"
        assert parsed.city == "NEW YORK"
        assert parsed.has_been_validated
        assert parsed.validated_by == "ils"

    def test_from_ils_lines_unparseable(self) -> None:
        assert Address.from_ils_lines(["somewhere"]) is None

    def test_validated_copy_is_new_object(self) -> None:
        validated = FIFTH_AVENUE.validated_copy("service_objects", is_residential=True)
        assert validated.has_been_validated
        assert not FIFTH_AVENUE.has_been_validated


@pytest.mark.unit
class TestCandidateRecord:
    def test_birthdate_accepts_us_format(self) -> None:
        card = CandidateRecord(birthdate="03/15/2000")
        assert card.birthdate == date(2000, 3, 15)

    def test_age_on_birthday(self) -> None:
        card = CandidateRecord(birthdate="2011-06-01")
        assert card.age_on(date(2024, 6, 1)) == 13
        assert card.age_on(date(2024, 5, 31)) == 12

    def test_home_library_defaults(self) -> None:
        assert CandidateRecord(home_library_code="").home_library_code == "eb"

    def test_unknown_location_normalized(self) -> None:
        assert CandidateRecord(location="mars").location is Location.UNKNOWN
        assert CandidateRecord(location="NYC").location is Location.NYC

    def test_lives_in_country_from_location_hint(self) -> None:
        card = CandidateRecord(location="us", address=Address(state="ON"))
        assert card.lives_in_country() is True

    def test_lives_in_country_unknown_without_state(self) -> None:
        assert CandidateRecord(address=Address(line1="1 Main St")).lives_in_country() is None

    def test_set_patron_id_from_link(self) -> None:
        card = CandidateRecord()
        assert card.set_patron_id("https://ils.test/patrons/7654321") == 7654321

    def test_temporary_message_names_reason_and_days(self) -> None:
        card = CandidateRecord(address=FIFTH_AVENUE.validated_copy("service_objects", is_residential=False))
        card.apply_decision(
            PolicyDecision(ptype=3, expiration_days=30, agency="202", temporary=True),
            date(2024, 6, 1),
        )
        assert "address could not be verified" in card.message()
        assert "within 30 days" in card.message()
        assert card.expiration_date == date(2024, 7, 1)

    def test_standard_message(self) -> None:
        card = CandidateRecord()
        card.apply_decision(PolicyDecision(ptype=2, expiration_days=1095, agency="202"), date(2024, 6, 1))
        assert card.message() == "Your library card has been created."
        assert card.valid_for_ils()


@pytest.mark.unit
class TestFormatting:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("Abraham Lincoln", "LINCOLN, ABRAHAM"),
            ("Mary Ann Evans", "EVANS, MARY ANN"),
            ("Cher", "CHER"),
            ("Lincoln, Abraham", "LINCOLN, ABRAHAM"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_format_patron_name(self, name, expected) -> None:
        assert format_patron_name(name) == expected

    def test_patron_data(self) -> None:
        card = CandidateRecord(
            name="Jane Doe",
            address=FIFTH_AVENUE,
            username="janedoe1",
            pin="1234",
            email="jane@example.com",
            ecommunications_pref=True,
            birthdate="2000-01-02",
        )
        card.apply_decision(PolicyDecision(ptype=2, expiration_days=1095, agency="202"), date(2024, 6, 1))
        card.barcode = "28888055432450"

        data = format_patron_data(card)

        assert data["names"] == ["DOE, JANE"]
        assert data["addresses"] == [
            {"lines": ["476 5TH AVENUE", "NEW YORK, NY 10018"], "type": "a"}
        ]
        assert data["patronType"] == 2
        assert data["expirationDate"] == "2027-06-01"
        assert data["barcodes"] == ["28888055432450"]
        assert data["patronCodes"] == {"pcode1": "s"}
        assert data["fixedFields"]["158"]["value"] == "202"
        assert data["fixedFields"]["268"]["value"] == "z"
        assert {"fieldTag": "u", "content": "janedoe1"} in data["varFields"]
        assert data["birthDate"] == "2000-01-02"


@pytest.mark.unit
class TestDependentLinks:
    def test_two_dependents_can_add(self) -> None:
        fields = [VarField(fieldTag="x", content="DEPENDENTS 11111111111111,22222222222222")]
        links = DependentLinks.from_var_fields(fields)
        assert links.barcodes == ("11111111111111", "22222222222222")
        assert links.can_add()

    def test_third_dependent_reaches_cap(self) -> None:
        links = DependentLinks.parse("DEPENDENTS 11111111111111,22222222222222")
        full = links.with_dependent("33333333333333")
        assert full.count == 3
        assert not full.can_add()
        assert full.serialize() == "DEPENDENTS 11111111111111,22222222222222,33333333333333"

    def test_fourth_dependent_rejected(self) -> None:
        full = DependentLinks(barcodes=("1", "2", "3"))
        with pytest.raises(DependentLimitReached):
            full.with_dependent("4")

    def test_appending_existing_barcode_is_noop(self) -> None:
        links = DependentLinks.parse("DEPENDENTS 11111111111111")
        assert links.with_dependent("11111111111111") == links

    def test_other_note_fields_ignored(self) -> None:
        fields = [
            VarField(fieldTag="x", content="Registered online"),
            VarField(fieldTag="u", content="DEPENDENTS 9"),
        ]
        assert DependentLinks.from_var_fields(fields).count == 0

    def test_empty_sentinel(self) -> None:
        assert DependentLinks.parse("DEPENDENTS ").count == 0

    def test_links_from_patron(self, patron_json) -> None:
        patron = Patron.model_validate(patron_json(dependents=["11111111111111"]))
        assert patron.dependent_links().barcodes == ("11111111111111",)
        assert patron.username == "parentuser"
        assert patron.barcode == "25555000000001"
        assert not patron.is_expired(date(2024, 6, 1))
