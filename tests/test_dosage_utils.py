import pytest

from diary_schema import (
    AdministrationRoute,
    CourseType,
    DoseRhythm,
    DoseSchedule,
    DoseUnit,
    MaxPerPeriod,
    StructuredDosage,
)
from utils.dosage_utils import build_dose_text, dosage_from_text, parse_dose_text


def test_build_daily_schedule():
    dosage = StructuredDosage(
        dose_value="50",
        dose_unit=DoseUnit.MG,
        dose_rhythm=DoseRhythm.DAILY,
        dose_schedule=DoseSchedule(morning=1, evening=1),
    )
    assert build_dose_text(dosage) == "50 mg 1-0-1-0"


def test_build_daily_without_schedule():
    assert build_dose_text(StructuredDosage(dose_value="100", dose_unit=DoseUnit.MG)) == "100 mg täglich"


def test_build_monthly_injection():
    dosage = StructuredDosage(
        dose_value="225",
        dose_rhythm=DoseRhythm.MONTHLY,
        administration_route=AdministrationRoute.SUBCUTANEOUS,
    )
    assert build_dose_text(dosage) == "225 mg s.c. 1×/Monat"


@pytest.mark.parametrize(
    "max_per_period, expected",
    [
        (None, "10 mg bei Bedarf"),
        (MaxPerPeriod(count=2), "10 mg bei Bedarf (max. 2)"),
        (MaxPerPeriod(count=10, period="month"), "10 mg bei Bedarf (max. 10/Monat)"),
    ],
)
def test_build_as_needed(max_per_period, expected):
    dosage = StructuredDosage(dose_value="10", dose_rhythm=DoseRhythm.AS_NEEDED, max_per_period=max_per_period)
    assert build_dose_text(dosage) == expected


def test_oral_and_other_routes_have_no_tag():
    for route in (AdministrationRoute.ORAL, AdministrationRoute.OTHER):
        text = build_dose_text(StructuredDosage(dose_value="5", administration_route=route))
        assert text == "5 mg täglich"


def test_parse_schedule():
    parsed = parse_dose_text("50 mg 1-0-1-0")
    assert parsed["dose_value"] == "50"
    assert parsed["dose_unit"] == DoseUnit.MG
    assert parsed["dose_rhythm"] == DoseRhythm.DAILY
    assert parsed["dose_schedule"] == DoseSchedule(morning=1, noon=0, evening=1, night=0)


def test_schedule_overrides_rhythm_keyword():
    parsed = parse_dose_text("1 Tablette wöchentlich 1-1-0-0")
    assert parsed["dose_rhythm"] == DoseRhythm.DAILY
    assert parsed["dose_unit"] == DoseUnit.TABLETS


def test_parse_decimal_comma_and_units():
    assert parse_dose_text("2,5 mg")["dose_value"] == "2.5"
    assert parse_dose_text("20 Tropfen")["dose_unit"] == DoseUnit.DROPS
    assert parse_dose_text("1 Spritze")["dose_unit"] == DoseUnit.INJECTIONS
    assert parse_dose_text("2 Hübe nasal")["dose_unit"] == DoseUnit.PUFFS


def test_parse_route_priority():
    assert parse_dose_text("s.c. Spritze")["administration_route"] == AdministrationRoute.SUBCUTANEOUS
    assert parse_dose_text("i.m. 1x")["administration_route"] == AdministrationRoute.INTRAMUSCULAR
    assert parse_dose_text("Nasenspray")["administration_route"] == AdministrationRoute.NASAL


def test_max_clause_does_not_decide_rhythm():
    parsed = parse_dose_text("10 mg bei Bedarf (max. 10/Monat)")
    assert parsed["dose_rhythm"] == DoseRhythm.AS_NEEDED
    assert parsed["max_per_period"] == MaxPerPeriod(count=10, period="month")


def test_parse_max_variants():
    assert parse_dose_text("max 3 pro tag")["max_per_period"] == MaxPerPeriod(count=3, period="day")
    assert parse_dose_text("max. 10 Tage/Monat")["max_per_period"] == MaxPerPeriod(count=10, period="month")
    assert parse_dose_text("max. 2")["max_per_period"] == MaxPerPeriod(count=2)


def test_parse_english_rhythm():
    assert parse_dose_text("100 mg once a month")["dose_rhythm"] == DoseRhythm.MONTHLY
    assert parse_dose_text("as needed")["dose_rhythm"] == DoseRhythm.AS_NEEDED


@pytest.mark.parametrize("text", [None, "", "   ", "irgendwas", "1-2-3", "max.", "mg mg"])
def test_parse_never_raises(text):
    assert isinstance(parse_dose_text(text), dict)


def test_round_trip_is_stable():
    dosages = [
        StructuredDosage(dose_value="50", dose_schedule=DoseSchedule(morning=1, evening=1)),
        StructuredDosage(dose_value="225", dose_rhythm=DoseRhythm.MONTHLY, administration_route="sc"),
        StructuredDosage(dose_value="2", dose_unit=DoseUnit.PUFFS, dose_rhythm=DoseRhythm.WEEKLY, administration_route="nasal"),
        StructuredDosage(
            dose_value="10",
            dose_rhythm=DoseRhythm.AS_NEEDED,
            max_per_period=MaxPerPeriod(count=10, period="month"),
        ),
    ]
    for dosage in dosages:
        text = build_dose_text(dosage)
        assert build_dose_text(dosage_from_text(text)) == text


def test_dosage_from_text_defaults_by_course_type():
    assert dosage_from_text("", CourseType.ACUTE).dose_rhythm == DoseRhythm.AS_NEEDED
    assert dosage_from_text(None, CourseType.PROPHYLAXIS).dose_rhythm == DoseRhythm.DAILY
    assert dosage_from_text("50 mg", CourseType.ACUTE).dose_value == "50"
