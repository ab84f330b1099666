from datetime import date

import pytest

from diary_schema import AdministrationRoute, CourseType, DoseRhythm
from utils.voice_utils import (
    TranscriptSession,
    levenshtein,
    parse_medication_course_from_voice,
    parse_start_date,
)

TODAY = date(2025, 6, 10)


@pytest.mark.parametrize("transcript", [None, "", "   ", "äh hm ja", "!!!???", "12345"])
def test_unrecognized_input_yields_no_name(transcript):
    parsed = parse_medication_course_from_voice(transcript, ["Ajovy"], today=TODAY)
    assert parsed.medication_name is None
    assert parsed.medication_name_confidence == 0


def test_full_sentence():
    parsed = parse_medication_course_from_voice(
        "Ich spritze seit März Ajovy 225 mg einmal im Monat als Prophylaxe", [], today=TODAY
    )
    assert parsed.medication_name == "Ajovy"
    assert parsed.medication_name_confidence == 0.9
    assert parsed.type == CourseType.PROPHYLAXIS
    assert parsed.dosage["dose_value"] == "225"
    assert parsed.dosage["dose_rhythm"] == DoseRhythm.MONTHLY
    assert parsed.dosage["administration_route"] == AdministrationRoute.SUBCUTANEOUS
    assert parsed.start_date == date(2025, 3, 1)
    assert parsed.is_active


def test_user_medication_wins_over_catalog():
    parsed = parse_medication_course_from_voice("Ich nehme Migräne-Mix und Ibuprofen", ["Migräne-Mix"], today=TODAY)
    assert parsed.medication_name == "Migräne-Mix"
    assert parsed.medication_name_confidence == 0.95


def test_fuzzy_catalog_match():
    parsed = parse_medication_course_from_voice("Sumatripan 50 mg bei Bedarf", [], today=TODAY)
    assert parsed.medication_name == "Sumatriptan"
    # one edit on an 11-letter name
    assert parsed.medication_name_confidence == 0.91
    assert parsed.type == CourseType.ACUTE


def test_token_before_dose_is_a_low_confidence_guess():
    parsed = parse_medication_course_from_voice("Ich nehme Xyloprax 100 mg", [], today=TODAY)
    assert parsed.medication_name == "Xyloprax"
    assert parsed.medication_name_confidence == 0.4


def test_type_keyword_overrides_catalog_type():
    parsed = parse_medication_course_from_voice("Ibuprofen zur Prophylaxe", [], today=TODAY)
    assert parsed.type == CourseType.PROPHYLAXIS


def test_stop_language_marks_inactive():
    parsed = parse_medication_course_from_voice("Topiramat habe ich abgesetzt", [], today=TODAY)
    assert parsed.medication_name == "Topiramat"
    assert not parsed.is_active


def test_raw_transcript_is_kept():
    text = "Ajovy seit Januar"
    assert parse_medication_course_from_voice(text, [], today=TODAY).raw_transcript == text


@pytest.mark.parametrize(
    "text, expected",
    [
        ("seit März", date(2025, 3, 1)),
        ("seit Oktober", date(2024, 10, 1)),
        ("since March 2023", date(2023, 3, 1)),
        ("seit 3 Monaten", date(2025, 3, 10)),
        ("seit zwei Wochen", date(2025, 5, 27)),
        ("seit einem halben Jahr", date(2024, 12, 10)),
        ("seit 2 Jahren", date(2023, 6, 10)),
        ("keine Angabe", None),
    ],
)
def test_parse_start_date(text, expected):
    assert parse_start_date(text, TODAY) == expected


@pytest.mark.parametrize("transcript", ["seit januar 0000", "seit 999999 jahren", "seit 9999999 wochen", "Ajovy seit 99999 monaten"])
def test_out_of_range_start_dates_are_dropped(transcript):
    parsed = parse_medication_course_from_voice(transcript, [], today=TODAY)
    assert parsed.start_date is None
    assert parsed.raw_transcript == transcript


def test_levenshtein():
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3
    assert levenshtein("ajovy", "ajovy") == 0


def test_transcript_session_stop_keeps_final_text():
    session = TranscriptSession()
    session.start()
    session.add_result("Ich nehme Ajovy", is_final=True, confidence=0.92)
    session.add_result("seit Mä", is_final=False)
    assert session.display_text == "Ich nehme Ajovy seit Mä"

    assert session.stop() == "Ich nehme Ajovy"
    assert session.display_text == "Ich nehme Ajovy"
    assert session.confidence == 0.92


def test_transcript_session_ignores_results_after_stop():
    session = TranscriptSession()
    session.start()
    session.stop()
    session.add_result("late", is_final=True)
    assert session.committed == ""
