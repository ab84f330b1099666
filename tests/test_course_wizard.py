from datetime import date

import pytest

from diary_schema import (
    CourseType,
    DiscontinuationReason,
    DoseRhythm,
    MedicationCourse,
    ParsedMedicationCourse,
)
from utils.course_wizard import CUSTOM_MEDICATION, MedicationCourseWizard
from utils.errors import ValidationFailed


def test_step_one_requires_a_name():
    wizard = MedicationCourseWizard()
    wizard.open()
    assert not wizard.can_proceed()
    assert wizard.next_step() == 1

    wizard.update(selected_medication=CUSTOM_MEDICATION, custom_medication_name="   ")
    assert wizard.next_step() == 1

    wizard.set_medication_name("Ajovy")
    assert wizard.next_step() == 2


def test_later_steps_are_unguarded_and_back_keeps_values():
    wizard = MedicationCourseWizard(known_meds=["Ajovy"])
    wizard.open()
    wizard.set_medication_name("Ajovy")
    wizard.next_step()
    wizard.update(start_date=date(2024, 10, 1))
    assert wizard.next_step() == 3
    assert wizard.next_step() == 4
    assert wizard.next_step() == 4

    assert wizard.back() == 3
    assert wizard.back() == 2
    assert wizard.back() == 1
    assert wizard.back() == 1
    assert wizard.draft.selected_medication == "Ajovy"
    assert wizard.draft.start_date == date(2024, 10, 1)


def test_edit_mode_hydrates_once_per_session():
    course = MedicationCourse(
        id="c1", medication_name="Topiramat", type=CourseType.PROPHYLAXIS, dose_text="50 mg 1-0-1-0"
    )
    wizard = MedicationCourseWizard(known_meds=["Topiramat"])
    draft = wizard.open(course)
    assert draft.selected_medication == "Topiramat"
    assert draft.dosage.dose_value == "50"
    assert draft.dosage.dose_schedule.evening == 1

    wizard.update(note_for_physician="Bitte Alternativen besprechen")
    wizard.open(course)
    assert wizard.draft.note_for_physician == "Bitte Alternativen besprechen"

    wizard.close()
    wizard.open(course)
    assert wizard.draft.note_for_physician == ""


def test_unknown_medication_becomes_custom():
    course = MedicationCourse(medication_name="Hausmischung")
    wizard = MedicationCourseWizard(known_meds=["Ajovy"])
    draft = wizard.open(course)
    assert draft.selected_medication == CUSTOM_MEDICATION
    assert draft.resolved_name == "Hausmischung"


def test_close_discards_draft():
    wizard = MedicationCourseWizard()
    wizard.open()
    wizard.set_medication_name("Ajovy")
    wizard.close()
    assert not wizard.is_open
    assert wizard.draft.resolved_name == ""


def test_build_submission_only_keeps_conditional_fields_when_relevant():
    wizard = MedicationCourseWizard()
    wizard.open()
    wizard.set_medication_name("Topiramat")
    wizard.update(
        is_active=True,
        end_date=date(2024, 1, 1),
        discontinuation_reason=DiscontinuationReason.SIDE_EFFECTS,
        had_side_effects=False,
        side_effects_text="Müdigkeit",
    )
    payload = wizard.build_submission()
    assert payload.end_date is None
    assert payload.discontinuation_reason is None
    assert payload.side_effects_text is None
    assert payload.dose_text == "täglich"

    wizard.update(is_active=False, had_side_effects=True)
    payload = wizard.build_submission()
    assert payload.end_date == date(2024, 1, 1)
    assert payload.discontinuation_reason == DiscontinuationReason.SIDE_EFFECTS
    assert payload.side_effects_text == "Müdigkeit"


def test_build_submission_without_name_fails():
    wizard = MedicationCourseWizard()
    wizard.open()
    with pytest.raises(ValidationFailed):
        wizard.build_submission()


def test_set_type_switches_untouched_default_dosage():
    wizard = MedicationCourseWizard()
    wizard.open()
    wizard.set_type(CourseType.ACUTE)
    assert wizard.draft.dosage.dose_rhythm == DoseRhythm.AS_NEEDED


def test_apply_voice():
    wizard = MedicationCourseWizard(known_meds=["Ajovy"])
    wizard.open()
    parsed = ParsedMedicationCourse(
        medication_name="Ajovy",
        medication_name_confidence=0.95,
        type=CourseType.PROPHYLAXIS,
        dosage={"dose_value": "225", "dose_rhythm": DoseRhythm.MONTHLY},
        start_date=date(2025, 3, 1),
        raw_transcript="Ajovy 225 mg monatlich seit März",
    )
    draft = wizard.apply_voice(parsed)
    assert draft.selected_medication == "Ajovy"
    assert draft.dosage.dose_value == "225"
    assert draft.dosage.dose_rhythm == DoseRhythm.MONTHLY
    assert draft.start_date == date(2025, 3, 1)


async def test_submit_calls_save_once_and_closes():
    calls = []

    async def save(payload, course_id):
        calls.append((payload, course_id))
        return {"status": "updated"}

    course = MedicationCourse(id="c1", medication_name="Ajovy")
    wizard = MedicationCourseWizard(known_meds=["Ajovy"])
    wizard.open(course)
    result = await wizard.submit(save)

    assert result == {"status": "updated"}
    assert len(calls) == 1
    assert calls[0][0].medication_name == "Ajovy"
    assert calls[0][1] == "c1"
    assert not wizard.is_open


async def test_failed_submit_keeps_draft():
    async def save(payload, course_id):
        return {"status": "error", "error": "offline"}

    wizard = MedicationCourseWizard()
    wizard.open()
    wizard.set_medication_name("Ajovy")
    result = await wizard.submit(save)
    assert result["status"] == "error"
    assert wizard.is_open
    assert wizard.draft.resolved_name == "Ajovy"
