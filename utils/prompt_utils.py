"""Prompt generation utilities for MigraineMinder."""

from diary_schema import ParsedMedicationCourse
from utils.dosage_utils import build_dose_text, default_structured_dosage, merge_dosage
from utils.voice_utils import confidence_label


def generate_course_review_prompt(parsed: ParsedMedicationCourse) -> str:
    """
    Generate human-readable review prompt for a voice-parsed medication course.

    Args:
        parsed: Result of the voice parser

    Returns:
        Formatted review prompt string
    """
    if parsed.medication_name:
        name_line = (
            f"Medication: {parsed.medication_name} "
            f"({confidence_label(parsed.medication_name_confidence)}, "
            f"{parsed.medication_name_confidence:.0%})\n"
        )
    else:
        name_line = "Medication: not recognized\n"

    dose_text = ""
    if parsed.dosage:
        dose_text = build_dose_text(merge_dosage(default_structured_dosage(parsed.type), parsed.dosage))

    summary = (
        f"{name_line}"
        f"Type: {parsed.type.value if parsed.type else 'unknown'}\n"
        f"Dose: {dose_text or 'not recognized'}\n"
        f"Start date: {parsed.start_date.isoformat() if parsed.start_date else 'not recognized'}\n"
        f"Still taking: {'yes' if parsed.is_active else 'no'}\n"
        f"Transcript: {parsed.raw_transcript}\n"
    )
    return (
        f"Please review what was understood from the recording before it is applied:\n\n"
        f"{summary}\nIs this information correct?"
    )
