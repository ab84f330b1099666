"""Medication plan export for MigraineMinder MCP server."""

import inspect
from datetime import date
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from elasticsearch import AsyncElasticsearch
from fastmcp import Context
from pydantic import ValidationError

from diary_schema import ClinicianData, CourseType, DiscontinuationReason, MedicationCourse, PatientData
from tools.course_tools import fetch_courses
from utils.errors import ValidationFailed

# Receives the plan payload and returns the rendered PDF document
PdfRenderer = Callable[[Dict[str, Any]], Union[bytes, Awaitable[bytes]]]

TYPE_LABELS = {
    CourseType.PROPHYLAXIS: "Prophylaxe",
    CourseType.ACUTE: "Akutmedikation",
    CourseType.OTHER: "Sonstige",
}

INDICATIONS = {
    CourseType.PROPHYLAXIS: "Migräneprophylaxe",
    CourseType.ACUTE: "Akute Migräne",
    CourseType.OTHER: "Kopfschmerz",
}

DISCONTINUATION_LABELS = {
    DiscontinuationReason.NO_EFFECT: "Keine Wirkung",
    DiscontinuationReason.SIDE_EFFECTS: "Nebenwirkungen",
    DiscontinuationReason.MIGRAINE_IMPROVED: "Besserung",
    DiscontinuationReason.PREGNANCY_WISH: "Kinderwunsch",
    DiscontinuationReason.OTHER: "Sonstige",
}


def format_date(value: Optional[date]) -> str:
    return value.strftime("%d.%m.%Y") if value else "?"


def format_period(course: MedicationCourse) -> str:
    if course.is_active:
        return f"seit {format_date(course.start_date)}" if course.start_date else "aktuell"
    return f"{format_date(course.start_date)} - {format_date(course.end_date)}"


def course_row(course: MedicationCourse) -> Dict[str, Any]:
    """One table row of the plan."""
    effectiveness = (
        f"{course.subjective_effectiveness}/10" if course.subjective_effectiveness is not None else "-"
    )
    return {
        "medication": course.medication_name,
        "type": TYPE_LABELS[course.type],
        "indication": INDICATIONS[course.type],
        "dose": course.dose_text or "-",
        "period": format_period(course),
        "effectiveness": effectiveness,
        "side_effects": (course.side_effects_text or "ja") if course.had_side_effects else "-",
        "discontinuation": (
            DISCONTINUATION_LABELS[course.discontinuation_reason] if course.discontinuation_reason else "-"
        ),
        "discontinuation_details": course.discontinuation_details,
        "note_for_physician": course.note_for_physician,
    }


def build_medication_plan(
    courses: Sequence[MedicationCourse],
    patient: Optional[PatientData] = None,
    clinicians: Optional[Sequence[ClinicianData]] = None,
    created: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Assemble the payload a PDF renderer turns into the medication plan.

    Sections: active prophylaxis, active acute/other medication, and past
    courses (newest start first).

    Args:
        courses: The user's medication courses
        patient: Optional patient header
        clinicians: Treating physicians to list
        created: Creation date printed on the plan (defaults to today)

    Returns:
        Dict with metadata and the three sections of course rows
    """
    active = [c for c in courses if c.is_active]
    past = sorted(
        (c for c in courses if not c.is_active),
        key=lambda c: c.start_date or date.min,
        reverse=True,
    )
    return {
        "title": "Medikationsplan Migräne",
        "created": format_date(created or date.today()),
        "patient": patient.model_dump(mode="json") if patient else None,
        "clinicians": [c.model_dump(mode="json") for c in clinicians or []],
        "active_prophylaxis": [course_row(c) for c in active if c.type == CourseType.PROPHYLAXIS],
        "active_acute": [course_row(c) for c in active if c.type != CourseType.PROPHYLAXIS],
        "past_courses": [course_row(c) for c in past],
    }


async def export_medication_plan_impl(
    es: AsyncElasticsearch,
    es_index: str,
    user_id: str,
    renderer: PdfRenderer,
    output_dir: str,
    patient: Optional[dict] = None,
    clinicians: Optional[List[dict]] = None,
    course_ids: Optional[List[str]] = None,
    ctx: Context = None,
) -> Dict[str, Any]:
    """
    Implementation for exporting the medication plan as a PDF file.

    Rendering is delegated to `renderer`; this function only gathers the
    courses, builds the payload and writes the returned bytes to output_dir.

    Returns:
        Dict with status "exported", the file path and its size
    """
    try:
        try:
            patient_data = PatientData.model_validate(patient) if patient else None
            clinician_data = [ClinicianData.model_validate(c) for c in clinicians or []]
        except ValidationError as e:
            raise ValidationFailed(f"Invalid export metadata: {e}") from e

        courses = await fetch_courses(es, es_index, user_id)
        if course_ids is not None:
            wanted = set(course_ids)
            courses = [c for c in courses if c.id in wanted]

        payload = build_medication_plan(courses, patient_data, clinician_data)
        document = renderer(payload)
        if inspect.isawaitable(document):
            document = await document

        target = Path(output_dir)
        target.mkdir(parents=True, exist_ok=True)
        path = target / f"medikationsplan_{date.today().isoformat()}.pdf"
        path.write_bytes(document)

        if ctx:
            await ctx.info(f"Exported medication plan with {len(courses)} course(s) to {path}")
        return {"status": "exported", "path": str(path), "bytes": len(document), "courses": len(courses)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to export medication plan: {e}")
        return {"status": "error", "error": str(e)}
