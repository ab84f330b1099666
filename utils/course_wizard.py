"""Four-step medication course wizard: one draft owned by one wizard instance."""

from datetime import date
from typing import Awaitable, Callable, Iterable, Optional

from pydantic import BaseModel, Field

from diary_schema import (
    BaselineDaysRange,
    CourseType,
    DiscontinuationReason,
    ImpairmentLevel,
    MedicationCourse,
    MedicationCourseInput,
    ParsedMedicationCourse,
    StructuredDosage,
)
from utils.dosage_utils import build_dose_text, default_structured_dosage, dosage_from_text, merge_dosage
from utils.errors import ValidationFailed

CUSTOM_MEDICATION = "__custom__"

FIRST_STEP = 1
LAST_STEP = 4

STEP_TITLES = {
    1: "Medikament",
    2: "Zeitraum",
    3: "Ausgangslage",
    4: "Wirkung & Verträglichkeit",
}


class MedicationCourseDraft(BaseModel):
    """Everything the wizard collects across its steps."""

    # Step 1
    selected_medication: str = Field("", description="Known medication name or the custom sentinel")
    custom_medication_name: str = ""
    type: CourseType = CourseType.PROPHYLAXIS
    dosage: StructuredDosage = Field(default_factory=StructuredDosage)
    # Step 2
    is_active: bool = True
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    # Step 3
    baseline_migraine_days: Optional[BaselineDaysRange] = None
    baseline_acute_med_days: Optional[BaselineDaysRange] = None
    baseline_triptan_doses_per_month: Optional[int] = Field(None, ge=0)
    baseline_impairment_level: Optional[ImpairmentLevel] = None
    # Step 4
    subjective_effectiveness: Optional[int] = Field(None, ge=0, le=10)
    had_side_effects: bool = False
    side_effects_text: str = ""
    discontinuation_reason: Optional[DiscontinuationReason] = None
    discontinuation_details: str = ""
    note_for_physician: str = ""

    @property
    def resolved_name(self) -> str:
        if self.selected_medication == CUSTOM_MEDICATION:
            return self.custom_medication_name.strip()
        return self.selected_medication.strip()


def draft_from_course(course: MedicationCourse, known_meds: Iterable[str] = ()) -> MedicationCourseDraft:
    """Prefill a draft from a stored course, decoding its dose text."""
    known = set(known_meds)
    if course.medication_name in known:
        selected, custom = course.medication_name, ""
    else:
        selected, custom = CUSTOM_MEDICATION, course.medication_name
    return MedicationCourseDraft(
        selected_medication=selected,
        custom_medication_name=custom,
        type=course.type,
        dosage=dosage_from_text(course.dose_text, course.type),
        is_active=course.is_active,
        start_date=course.start_date,
        end_date=course.end_date,
        baseline_migraine_days=course.baseline_migraine_days,
        baseline_acute_med_days=course.baseline_acute_med_days,
        baseline_triptan_doses_per_month=course.baseline_triptan_doses_per_month,
        baseline_impairment_level=course.baseline_impairment_level,
        subjective_effectiveness=course.subjective_effectiveness,
        had_side_effects=course.had_side_effects,
        side_effects_text=course.side_effects_text or "",
        discontinuation_reason=course.discontinuation_reason,
        discontinuation_details=course.discontinuation_details or "",
        note_for_physician=course.note_for_physician or "",
    )


class MedicationCourseWizard:
    """
    Linear step machine over a single MedicationCourseDraft.

    Only forward navigation out of step 1 is guarded (a medication name is
    required). Going back never clears values. Closing drops the draft, and
    nothing is persisted before submit().
    """

    def __init__(self, known_meds: Optional[Iterable[str]] = None):
        self.known_meds = list(known_meds or [])
        self.step = FIRST_STEP
        self.draft = MedicationCourseDraft()
        self.editing: Optional[MedicationCourse] = None
        self.is_open = False
        self._hydrated = False

    def open(self, existing: Optional[MedicationCourse] = None) -> MedicationCourseDraft:
        """
        Open the wizard, hydrating the draft at most once per session.

        Calling open() again while already open keeps the current draft.
        """
        if self.is_open and self._hydrated:
            return self.draft
        self.is_open = True
        self.step = FIRST_STEP
        self.editing = existing
        if existing is not None:
            self.draft = draft_from_course(existing, self.known_meds)
        else:
            self.draft = MedicationCourseDraft(dosage=default_structured_dosage(CourseType.PROPHYLAXIS))
        self._hydrated = True
        return self.draft

    def close(self) -> None:
        self.is_open = False
        self._hydrated = False
        self.editing = None
        self.step = FIRST_STEP
        self.draft = MedicationCourseDraft()

    @property
    def is_edit(self) -> bool:
        return self.editing is not None

    def can_proceed(self) -> bool:
        if self.step == FIRST_STEP:
            return bool(self.draft.resolved_name)
        return True

    def next_step(self) -> int:
        """Advance one step; stays put when the guard rejects or on the last step."""
        if self.step < LAST_STEP and self.can_proceed():
            self.step += 1
        return self.step

    def back(self) -> int:
        if self.step > FIRST_STEP:
            self.step -= 1
        return self.step

    def update(self, **fields) -> MedicationCourseDraft:
        """Replace draft fields; values are validated against the draft model."""
        data = self.draft.model_dump()
        data.update(fields)
        self.draft = MedicationCourseDraft.model_validate(data)
        return self.draft

    def set_type(self, course_type: CourseType) -> MedicationCourseDraft:
        """Switch the course type; an untouched dosage follows the type's default rhythm."""
        dosage = self.draft.dosage
        if dosage == default_structured_dosage(self.draft.type):
            dosage = default_structured_dosage(course_type)
        return self.update(type=course_type, dosage=dosage)

    def _name_fields(self, name: str) -> dict:
        if name in self.known_meds:
            return {"selected_medication": name, "custom_medication_name": ""}
        return {"selected_medication": CUSTOM_MEDICATION, "custom_medication_name": name}

    def set_medication_name(self, name: str) -> MedicationCourseDraft:
        """Pick a known medication by name, or enter it as a custom one."""
        return self.update(**self._name_fields(name.strip()))

    def apply_voice(self, parsed: ParsedMedicationCourse) -> MedicationCourseDraft:
        """Copy the confirmed fields of a voice parse into the draft."""
        fields = {}
        if parsed.medication_name:
            fields.update(self._name_fields(parsed.medication_name))
        if parsed.type:
            fields["type"] = parsed.type
        if parsed.dosage:
            base = default_structured_dosage(parsed.type or self.draft.type)
            fields["dosage"] = merge_dosage(base, parsed.dosage)
        if parsed.start_date:
            fields["start_date"] = parsed.start_date
        fields["is_active"] = parsed.is_active
        return self.update(**fields)

    def build_submission(self) -> MedicationCourseInput:
        """
        Package the whole draft as one course payload.

        Raises:
            ValidationFailed: When no medication name is set
        """
        draft = self.draft
        if not draft.resolved_name:
            raise ValidationFailed("Medication name is required")
        inactive = not draft.is_active
        return MedicationCourseInput(
            medication_name=draft.resolved_name,
            type=draft.type,
            dose_text=build_dose_text(draft.dosage) or None,
            start_date=draft.start_date,
            end_date=draft.end_date if inactive else None,
            is_active=draft.is_active,
            baseline_migraine_days=draft.baseline_migraine_days,
            baseline_acute_med_days=draft.baseline_acute_med_days,
            baseline_triptan_doses_per_month=draft.baseline_triptan_doses_per_month,
            baseline_impairment_level=draft.baseline_impairment_level,
            subjective_effectiveness=draft.subjective_effectiveness,
            had_side_effects=draft.had_side_effects,
            side_effects_text=(draft.side_effects_text.strip() or None) if draft.had_side_effects else None,
            discontinuation_reason=draft.discontinuation_reason if inactive else None,
            discontinuation_details=(draft.discontinuation_details.strip() or None) if inactive else None,
            note_for_physician=draft.note_for_physician.strip() or None,
        )

    async def submit(self, save: Callable[[MedicationCourseInput, Optional[str]], Awaitable[dict]]) -> dict:
        """
        Persist the draft with one save call, then close on success.

        Args:
            save: Coroutine taking the payload and the course id (None for create)

        Returns:
            Whatever the save call returned
        """
        payload = self.build_submission()
        course_id = self.editing.id if self.editing else None
        result = await save(payload, course_id)
        if result.get("status") != "error":
            self.close()
        return result
