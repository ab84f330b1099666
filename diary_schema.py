from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ReminderType(str, Enum):
    MEDICATION = "medication"
    APPOINTMENT = "appointment"
    TODO = "todo"


class ReminderRepeat(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    WEEKDAYS = "weekdays"


class ReminderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    MISSED = "missed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    FAILED = "failed"


class TimeOfDay(str, Enum):
    MORNING = "morning"
    NOON = "noon"
    EVENING = "evening"
    NIGHT = "night"


class FollowUpIntervalUnit(str, Enum):
    WEEKS = "weeks"
    MONTHS = "months"


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Reminder(BaseModel):
    """One scheduled notification intent as stored in the reminders index."""

    id: Optional[str] = Field(None, description="Document ID")
    user_id: Optional[str] = Field(None, description="Owner of the reminder")
    type: ReminderType = Field(..., description="medication, appointment or todo")
    title: str = Field(..., description="Display title")
    date_time: Optional[datetime] = Field(None, description="Instant the reminder is due")
    repeat: ReminderRepeat = Field(ReminderRepeat.NONE, description="Repeat rhythm")
    notes: Optional[str] = Field(None, description="Free text notes")
    notification_enabled: bool = Field(True, description="Whether notifications fire")
    status: ReminderStatus = Field(ReminderStatus.PENDING, description="Lifecycle status")
    medications: List[str] = Field(default_factory=list, description="Medication names")
    time_of_day: Optional[TimeOfDay] = Field(None, description="Slot within a multi-time series")
    series_id: Optional[str] = Field(None, description="Groups reminders created together")
    follow_up_enabled: bool = Field(False, description="Appointment follow-up planned")
    follow_up_interval_value: Optional[int] = Field(None, ge=1)
    follow_up_interval_unit: Optional[FollowUpIntervalUnit] = None
    next_follow_up_date: Optional[date] = None
    notify_offsets_minutes: List[int] = Field(
        default_factory=list, max_length=4, description="Lead times for pre-notifications"
    )
    snoozed_until: Optional[datetime] = None
    snooze_count: int = 0

    @field_validator("date_time", "snoozed_until")
    @classmethod
    def _assume_utc(cls, value):
        return _aware(value)

    @field_validator("notify_offsets_minutes")
    @classmethod
    def _non_negative_offsets(cls, value: List[int]) -> List[int]:
        if any(offset < 0 for offset in value):
            raise ValueError("notification offsets must be >= 0")
        return value

    @field_validator("medications", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []


class ReminderInput(BaseModel):
    """Form state from which one or more reminders are built."""

    type: ReminderType
    title: str = Field(..., min_length=1)
    date: date
    times: List[str] = Field(default_factory=list, description="HH:MM, one per time of day")
    repeat: ReminderRepeat = ReminderRepeat.NONE
    notes: Optional[str] = None
    notification_enabled: bool = True
    medications: List[str] = Field(default_factory=list)
    times_of_day: List[TimeOfDay] = Field(default_factory=list)
    follow_up_enabled: bool = False
    follow_up_interval_value: Optional[int] = Field(None, ge=1)
    follow_up_interval_unit: Optional[FollowUpIntervalUnit] = None
    notify_offsets_minutes: List[int] = Field(default_factory=list, max_length=4)
    series_id: Optional[str] = None


class DoseUnit(str, Enum):
    MG = "mg"
    G = "g"
    ML = "ml"
    TABLETS = "Tabletten"
    DROPS = "Tropfen"
    INJECTIONS = "Spritzen"
    PUFFS = "Hub"


class DoseRhythm(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    AS_NEEDED = "as_needed"


class AdministrationRoute(str, Enum):
    ORAL = "oral"
    SUBCUTANEOUS = "sc"
    INTRAMUSCULAR = "im"
    NASAL = "nasal"
    OTHER = "other"


class DoseSchedule(BaseModel):
    """Units taken in each slot of the day."""

    morning: int = Field(0, ge=0, le=9)
    noon: int = Field(0, ge=0, le=9)
    evening: int = Field(0, ge=0, le=9)
    night: int = Field(0, ge=0, le=9)

    def total(self) -> int:
        return self.morning + self.noon + self.evening + self.night


class MaxPerPeriod(BaseModel):
    """Upper bound for as-needed medication, e.g. 10 per month."""

    count: int = Field(..., ge=1)
    period: Optional[Literal["day", "week", "month"]] = None


class StructuredDosage(BaseModel):
    """Normalized dosing regimen of a medication."""

    dose_value: str = Field("", description="Numeric strength, decimal point")
    dose_unit: DoseUnit = DoseUnit.MG
    dose_rhythm: DoseRhythm = DoseRhythm.DAILY
    dose_schedule: DoseSchedule = Field(default_factory=DoseSchedule)
    administration_route: AdministrationRoute = AdministrationRoute.ORAL
    max_per_period: Optional[MaxPerPeriod] = None


class CourseType(str, Enum):
    PROPHYLAXIS = "prophylaxis"
    ACUTE = "acute"
    OTHER = "other"


class BaselineDaysRange(str, Enum):
    UNDER_5 = "<5"
    FROM_5_TO_10 = "5-10"
    FROM_11_TO_15 = "11-15"
    FROM_16_TO_20 = "16-20"
    OVER_20 = ">20"
    UNKNOWN = "unknown"


class ImpairmentLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    UNKNOWN = "unknown"


class DiscontinuationReason(str, Enum):
    NO_EFFECT = "no_effect"
    SIDE_EFFECTS = "side_effects"
    MIGRAINE_IMPROVED = "migraine_improved"
    PREGNANCY_WISH = "pregnancy_wish"
    OTHER = "other"


class MedicationCourseInput(BaseModel):
    """Fields collected by the course wizard and persisted as one unit."""

    medication_name: str = Field(..., min_length=1)
    type: CourseType = CourseType.PROPHYLAXIS
    dose_text: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool = True
    baseline_migraine_days: Optional[BaselineDaysRange] = None
    baseline_acute_med_days: Optional[BaselineDaysRange] = None
    baseline_triptan_doses_per_month: Optional[int] = Field(None, ge=0)
    baseline_impairment_level: Optional[ImpairmentLevel] = None
    subjective_effectiveness: Optional[int] = Field(None, ge=0, le=10)
    had_side_effects: bool = False
    side_effects_text: Optional[str] = None
    discontinuation_reason: Optional[DiscontinuationReason] = None
    discontinuation_details: Optional[str] = None
    note_for_physician: Optional[str] = None


class MedicationCourse(MedicationCourseInput):
    """A historical or ongoing treatment record."""

    id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PatientData(BaseModel):
    """Patient header of the medication plan export."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    street: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    phone: Optional[str] = None
    health_insurance: Optional[str] = None
    insurance_number: Optional[str] = None


class ClinicianData(BaseModel):
    """Treating physician listed on the medication plan export."""

    title: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    specialty: Optional[str] = None
    street: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    phone: Optional[str] = None


class PainLevel(str, Enum):
    LIGHT = "leicht"
    MEDIUM = "mittel"
    STRONG = "stark"
    VERY_STRONG = "sehr_stark"


class MedicationIntake(BaseModel):
    """Dose of one medication taken for an entry, in quarter tablets."""

    medication_name: str = Field(..., min_length=1)
    dose_quarters: int = Field(4, ge=1, le=16)


class PainEntry(BaseModel):
    """A headache diary entry."""

    id: Optional[str] = None
    user_id: Optional[str] = None
    timestamp_created: Optional[datetime] = None
    selected_date: Optional[date] = None
    selected_time: Optional[str] = Field(None, description="HH:MM in the reference zone")
    pain_level: PainLevel = PainLevel.MEDIUM
    medications: List[str] = Field(default_factory=list)
    medication_intakes: List[MedicationIntake] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator("timestamp_created")
    @classmethod
    def _assume_utc(cls, value):
        return _aware(value)

    @field_validator("medications", "medication_intakes", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []


class ContextNote(BaseModel):
    """A free-text context note, usually voice captured. Soft-deleted via deleted_at."""

    id: Optional[str] = None
    user_id: Optional[str] = None
    text: str
    occurred_at: datetime
    deleted_at: Optional[datetime] = None

    @field_validator("occurred_at", "deleted_at")
    @classmethod
    def _assume_utc(cls, value):
        return _aware(value)


class PainEntryItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["pain_entry"] = "pain_entry"
    timestamp: datetime
    record: PainEntry


class ContextNoteItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["context_note"] = "context_note"
    timestamp: datetime
    record: ContextNote


TimelineItem = Annotated[Union[PainEntryItem, ContextNoteItem], Field(discriminator="kind")]


class ParsedMedicationCourse(BaseModel):
    """Best-effort reading of a spoken course description, shown for confirmation."""

    medication_name: Optional[str] = None
    medication_name_confidence: float = Field(0.0, ge=0.0, le=1.0)
    type: Optional[CourseType] = None
    dosage: dict = Field(default_factory=dict, description="Partial StructuredDosage fields")
    start_date: Optional[date] = None
    is_active: bool = True
    raw_transcript: str = ""
