"""Text codec between free-text dose descriptions and StructuredDosage."""

import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from diary_schema import (
    AdministrationRoute,
    CourseType,
    DoseRhythm,
    DoseSchedule,
    DoseUnit,
    MaxPerPeriod,
    StructuredDosage,
)

ROUTE_TAGS = {
    AdministrationRoute.SUBCUTANEOUS: "s.c.",
    AdministrationRoute.INTRAMUSCULAR: "i.m.",
    AdministrationRoute.NASAL: "nasal",
}

PERIOD_LABELS = {"day": "Tag", "week": "Woche", "month": "Monat"}

DAILY_WORD = "täglich"
WEEKLY_PHRASE = "1×/Woche"
MONTHLY_PHRASE = "1×/Monat"
AS_NEEDED_PHRASE = "bei Bedarf"

_DOSE_PATTERN = re.compile(
    r"(\d+(?:[.,]\d+)?)\s*(mg|g|ml|tabletten?|tabs?|tropfen|drops?|spritzen?|hübe|hub|puffs?)\b"
)
_SCHEDULE_PATTERN = re.compile(r"(?<!\d)(\d)-(\d)-(\d)-(\d)(?!\d)")
_MAX_PATTERN = re.compile(
    r"max\.?\s*(\d+)(?:\s*(?:x|×|mal|tage?|days?)?\s*(?:/|pro|per|im|a)\s*"
    r"(tag|day|woche|week|monat|month))?"
)

_UNIT_PREFIXES: List[Tuple[str, DoseUnit]] = [
    ("tab", DoseUnit.TABLETS),
    ("spritze", DoseUnit.INJECTIONS),
    ("tropfen", DoseUnit.DROPS),
    ("drop", DoseUnit.DROPS),
    ("hub", DoseUnit.PUFFS),
    ("hübe", DoseUnit.PUFFS),
    ("puff", DoseUnit.PUFFS),
]

# First match wins; order is part of the contract.
ROUTE_KEYWORDS: List[Tuple[AdministrationRoute, Tuple[str, ...]]] = [
    (AdministrationRoute.SUBCUTANEOUS, ("s.c.", "subkutan", "subcutaneous", "spritze")),
    (AdministrationRoute.INTRAMUSCULAR, ("i.m.", "intramuskulär", "intramuscular")),
    (AdministrationRoute.NASAL, ("nasal", "nase", "nasenspray")),
]

RHYTHM_KEYWORDS: List[Tuple[DoseRhythm, Tuple[str, ...]]] = [
    (DoseRhythm.MONTHLY, ("monat", "monthly", "a month", "per month")),
    (DoseRhythm.WEEKLY, ("woche", "wöchentlich", "weekly", "a week", "per week")),
    (DoseRhythm.AS_NEEDED, ("bedarf", "as needed", "when needed")),
    (DoseRhythm.DAILY, ("täglich", "tag", "daily", "a day", "per day")),
]

_PERIODS = {
    "tag": "day",
    "day": "day",
    "woche": "week",
    "week": "week",
    "monat": "month",
    "month": "month",
}


def default_structured_dosage(course_type: Optional[CourseType] = None) -> StructuredDosage:
    """Defaults the wizard starts from; acute medication is taken as needed."""
    rhythm = DoseRhythm.AS_NEEDED if course_type == CourseType.ACUTE else DoseRhythm.DAILY
    return StructuredDosage(dose_rhythm=rhythm)


def format_max_per_period(max_per_period: Optional[MaxPerPeriod]) -> str:
    if max_per_period is None:
        return ""
    if max_per_period.period:
        return f"(max. {max_per_period.count}/{PERIOD_LABELS[max_per_period.period]})"
    return f"(max. {max_per_period.count})"


def build_dose_text(dosage: StructuredDosage) -> str:
    """
    Encode a StructuredDosage as the dose text stored on a medication course.

    Parts are emitted in fixed order: strength and unit, route tag (never for
    oral or other), rhythm descriptor. Absent fields are omitted.

    Args:
        dosage: Structured dosage to encode

    Returns:
        Space-joined dose text, e.g. "50 mg 1-0-1-0"
    """
    parts: List[str] = []

    if dosage.dose_value:
        parts.append(f"{dosage.dose_value} {dosage.dose_unit.value}")

    route_tag = ROUTE_TAGS.get(dosage.administration_route)
    if route_tag:
        parts.append(route_tag)

    if dosage.dose_rhythm == DoseRhythm.DAILY:
        schedule = dosage.dose_schedule
        if schedule.total() > 0:
            parts.append(f"{schedule.morning}-{schedule.noon}-{schedule.evening}-{schedule.night}")
        else:
            parts.append(DAILY_WORD)
    elif dosage.dose_rhythm == DoseRhythm.WEEKLY:
        parts.append(WEEKLY_PHRASE)
    elif dosage.dose_rhythm == DoseRhythm.MONTHLY:
        parts.append(MONTHLY_PHRASE)
    elif dosage.dose_rhythm == DoseRhythm.AS_NEEDED:
        parts.append(AS_NEEDED_PHRASE)
        parts.append(format_max_per_period(dosage.max_per_period))

    return " ".join(part for part in parts if part)


def _normalize_unit(token: str) -> DoseUnit:
    for prefix, unit in _UNIT_PREFIXES:
        if token.startswith(prefix):
            return unit
    return DoseUnit(token)


def _rule_dose(text: str, result: Dict[str, Any]) -> None:
    match = _DOSE_PATTERN.search(text)
    if match:
        result["dose_value"] = match.group(1).replace(",", ".")
        result["dose_unit"] = _normalize_unit(match.group(2))


def _rule_route(text: str, result: Dict[str, Any]) -> None:
    for route, keywords in ROUTE_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            result["administration_route"] = route
            return


def _rule_rhythm(text: str, result: Dict[str, Any]) -> None:
    # The max clause ("max. 10/Monat") must not decide the rhythm.
    text = _MAX_PATTERN.sub(" ", text)
    for rhythm, keywords in RHYTHM_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            result["dose_rhythm"] = rhythm
            return


def _rule_schedule(text: str, result: Dict[str, Any]) -> None:
    match = _SCHEDULE_PATTERN.search(text)
    if match:
        morning, noon, evening, night = (int(group) for group in match.groups())
        result["dose_schedule"] = DoseSchedule(
            morning=morning, noon=noon, evening=evening, night=night
        )
        result["dose_rhythm"] = DoseRhythm.DAILY


def _rule_max(text: str, result: Dict[str, Any]) -> None:
    match = _MAX_PATTERN.search(text)
    if match and int(match.group(1)) > 0:
        period = _PERIODS.get(match.group(2)) if match.group(2) else None
        result["max_per_period"] = MaxPerPeriod(count=int(match.group(1)), period=period)


# Evaluated in this order; the schedule rule runs after the rhythm rule so an
# explicit d-d-d-d pattern overrides any rhythm keyword.
DECODE_RULES: List[Callable[[str, Dict[str, Any]], None]] = [
    _rule_dose,
    _rule_route,
    _rule_rhythm,
    _rule_schedule,
    _rule_max,
]


def parse_dose_text(text: Optional[str]) -> Dict[str, Any]:
    """
    Best-effort extraction of StructuredDosage fields from free text.

    Never raises: fields that are not recognized are absent from the result
    and the caller merges the partial over its defaults.

    Args:
        text: Dose description, typed or transcribed

    Returns:
        Dict with any of the StructuredDosage field names
    """
    result: Dict[str, Any] = {}
    if not text:
        return result
    normalized = text.lower().strip()
    for rule in DECODE_RULES:
        rule(normalized, result)
    return result


def merge_dosage(base: StructuredDosage, partial: Dict[str, Any]) -> StructuredDosage:
    return base.model_copy(update=partial)


def dosage_from_text(text: Optional[str], course_type: Optional[CourseType] = None) -> StructuredDosage:
    """Decode stored dose text into a complete StructuredDosage for editing."""
    return merge_dosage(default_structured_dosage(course_type), parse_dose_text(text))
