"""Heuristic parsing of spoken medication course descriptions."""

import re
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from diary_schema import CourseType, ParsedMedicationCourse
from utils.date_utils import add_months
from utils.dosage_utils import parse_dose_text

# Catalog of common migraine medications with their usual course type
KNOWN_MEDICATIONS: List[Tuple[str, CourseType]] = [
    # CGRP antibodies
    ("Ajovy", CourseType.PROPHYLAXIS),
    ("Fremanezumab", CourseType.PROPHYLAXIS),
    ("Aimovig", CourseType.PROPHYLAXIS),
    ("Erenumab", CourseType.PROPHYLAXIS),
    ("Emgality", CourseType.PROPHYLAXIS),
    ("Galcanezumab", CourseType.PROPHYLAXIS),
    ("Vyepti", CourseType.PROPHYLAXIS),
    ("Eptinezumab", CourseType.PROPHYLAXIS),
    # Beta blockers
    ("Propranolol", CourseType.PROPHYLAXIS),
    ("Metoprolol", CourseType.PROPHYLAXIS),
    ("Bisoprolol", CourseType.PROPHYLAXIS),
    # Antiepileptics
    ("Topiramat", CourseType.PROPHYLAXIS),
    ("Topamax", CourseType.PROPHYLAXIS),
    ("Valproat", CourseType.PROPHYLAXIS),
    # Antidepressants
    ("Amitriptylin", CourseType.PROPHYLAXIS),
    ("Venlafaxin", CourseType.PROPHYLAXIS),
    ("Flunarizin", CourseType.PROPHYLAXIS),
    ("Magnesium", CourseType.PROPHYLAXIS),
    ("Botox", CourseType.PROPHYLAXIS),
    # Triptans
    ("Sumatriptan", CourseType.ACUTE),
    ("Rizatriptan", CourseType.ACUTE),
    ("Maxalt", CourseType.ACUTE),
    ("Zolmitriptan", CourseType.ACUTE),
    ("Eletriptan", CourseType.ACUTE),
    ("Relpax", CourseType.ACUTE),
    ("Naratriptan", CourseType.ACUTE),
    ("Almotriptan", CourseType.ACUTE),
    ("Frovatriptan", CourseType.ACUTE),
    # Analgesics
    ("Ibuprofen", CourseType.ACUTE),
    ("Paracetamol", CourseType.ACUTE),
    ("Aspirin", CourseType.ACUTE),
    ("Novaminsulfon", CourseType.ACUTE),
    ("Metamizol", CourseType.ACUTE),
    ("Diclofenac", CourseType.ACUTE),
    ("Naproxen", CourseType.ACUTE),
    # Antiemetics
    ("MCP", CourseType.ACUTE),
    ("Metoclopramid", CourseType.ACUTE),
    ("Domperidon", CourseType.ACUTE),
]

USER_EXACT_CONFIDENCE = 0.95
CATALOG_EXACT_CONFIDENCE = 0.9
FUZZY_MIN_CONFIDENCE = 0.5
TOKEN_GUESS_CONFIDENCE = 0.4
FUZZY_TOLERANCE = 0.3
MIN_FUZZY_WORD_LENGTH = 4

MONTHS: Dict[str, int] = {
    "januar": 1, "jänner": 1, "jan": 1, "january": 1,
    "februar": 2, "feb": 2, "february": 2,
    "märz": 3, "maerz": 3, "mar": 3, "march": 3,
    "april": 4, "apr": 4,
    "mai": 5, "may": 5,
    "juni": 6, "jun": 6, "june": 6,
    "juli": 7, "jul": 7, "july": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "oktober": 10, "okt": 10, "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "dezember": 12, "dez": 12, "december": 12, "dec": 12,
}

NUMBER_WORDS = {
    "ein": 1, "einem": 1, "eine": 1, "einer": 1, "one": 1, "a": 1,
    "zwei": 2, "two": 2, "drei": 3, "three": 3, "vier": 4, "four": 4,
    "fünf": 5, "five": 5, "sechs": 6, "six": 6,
}

PROPHYLAXIS_KEYWORDS = ("prophylaxe", "vorbeugen", "vorbeugend", "präventiv", "prophylaxis", "preventive")
ACUTE_KEYWORDS = ("akut", "bei bedarf", "anfall", "attacke", "acute", "as needed")
STOPPED_KEYWORDS = (
    "nicht mehr", "abgesetzt", "beendet", "gestoppt",
    "stopped", "no longer", "discontinued", "quit",
)

# Words that are never a medication name when guessing from the dose position
STOPWORDS = {
    "ich", "nehme", "nehm", "habe", "hatte", "genommen", "seit", "mit", "und", "oder",
    "take", "taking", "took", "since", "with", "and", "the", "von", "dann", "jeden",
    "einmal", "zweimal", "dreimal", "täglich", "morgens", "abends", "mittags", "nachts",
}

_MONTH_PATTERN = re.compile(r"\b(?:seit|since|ab|im|in|from)\s+([a-zäöü]+)(?:\s+(\d{4}))?\b")
_RELATIVE_PATTERN = re.compile(
    r"\b(?:seit|since|for)\s+(\d+|[a-zäöü]+)\s+(monat|jahr|woch|month|year|week)"
)
_TOKEN_BEFORE_DOSE = re.compile(r"([a-zäöüß][a-zäöüß\-]{3,})\s+\d+(?:[.,]\d+)?\s*(?:mg|g|ml|tablette|tropfen|spritze|hub)")
_WORDS = re.compile(r"[a-zäöüß]+")


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def _catalog_type(name: str) -> Optional[CourseType]:
    for known, course_type in KNOWN_MEDICATIONS:
        if known.lower() == name.lower():
            return course_type
    return None


def _contains_word(text: str, name: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(name.lower())}(?!\w)", text) is not None


def _fuzzy_best(words: List[str], names: Iterable[str]) -> Optional[Tuple[str, int]]:
    best: Optional[Tuple[str, int]] = None
    for word in words:
        if len(word) < MIN_FUZZY_WORD_LENGTH:
            continue
        for name in names:
            distance = levenshtein(word, name.lower())
            if distance <= int(len(name) * FUZZY_TOLERANCE):
                if best is None or distance < best[1]:
                    best = (name, distance)
    return best


def find_medication(
    transcript: str, user_meds: Iterable[str]
) -> Optional[Tuple[str, Optional[CourseType], float]]:
    """
    Resolve the medication named in a transcript.

    Order: user medications exact, catalog exact, catalog fuzzy, user
    medications fuzzy, then the word right before a dose ("xyz 100 mg").

    Returns:
        (name, course type or None, confidence) or None when nothing plausible
        was found
    """
    normalized = transcript.lower()
    user_meds = [name for name in user_meds if name and name.strip()]

    for name in user_meds:
        if _contains_word(normalized, name):
            return name, _catalog_type(name), USER_EXACT_CONFIDENCE

    for name, course_type in KNOWN_MEDICATIONS:
        if _contains_word(normalized, name):
            return name, course_type, CATALOG_EXACT_CONFIDENCE

    words = _WORDS.findall(normalized)

    best = _fuzzy_best(words, [name for name, _ in KNOWN_MEDICATIONS])
    if best:
        name, distance = best
        confidence = max(FUZZY_MIN_CONFIDENCE, 1 - distance / len(name))
        return name, _catalog_type(name), confidence

    best = _fuzzy_best(words, user_meds)
    if best:
        name, distance = best
        return name, None, max(FUZZY_MIN_CONFIDENCE, 1 - distance / len(name))

    match = _TOKEN_BEFORE_DOSE.search(normalized)
    if match and match.group(1) not in STOPWORDS:
        return match.group(1).capitalize(), None, TOKEN_GUESS_CONFIDENCE

    return None


def parse_course_type(transcript: str) -> Optional[CourseType]:
    normalized = transcript.lower()
    if any(keyword in normalized for keyword in PROPHYLAXIS_KEYWORDS):
        return CourseType.PROPHYLAXIS
    if any(keyword in normalized for keyword in ACUTE_KEYWORDS):
        return CourseType.ACUTE
    return None


def parse_start_date(transcript: str, today: date) -> Optional[date]:
    """
    Resolve a start-date phrase relative to today.

    "seit März" / "since March 2024" give the first of that month; without a
    year, a month still ahead of today means last year. "seit 3 Monaten" and
    "seit einem halben Jahr" count back from today. Dates outside the
    calendar range give None.
    """
    try:
        return _resolve_start_date(transcript.lower(), today)
    except (ValueError, OverflowError):
        return None


def _resolve_start_date(normalized: str, today: date) -> Optional[date]:
    for match in _MONTH_PATTERN.finditer(normalized):
        month = MONTHS.get(match.group(1))
        if month is None:
            continue
        year = int(match.group(2)) if match.group(2) else today.year
        start = date(year, month, 1)
        if start > today and not match.group(2):
            start = date(year - 1, month, 1)
        return start

    if "halben jahr" in normalized or "halbes jahr" in normalized or "half a year" in normalized:
        return add_months(today, -6)

    match = _RELATIVE_PATTERN.search(normalized)
    if match:
        amount_text, unit = match.groups()
        amount = int(amount_text) if amount_text.isdigit() else NUMBER_WORDS.get(amount_text)
        if amount is None:
            return None
        if unit in ("monat", "month"):
            return add_months(today, -amount)
        if unit in ("jahr", "year"):
            return add_months(today, -12 * amount)
        return today - timedelta(weeks=amount)

    return None


def is_still_active(transcript: str) -> bool:
    normalized = transcript.lower()
    return not any(keyword in normalized for keyword in STOPPED_KEYWORDS)


def parse_medication_course_from_voice(
    transcript: Optional[str],
    user_meds: Optional[Iterable[str]] = None,
    today: Optional[date] = None,
) -> ParsedMedicationCourse:
    """
    Best-effort structured guess from a transcribed sentence.

    The result is advisory: callers show it for confirmation before anything
    is applied to a stored course. Never raises; unrecognized input yields no
    medication name and confidence 0.

    Args:
        transcript: Finalized speech-to-text output
        user_meds: Names of the user's own medications
        today: Reference date for start-date phrases (defaults to today)

    Returns:
        ParsedMedicationCourse including the raw transcript
    """
    transcript = transcript or ""
    result = ParsedMedicationCourse(raw_transcript=transcript)
    if not transcript.strip():
        return result

    today = today or date.today()

    found = find_medication(transcript, user_meds or [])
    if found:
        result.medication_name, result.type, confidence = found
        result.medication_name_confidence = round(confidence, 2)

    explicit_type = parse_course_type(transcript)
    if explicit_type:
        result.type = explicit_type

    result.dosage = parse_dose_text(transcript)
    result.start_date = parse_start_date(transcript, today)
    result.is_active = is_still_active(transcript)
    return result


def confidence_label(confidence: float) -> str:
    if confidence >= 0.8:
        return "Sicher erkannt"
    if confidence >= 0.6:
        return "Wahrscheinlich"
    return "Unsicher"


class TranscriptSession:
    """
    Collects speech recognition results for one recording.

    Final segments are committed; the interim segment is replaced on every
    update. Stopping drops only the pending interim text.
    """

    def __init__(self):
        self._final: List[str] = []
        self._interim = ""
        self.confidence: Optional[float] = None
        self.is_recording = False

    def start(self) -> None:
        self._final = []
        self._interim = ""
        self.confidence = None
        self.is_recording = True

    def add_result(self, text: str, is_final: bool, confidence: Optional[float] = None) -> None:
        if not self.is_recording:
            return
        if is_final:
            if text.strip():
                self._final.append(text.strip())
            self._interim = ""
            if confidence is not None:
                self.confidence = confidence
        else:
            self._interim = text

    @property
    def committed(self) -> str:
        return " ".join(self._final)

    @property
    def display_text(self) -> str:
        return " ".join(part for part in (self.committed, self._interim.strip()) if part)

    def stop(self) -> str:
        """Stop recording and return the committed transcript."""
        self.is_recording = False
        self._interim = ""
        return self.committed
