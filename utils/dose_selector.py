"""State behind the dose chip, dose bottom sheet and schedule stepper inputs."""

from typing import Dict, Iterable, List, Optional

from diary_schema import DoseSchedule

MIN_DOSE_QUARTERS = 1
MAX_DOSE_QUARTERS = 16
DEFAULT_DOSE_QUARTERS = 4

# (quarters, label) shown as quick-select buttons
DOSE_QUICK_OPTIONS = [(1, "¼"), (2, "½"), (3, "¾"), (4, "1"), (6, "1½"), (8, "2")]

_FRACTIONS = {0: "", 1: "¼", 2: "½", 3: "¾"}

SCHEDULE_MIN = 0
SCHEDULE_MAX = 9
SCHEDULE_SLOTS = ("morning", "noon", "evening", "night")


def clamp_quarters(quarters: int) -> int:
    return max(MIN_DOSE_QUARTERS, min(MAX_DOSE_QUARTERS, quarters))


def format_dose_from_quarters(quarters: int) -> str:
    """
    Format a quarter-tablet count for display.

    Examples:
        format_dose_from_quarters(2)  -> "½"
        format_dose_from_quarters(4)  -> "1"
        format_dose_from_quarters(6)  -> "1½"
    """
    whole, rest = divmod(max(quarters, 0), 4)
    if whole == 0:
        return _FRACTIONS[rest] or "0"
    return f"{whole}{_FRACTIONS[rest]}"


def dose_unit_label(quarters: int) -> str:
    return "Tablette" if quarters == 4 else "Tabletten"


def increment_dose(quarters: int) -> int:
    return clamp_quarters(quarters + 1)


def decrement_dose(quarters: int) -> int:
    return clamp_quarters(quarters - 1)


class DoseSelection:
    """
    Selected medications with their dose in quarter tablets.

    Selection order is preserved so the intake list renders in the order the
    user picked the medications.
    """

    def __init__(self, medications: Optional[Iterable[str]] = None):
        self._doses: Dict[str, int] = {}
        for name in medications or []:
            self._doses[name] = DEFAULT_DOSE_QUARTERS

    @classmethod
    def from_intakes(cls, names: Iterable[str], intakes: Optional[Iterable[dict]] = None) -> "DoseSelection":
        """Hydrate from an entry's medication names and its stored intakes."""
        stored = {i["medication_name"]: i["dose_quarters"] for i in intakes or []}
        selection = cls()
        for name in names:
            selection._doses[name] = clamp_quarters(stored.get(name, DEFAULT_DOSE_QUARTERS))
        return selection

    def toggle(self, name: str) -> bool:
        """Select or deselect a medication. Returns True when it is now selected."""
        if name in self._doses:
            del self._doses[name]
            return False
        self._doses[name] = DEFAULT_DOSE_QUARTERS
        return True

    def is_selected(self, name: str) -> bool:
        return name in self._doses

    def get_dose(self, name: str) -> int:
        return self._doses.get(name, DEFAULT_DOSE_QUARTERS)

    def set_dose(self, name: str, quarters: int) -> None:
        if name not in self._doses:
            raise KeyError(name)
        self._doses[name] = clamp_quarters(quarters)

    def increment(self, name: str) -> int:
        self.set_dose(name, increment_dose(self.get_dose(name)))
        return self._doses[name]

    def decrement(self, name: str) -> int:
        self.set_dose(name, decrement_dose(self.get_dose(name)))
        return self._doses[name]

    def reset(self, name: str) -> None:
        self.set_dose(name, DEFAULT_DOSE_QUARTERS)

    @property
    def names(self) -> List[str]:
        return list(self._doses)

    def to_intakes(self) -> List[dict]:
        return [
            {"medication_name": name, "dose_quarters": quarters}
            for name, quarters in self._doses.items()
        ]


class ScheduleStepper:
    """Per-slot steppers for the morning/noon/evening/night dose schedule."""

    def __init__(self, schedule: Optional[DoseSchedule] = None):
        self.schedule = schedule or DoseSchedule()

    def step(self, slot: str, delta: int) -> DoseSchedule:
        if slot not in SCHEDULE_SLOTS:
            raise ValueError(f"Unknown schedule slot: {slot}")
        value = getattr(self.schedule, slot) + delta
        value = max(SCHEDULE_MIN, min(SCHEDULE_MAX, value))
        self.schedule = self.schedule.model_copy(update={slot: value})
        return self.schedule

    def can_increment(self, slot: str) -> bool:
        return getattr(self.schedule, slot) < SCHEDULE_MAX

    def can_decrement(self, slot: str) -> bool:
        return getattr(self.schedule, slot) > SCHEDULE_MIN
