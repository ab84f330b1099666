"""Relevance filtering, series grouping and lifecycle helpers for reminders."""

import hashlib
import re
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ValidationError

from diary_schema import (
    FollowUpIntervalUnit,
    Reminder,
    ReminderInput,
    ReminderRepeat,
    ReminderStatus,
    ReminderType,
)
from utils.date_utils import (
    REFERENCE_TZ,
    add_months,
    at_reference_time,
    end_of_day,
    reference_date,
    start_of_day,
    to_reference,
)

MEDICATION_WINDOW = timedelta(hours=24)
APPOINTMENT_WINDOW = timedelta(hours=48)

MEDICATION_RANGES = {
    "today": None,
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "all": None,
}
APPOINTMENT_LIMITS = {"1": 1, "3": 3, "all": None}

DEFAULT_APPOINTMENT_OFFSETS = [1440, 120]
OVERDUE_AFTER = timedelta(hours=1)
MAX_NOTIFY_OFFSETS = 4

NOTIFY_OFFSET_PRESETS = [
    (0, "Zur Terminzeit"),
    (15, "15 Min vorher"),
    (60, "1 Std vorher"),
    (120, "2 Std vorher"),
    (1440, "1 Tag vorher"),
    (2880, "2 Tage vorher"),
    (10080, "1 Woche vorher"),
]

DEFAULT_TIMES_OF_DAY = {
    "morning": "08:00",
    "noon": "12:00",
    "evening": "18:00",
    "night": "22:00",
}

_TIME_OF_DAY_SUFFIX = re.compile(
    r"\s*\((Morgens|Mittags|Abends|Nachts|Vormittags|Nachmittags)\)\s*$", re.IGNORECASE
)


# --- Input hygiene ---


def coerce_reminders(records: Iterable[Any]) -> List[Reminder]:
    """
    Validate raw reminder records, dropping malformed ones.

    A single bad record must never break a view, so validation errors are
    skipped instead of raised.

    Args:
        records: Reminder models or dicts as read from the reminders index

    Returns:
        List of valid Reminder models
    """
    reminders: List[Reminder] = []
    for record in records:
        if isinstance(record, Reminder):
            reminders.append(record)
            continue
        try:
            reminders.append(Reminder.model_validate(record))
        except (ValidationError, TypeError):
            continue
    return reminders


def _dated(reminders: Iterable[Reminder]) -> List[Reminder]:
    return [r for r in reminders if r.date_time is not None]


def _by_date_time(reminders: Iterable[Reminder]) -> List[Reminder]:
    return sorted(_dated(reminders), key=lambda r: r.date_time)


# --- Relevance ---


def is_overdue(reminder: Reminder, now: datetime) -> bool:
    return (
        reminder.date_time is not None
        and reminder.status == ReminderStatus.PENDING
        and reminder.date_time < now
    )


def is_currently_relevant(reminder: Reminder, now: datetime) -> bool:
    """
    Whether a reminder belongs in the "currently relevant" view.

    Clauses, evaluated in order:
        1. pending and strictly before now (overdue)
        2. due today, up to the end of the reference-zone day
        3. medication due within the next 24 hours
        4. appointment due within the next 48 hours
    """
    due = reminder.date_time
    if due is None:
        return False
    if is_overdue(reminder, now):
        return True
    if start_of_day(now) <= due <= end_of_day(now):
        return True
    if reminder.type == ReminderType.MEDICATION and now <= due <= now + MEDICATION_WINDOW:
        return True
    if reminder.type == ReminderType.APPOINTMENT and now <= due <= now + APPOINTMENT_WINDOW:
        return True
    return False


def filter_currently_relevant(reminders: Sequence[Reminder], now: datetime) -> List[Reminder]:
    return [r for r in _by_date_time(reminders) if is_currently_relevant(r, now)]


def filter_medication_view(
    reminders: Sequence[Reminder], now: datetime, date_range: str = "all"
) -> List[Reminder]:
    """
    Medication reminders, optionally narrowed to a forward-looking range.

    Pending reminders that are already overdue are always kept, whatever the
    range.

    Args:
        reminders: Reminders to filter
        now: Reference instant
        date_range: One of "today", "7d", "30d", "all"

    Returns:
        Matching medication reminders sorted by date_time
    """
    if date_range not in MEDICATION_RANGES:
        raise ValueError(f"Unknown range: {date_range}")

    medication = [r for r in _by_date_time(reminders) if r.type == ReminderType.MEDICATION]
    if date_range == "all":
        return medication

    window_start = start_of_day(now)
    if date_range == "today":
        window_end = end_of_day(now)
    else:
        window_end = now + MEDICATION_RANGES[date_range]

    return [
        r for r in medication
        if is_overdue(r, now) or window_start <= r.date_time <= window_end
    ]


def filter_appointment_view(
    reminders: Sequence[Reminder], now: datetime, limit: str = "all"
) -> List[Reminder]:
    """Future appointments, earliest first, optionally only the first 1 or 3."""
    if limit not in APPOINTMENT_LIMITS:
        raise ValueError(f"Unknown limit: {limit}")
    upcoming = [
        r for r in _by_date_time(reminders)
        if r.type == ReminderType.APPOINTMENT and r.date_time >= now
    ]
    count = APPOINTMENT_LIMITS[limit]
    return upcoming if count is None else upcoming[:count]


# --- Grouping ---


class GroupedReminder(BaseModel):
    """One displayable series: reminders created together across times of day."""

    key: str
    reminder: Reminder
    all_reminders: List[Reminder]
    earliest: datetime
    next_occurrence: datetime
    times_per_day: int
    is_recurring: bool
    frequency_label: str
    display_title: str

    @property
    def ids(self) -> List[str]:
        return [r.id for r in self.all_reminders if r.id]


def base_title(title: str) -> str:
    """Strip a time-of-day suffix: "Medikamente (Morgens)" -> "Medikamente"."""
    return _TIME_OF_DAY_SUFFIX.sub("", title).strip()


def group_key(reminder: Reminder) -> str:
    if reminder.series_id:
        return f"series_{reminder.series_id}"
    if reminder.repeat == ReminderRepeat.NONE:
        return f"single_{reminder.id or id(reminder)}"
    return f"series_{reminder.type.value}_{reminder.repeat.value}_{base_title(reminder.title)}"


def frequency_label(repeat: ReminderRepeat, times_per_day: int) -> str:
    if repeat == ReminderRepeat.DAILY:
        return f"Täglich · {times_per_day}× pro Tag" if times_per_day > 1 else "Täglich"
    return {
        ReminderRepeat.WEEKLY: "Wöchentlich",
        ReminderRepeat.MONTHLY: "Monatlich",
        ReminderRepeat.WEEKDAYS: "Werktags",
    }.get(repeat, "")


def group_reminders(reminders: Sequence[Reminder], now: datetime) -> List[GroupedReminder]:
    """
    Merge reminders of the same series into one entry each.

    Reminders sharing a series_id form one group. Without a series_id,
    repeating reminders with the same type, repeat and base title are grouped;
    one-off reminders stay on their own. Reminders without date_time are
    skipped. Groups are ordered by their earliest member.

    Args:
        reminders: Reminders to group
        now: Reference instant used to pick each group's lead reminder

    Returns:
        List of GroupedReminder sorted by earliest date_time
    """
    groups: Dict[str, List[Reminder]] = {}
    for reminder in _dated(reminders):
        groups.setdefault(group_key(reminder), []).append(reminder)

    result: List[GroupedReminder] = []
    for key, members in groups.items():
        ordered = sorted(members, key=lambda r: r.date_time)
        lead = next((r for r in ordered if r.date_time >= now), ordered[0])
        is_recurring = lead.repeat != ReminderRepeat.NONE
        times_per_day = len(ordered) if lead.repeat == ReminderRepeat.DAILY or lead.series_id else 1
        result.append(
            GroupedReminder(
                key=key,
                reminder=lead,
                all_reminders=ordered,
                earliest=ordered[0].date_time,
                next_occurrence=lead.date_time,
                times_per_day=times_per_day,
                is_recurring=is_recurring,
                frequency_label=frequency_label(lead.repeat, times_per_day) if is_recurring else "",
                display_title=base_title(lead.title) if len(ordered) > 1 or is_recurring else lead.title,
            )
        )

    result.sort(key=lambda group: group.earliest)
    return result


# --- Attention ---


def earliest_attention_start(reminder: Reminder) -> datetime:
    """Instant from which a reminder counts for the badge and in-app popups."""
    if reminder.type == ReminderType.APPOINTMENT:
        offsets = reminder.notify_offsets_minutes or DEFAULT_APPOINTMENT_OFFSETS
        return reminder.date_time - timedelta(minutes=max(offsets))
    if reminder.type == ReminderType.MEDICATION and reminder.repeat == ReminderRepeat.MONTHLY:
        return at_reference_time(reference_date(reminder.date_time), "08:00")
    return reminder.date_time


def attention_level(reminder: Reminder, now: datetime) -> str:
    """
    Attention level: "none", "upcoming", "due" or "overdue".

    Only pending reminders with notifications enabled ever need attention.
    """
    if (
        reminder.date_time is None
        or reminder.status != ReminderStatus.PENDING
        or not reminder.notification_enabled
    ):
        return "none"
    if now < earliest_attention_start(reminder):
        return "none"
    if now >= reminder.date_time:
        return "overdue" if now > reminder.date_time + OVERDUE_AFTER else "due"
    return "upcoming"


def filter_attention_reminders(reminders: Sequence[Reminder], now: datetime) -> List[Reminder]:
    return [r for r in reminders if attention_level(r, now) != "none"]


def format_notify_offsets(offsets: Optional[Sequence[int]]) -> str:
    """Human-readable lead times, largest first, e.g. "1 Tag vorher, 2 Std vorher"."""
    if not offsets:
        return "Keine"
    presets = dict(NOTIFY_OFFSET_PRESETS)
    labels = []
    for offset in sorted(offsets, reverse=True):
        if offset in presets:
            labels.append(presets[offset])
        elif offset < 60:
            labels.append(f"{offset} Min vorher")
        elif offset < 1440:
            labels.append(f"{round(offset / 60)} Std vorher")
        else:
            labels.append(f"{round(offset / 1440)} Tag(e) vorher")
    return ", ".join(labels)


def notification_times(reminder: Reminder) -> List[datetime]:
    """Trigger instants: each pre-notification offset plus the due time itself."""
    if reminder.date_time is None or not reminder.notification_enabled:
        return []
    offsets = sorted(set(reminder.notify_offsets_minutes[:MAX_NOTIFY_OFFSETS]) | {0}, reverse=True)
    return [reminder.date_time - timedelta(minutes=offset) for offset in offsets]


def relative_label(event: datetime, now: datetime) -> Dict[str, Any]:
    """
    Calendar-day relative label ("Heute", "Morgen", "In 5 Tagen").

    Day differences are taken between reference-zone calendar dates, not as a
    24h difference.
    """
    day_diff = (reference_date(event) - reference_date(now)).days
    if day_diff < 0:
        label = "Vergangen"
    elif day_diff == 0:
        label = "Heute"
    elif day_diff == 1:
        label = "Morgen"
    elif day_diff == 2:
        label = "Übermorgen"
    else:
        label = f"In {day_diff} Tagen"

    sub_label = None
    if day_diff == 0:
        minutes_left = int((event - now).total_seconds() // 60)
        if minutes_left <= 0:
            sub_label = "Jetzt"
        elif minutes_left < 60:
            sub_label = f"In {minutes_left} Min"
        else:
            hours, minutes = divmod(minutes_left, 60)
            if minutes and hours < 3:
                sub_label = f"In {hours} Std {minutes} Min"
            else:
                sub_label = f"In {hours} Std"

    return {"label": label, "sub_label": sub_label, "day_diff": day_diff, "is_today": day_diff == 0}


# --- Dedupe ---


def normalize_med_name(name: str) -> str:
    return " ".join(name.strip().lower().split())


def dedupe_canonical(reminder: Reminder, medication_id: Optional[str] = None) -> str:
    """Canonical "type|medication|time_key" string the dedupe key hashes."""
    identifier = medication_id or normalize_med_name(reminder.title)
    local = to_reference(reminder.date_time) if reminder.date_time else None
    if reminder.repeat == ReminderRepeat.NONE:
        time_key = f"once|{local.strftime('%Y-%m-%dT%H:%M') if local else 'undated'}"
    else:
        if reminder.time_of_day:
            slot = reminder.time_of_day.value
        else:
            slot = local.strftime("%H:%M") if local else "undated"
        time_key = f"{reminder.repeat.value}|{slot}"
    return f"{reminder.type.value}|{identifier}|{time_key}"


def dedupe_key(reminder: Reminder, medication_id: Optional[str] = None) -> str:
    return hashlib.md5(dedupe_canonical(reminder, medication_id).encode("utf-8")).hexdigest()


def split_duplicates(
    candidates: Sequence[Reminder], existing: Iterable[Reminder]
) -> Tuple[List[Reminder], List[Reminder]]:
    """
    Separate new reminders from ones that repeat a pending reminder.

    Candidates are compared by dedupe key against pending existing reminders
    and against earlier candidates of the same batch.

    Returns:
        (fresh, duplicates)
    """
    seen = {dedupe_key(r) for r in existing if r.status == ReminderStatus.PENDING}
    fresh: List[Reminder] = []
    duplicates: List[Reminder] = []
    for reminder in candidates:
        key = dedupe_key(reminder)
        if key in seen:
            duplicates.append(reminder)
            continue
        seen.add(key)
        fresh.append(reminder)
    return fresh, duplicates


# --- Building and lifecycle ---


def next_follow_up_date(form: ReminderInput):
    if not (
        form.type == ReminderType.APPOINTMENT
        and form.follow_up_enabled
        and form.follow_up_interval_value
        and form.follow_up_interval_unit
    ):
        return None
    if form.follow_up_interval_unit == FollowUpIntervalUnit.WEEKS:
        return form.date + timedelta(weeks=form.follow_up_interval_value)
    return add_months(form.date, form.follow_up_interval_value)


def build_reminders(form: ReminderInput, user_id: Optional[str] = None) -> List[Reminder]:
    """
    Build the reminders a form submission creates.

    One reminder is built per selected time of day (or per explicit time);
    several reminders share a freshly generated series_id unless the form
    already carries one.

    Args:
        form: Submitted form state
        user_id: Owner to stamp on each reminder

    Returns:
        List of unsaved Reminder models
    """
    slots = []
    for index, slot in enumerate(form.times_of_day):
        hhmm = form.times[index] if index < len(form.times) else DEFAULT_TIMES_OF_DAY[slot.value]
        slots.append((slot, hhmm))
    if not slots:
        slots = [(None, hhmm) for hhmm in (form.times or ["09:00"])]

    series_id = form.series_id
    if series_id is None and len(slots) > 1:
        series_id = str(uuid.uuid4())

    follow_up = next_follow_up_date(form)
    reminders = []
    for slot, hhmm in slots:
        reminders.append(
            Reminder(
                user_id=user_id,
                type=form.type,
                title=form.title,
                date_time=at_reference_time(form.date, hhmm),
                repeat=form.repeat,
                notes=form.notes or None,
                notification_enabled=form.notification_enabled,
                medications=form.medications if form.type == ReminderType.MEDICATION else [],
                time_of_day=slot,
                series_id=series_id,
                follow_up_enabled=form.type == ReminderType.APPOINTMENT and form.follow_up_enabled,
                follow_up_interval_value=form.follow_up_interval_value if follow_up else None,
                follow_up_interval_unit=form.follow_up_interval_unit if follow_up else None,
                next_follow_up_date=follow_up,
                notify_offsets_minutes=form.notify_offsets_minutes,
            )
        )
    return reminders


def next_occurrence(due: datetime, repeat: ReminderRepeat, now: datetime) -> Optional[datetime]:
    """
    First occurrence of a repeating reminder strictly after now.

    The wall-clock time in the reference zone is kept across DST changes.
    Returns None for non-repeating reminders.
    """
    if repeat == ReminderRepeat.NONE:
        return None
    local = to_reference(due)
    day, wall = local.date(), local.time().replace(tzinfo=None)
    step = 0
    while True:
        step += 1
        if repeat == ReminderRepeat.WEEKLY:
            next_day = day + timedelta(weeks=step)
        elif repeat == ReminderRepeat.MONTHLY:
            next_day = add_months(day, step)
        else:
            next_day = day + timedelta(days=step)
            if repeat == ReminderRepeat.WEEKDAYS and next_day.weekday() >= 5:
                continue
        candidate = datetime.combine(next_day, wall, tzinfo=REFERENCE_TZ)
        if candidate > now:
            return candidate


def completion_update(reminder: Reminder, now: datetime) -> Dict[str, Any]:
    """
    Fields to write when the user marks a reminder done.

    Non-repeating reminders become done; repeating ones move to their next
    occurrence and stay pending.
    """
    following = next_occurrence(reminder.date_time, reminder.repeat, now) if reminder.date_time else None
    if following is None:
        return {"status": ReminderStatus.DONE.value}
    return {
        "status": ReminderStatus.PENDING.value,
        "date_time": following.isoformat(),
        "snoozed_until": None,
        "snooze_count": 0,
    }


def snooze_update(reminder: Reminder, minutes: int, now: datetime) -> Dict[str, Any]:
    if minutes <= 0:
        raise ValueError("Snooze minutes must be positive")
    return {
        "snoozed_until": (now + timedelta(minutes=minutes)).isoformat(),
        "snooze_count": reminder.snooze_count + 1,
    }


def reminder_document(reminder: Reminder) -> Dict[str, Any]:
    """Serializable document for the reminders index (id lives in _id)."""
    return reminder.model_dump(mode="json", exclude={"id"})
