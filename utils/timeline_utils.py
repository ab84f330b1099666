"""Merge pain entries and context notes into one date-grouped diary timeline."""

from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

from diary_schema import ContextNote, ContextNoteItem, PainEntry, PainEntryItem, TimelineItem
from utils.date_utils import at_reference_time, reference_date

TIMELINE_KINDS = ("all", "pain_entry", "context_note")


def pain_entry_instant(entry: PainEntry) -> Optional[datetime]:
    """
    Instant of a pain entry: creation timestamp, else the selected date and time.

    Returns None when the entry carries neither.
    """
    if entry.timestamp_created is not None:
        return entry.timestamp_created
    if entry.selected_date is not None:
        return at_reference_time(entry.selected_date, entry.selected_time or "00:00")
    return None


def merge_timeline(entries: Sequence[PainEntry], notes: Sequence[ContextNote]) -> List[TimelineItem]:
    """
    Combine both record lists into one list, most recent first.

    Items with equal instants keep their insertion order: pain entries before
    notes, each in the order of its source list. Soft-deleted notes and entries
    without any instant are left out.

    Args:
        entries: Pain entries as fetched
        notes: Context notes as fetched

    Returns:
        New list of TimelineItem
    """
    items: List[TimelineItem] = []
    for entry in entries:
        instant = pain_entry_instant(entry)
        if instant is not None:
            items.append(PainEntryItem(timestamp=instant, record=entry))
    for note in notes:
        if note.deleted_at is None:
            items.append(ContextNoteItem(timestamp=note.occurred_at, record=note))

    # sorted() is stable, also with reverse=True
    return sorted(items, key=lambda item: item.timestamp, reverse=True)


def filter_by_kind(items: Sequence[TimelineItem], kind: str = "all") -> List[TimelineItem]:
    if kind not in TIMELINE_KINDS:
        raise ValueError(f"Unknown timeline filter: {kind}")
    if kind == "all":
        return list(items)
    return [item for item in items if item.kind == kind]


def group_by_date(items: Sequence[TimelineItem]) -> Dict[date, List[TimelineItem]]:
    """Bucket items by reference-zone calendar date, keeping their order."""
    groups: Dict[date, List[TimelineItem]] = {}
    for item in items:
        groups.setdefault(reference_date(item.timestamp), []).append(item)
    return groups


def summarize_item(item: TimelineItem) -> dict:
    """Flat view of a timeline item for tool output."""
    if isinstance(item, PainEntryItem):
        entry = item.record
        return {
            "kind": item.kind,
            "id": entry.id,
            "timestamp": item.timestamp.isoformat(),
            "pain_level": entry.pain_level.value,
            "medications": entry.medications,
            "notes": entry.notes,
        }
    if isinstance(item, ContextNoteItem):
        note = item.record
        return {
            "kind": item.kind,
            "id": note.id,
            "timestamp": item.timestamp.isoformat(),
            "text": note.text,
        }
    raise TypeError(f"Unsupported timeline item: {type(item).__name__}")


class TimelinePager:
    """
    Shared page cursor for the pain entry and context note streams.

    Both sources advance together on load_more(). has_more is true while the
    last page of either source came back full, or, when totals are known,
    while either source has loaded fewer items than its total.
    """

    def __init__(self, page_size: int = 20):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.page_size = page_size
        self.page = 0
        self.entries_loaded = 0
        self.notes_loaded = 0
        self.last_entries_count: Optional[int] = None
        self.last_notes_count: Optional[int] = None
        self.entries_total: Optional[int] = None
        self.notes_total: Optional[int] = None

    @classmethod
    def resume(cls, page: int, page_size: int = 20) -> "TimelinePager":
        """Cursor positioned at `page`, with every earlier page counted as loaded."""
        if page < 0:
            raise ValueError("page must not be negative")
        pager = cls(page_size)
        pager.page = page
        pager.entries_loaded = pager.offset
        pager.notes_loaded = pager.offset
        return pager

    @property
    def offset(self) -> int:
        return self.page * self.page_size

    def record_page(
        self,
        entries_count: int,
        notes_count: int,
        entries_total: Optional[int] = None,
        notes_total: Optional[int] = None,
    ) -> None:
        self.last_entries_count = entries_count
        self.last_notes_count = notes_count
        self.entries_loaded += entries_count
        self.notes_loaded += notes_count
        if entries_total is not None:
            self.entries_total = entries_total
        if notes_total is not None:
            self.notes_total = notes_total

    def load_more(self) -> int:
        self.page += 1
        return self.page

    @property
    def has_more(self) -> bool:
        if self.entries_total is not None and self.notes_total is not None:
            return self.entries_loaded < self.entries_total or self.notes_loaded < self.notes_total
        if self.last_entries_count is None and self.last_notes_count is None:
            return True
        return (self.last_entries_count or 0) >= self.page_size or (
            self.last_notes_count or 0
        ) >= self.page_size
