from datetime import date, datetime, timezone

import pytest

from diary_schema import ContextNote, PainEntry
from utils.timeline_utils import TimelinePager, filter_by_kind, group_by_date, merge_timeline, summarize_item


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_merge_sorts_newest_first():
    entries = [PainEntry(id="e1", timestamp_created=utc(2025, 3, 1, 8)), PainEntry(id="e2", timestamp_created=utc(2025, 3, 3, 8))]
    notes = [ContextNote(id="n1", text="a", occurred_at=utc(2025, 3, 2, 8))]
    items = merge_timeline(entries, notes)
    assert [item.record.id for item in items] == ["e2", "n1", "e1"]


def test_equal_instants_keep_entries_before_notes():
    same = utc(2025, 3, 1, 12)
    entries = [PainEntry(id="e1", timestamp_created=same), PainEntry(id="e2", timestamp_created=same)]
    notes = [ContextNote(id="n1", text="a", occurred_at=same)]
    items = merge_timeline(entries, notes)
    assert [item.record.id for item in items] == ["e1", "e2", "n1"]


def test_merge_excludes_deleted_notes_and_undated_entries():
    entries = [PainEntry(id="undated")]
    notes = [
        ContextNote(id="gone", text="x", occurred_at=utc(2025, 3, 1), deleted_at=utc(2025, 3, 2)),
        ContextNote(id="kept", text="y", occurred_at=utc(2025, 3, 1)),
    ]
    assert [item.record.id for item in merge_timeline(entries, notes)] == ["kept"]


def test_merge_returns_new_items_each_time():
    entries = [PainEntry(id="e1", timestamp_created=utc(2025, 3, 1))]
    first = merge_timeline(entries, [])
    second = merge_timeline(entries, [])
    assert first == second
    assert first is not second


def test_entry_instant_falls_back_to_selected_date_and_time():
    entry = PainEntry(id="e1", selected_date=date(2025, 3, 5), selected_time="17:30")
    (item,) = merge_timeline([entry], [])
    assert item.timestamp == utc(2025, 3, 5, 16, 30)


def test_group_by_reference_zone_date():
    # 23:30 UTC on March 2 is already March 3 in Berlin
    late = PainEntry(id="late", timestamp_created=utc(2025, 3, 2, 23, 30))
    early = PainEntry(id="early", timestamp_created=utc(2025, 3, 2, 8))
    groups = group_by_date(merge_timeline([late, early], []))
    assert list(groups) == [date(2025, 3, 3), date(2025, 3, 2)]
    assert [item.record.id for item in groups[date(2025, 3, 3)]] == ["late"]


def test_filter_by_kind():
    items = merge_timeline(
        [PainEntry(id="e1", timestamp_created=utc(2025, 3, 1))],
        [ContextNote(id="n1", text="a", occurred_at=utc(2025, 3, 2))],
    )
    assert [i.kind for i in filter_by_kind(items, "context_note")] == ["context_note"]
    assert len(filter_by_kind(items, "all")) == 2
    with pytest.raises(ValueError):
        filter_by_kind(items, "reminder")


def test_summarize_item():
    (item,) = merge_timeline([], [ContextNote(id="n1", text="Föhn", occurred_at=utc(2025, 3, 2))])
    summary = summarize_item(item)
    assert summary["kind"] == "context_note"
    assert summary["text"] == "Föhn"


def test_pager_has_more_while_a_page_is_full():
    pager = TimelinePager(page_size=20)
    assert pager.has_more
    pager.record_page(20, 5)
    assert pager.has_more
    pager.load_more()
    assert pager.offset == 20
    pager.record_page(3, 0)
    assert not pager.has_more


def test_pager_count_aware_variant():
    pager = TimelinePager(page_size=20)
    pager.record_page(20, 20, entries_total=20, notes_total=20)
    assert not pager.has_more

    pager = TimelinePager(page_size=20)
    pager.record_page(5, 20, entries_total=5, notes_total=21)
    assert pager.has_more


def test_pager_resume():
    pager = TimelinePager.resume(2, page_size=10)
    assert pager.offset == 20
    pager.record_page(4, 0, entries_total=24, notes_total=15)
    assert not pager.has_more
