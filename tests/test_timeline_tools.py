from tools.timeline_tools import (
    MAX_NOTE_LENGTH,
    add_context_note_impl,
    add_pain_entry_impl,
    load_timeline_page_impl,
    soft_delete_context_note_impl,
)

ENTRIES = "pain_entries"
NOTES = "context_notes"


def seed_diary(es):
    es.seed(ENTRIES, "e1", {"user_id": "u1", "timestamp_created": "2025-03-03T06:40:00Z", "pain_level": "stark"})
    es.seed(ENTRIES, "e2", {"user_id": "u1", "timestamp_created": "2025-03-01T10:00:00Z", "pain_level": "leicht"})
    es.seed(ENTRIES, "other", {"user_id": "u2", "timestamp_created": "2025-03-02T10:00:00Z", "pain_level": "mittel"})
    es.seed(NOTES, "n1", {"user_id": "u1", "text": "Föhn", "occurred_at": "2025-03-02T09:00:00Z"})
    es.seed(
        NOTES,
        "n2",
        {"user_id": "u1", "text": "gelöscht", "occurred_at": "2025-03-02T10:00:00Z", "deleted_at": "2025-03-02T11:00:00Z"},
    )


async def test_load_timeline_page_merges_and_groups(es):
    seed_diary(es)
    result = await load_timeline_page_impl(es, ENTRIES, NOTES, "u1", page=0, page_size=20)

    assert result["status"] == "ok"
    assert [day["date"] for day in result["days"]] == ["2025-03-03", "2025-03-02", "2025-03-01"]
    ids = [item["id"] for day in result["days"] for item in day["items"]]
    assert ids == ["e1", "n1", "e2"]
    assert result["has_more"] is False


async def test_load_timeline_page_reports_more_pages(es):
    for i in range(3):
        es.seed(ENTRIES, f"e{i}", {"user_id": "u1", "timestamp_created": f"2025-03-0{i + 1}T10:00:00Z"})
    first = await load_timeline_page_impl(es, ENTRIES, NOTES, "u1", page=0, page_size=2)
    second = await load_timeline_page_impl(es, ENTRIES, NOTES, "u1", page=1, page_size=2)
    assert first["has_more"] is True
    assert first["item_count"] == 2
    assert second["has_more"] is False
    assert second["item_count"] == 1


async def test_load_timeline_filter(es):
    seed_diary(es)
    result = await load_timeline_page_impl(es, ENTRIES, NOTES, "u1", kind="context_note")
    assert [item["kind"] for day in result["days"] for item in day["items"]] == ["context_note"]


async def test_load_timeline_backend_failure(es, ctx):
    es.fail_on.add("search")
    result = await load_timeline_page_impl(es, ENTRIES, NOTES, "u1", ctx=ctx)
    assert result["status"] == "error"
    assert ctx.errors


async def test_empty_note_rejected_before_network(es, ctx):
    result = await add_context_note_impl(es, NOTES, "u1", "   ", ctx=ctx)
    assert result["status"] == "error"
    assert es.calls == []


async def test_overlong_note_rejected_before_network(es):
    result = await add_context_note_impl(es, NOTES, "u1", "x" * (MAX_NOTE_LENGTH + 1))
    assert result["status"] == "error"
    assert es.calls == []


async def test_add_and_soft_delete_note(es):
    saved = await add_context_note_impl(es, NOTES, "u1", " Wenig geschlafen ", occurred_at="2025-03-02T21:00:00+00:00")
    assert saved["status"] == "saved"
    note_id = saved["note"]["id"]
    assert es.docs(NOTES)[note_id]["text"] == "Wenig geschlafen"

    deleted = await soft_delete_context_note_impl(es, NOTES, "u1", note_id)
    assert deleted["status"] == "deleted"
    assert es.docs(NOTES)[note_id]["deleted_at"] is not None

    again = await soft_delete_context_note_impl(es, NOTES, "u1", note_id)
    assert again["status"] == "error"


async def test_cannot_delete_other_users_note(es):
    es.seed(NOTES, "n1", {"user_id": "u2", "text": "x", "occurred_at": "2025-03-02T09:00:00Z"})
    result = await soft_delete_context_note_impl(es, NOTES, "u1", "n1")
    assert result["status"] == "error"
    assert "deleted_at" not in es.docs(NOTES)["n1"]


async def test_add_pain_entry_with_doses(es):
    result = await add_pain_entry_impl(
        es, ENTRIES, "u1", "stark", medications=["Sumatriptan", "Ibuprofen"], dose_quarters={"Ibuprofen": 2}
    )
    assert result["status"] == "saved"
    stored = es.docs(ENTRIES)[result["entry"]["id"]]
    assert stored["medication_intakes"] == [
        {"medication_name": "Sumatriptan", "dose_quarters": 4},
        {"medication_name": "Ibuprofen", "dose_quarters": 2},
    ]


async def test_add_pain_entry_rejects_unknown_level(es):
    result = await add_pain_entry_impl(es, ENTRIES, "u1", "unerträglich")
    assert result["status"] == "error"
    assert "index" not in es.calls
