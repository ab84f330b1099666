"""Diary timeline tools for MigraineMinder MCP server."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from elasticsearch import AsyncElasticsearch
from fastmcp import Context
from pydantic import ValidationError

from diary_schema import ContextNote, PainEntry
from utils.date_utils import utc_now
from utils.dose_selector import DoseSelection
from utils.errors import RecordNotFound, ValidationFailed
from utils.es_utils import (
    get_es_response_id,
    get_owned_document,
    hits_to_records,
    hits_total,
    user_scope_query,
)
from utils.timeline_utils import (
    TimelinePager,
    filter_by_kind,
    group_by_date,
    merge_timeline,
    summarize_item,
)

MAX_NOTE_LENGTH = 5000


def _valid_records(model, records: List[dict]) -> list:
    parsed = []
    for record in records:
        try:
            parsed.append(model.model_validate(record))
        except ValidationError:
            continue
    return parsed


def _parse_instant(value: Optional[str], field: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise ValidationFailed(f"{field} must be an ISO8601 timestamp") from e


async def load_timeline_page_impl(
    es: AsyncElasticsearch,
    entries_index: str,
    notes_index: str,
    user_id: str,
    page: int = 0,
    page_size: int = 20,
    kind: str = "all",
    ctx: Context = None,
) -> Dict[str, Any]:
    """
    Implementation for loading one page of the combined diary timeline.

    Both sources are paged with the same offset. Soft-deleted notes are
    excluded in the query and again during the merge.

    Args:
        es: Elasticsearch client
        entries_index: Pain entries index
        notes_index: Context notes index
        user_id: Owner of the diary
        page: Zero-based page number
        page_size: Items per source per page
        kind: "all", "pain_entry" or "context_note"
        ctx: FastMCP context for logging

    Returns:
        Dict with status, items grouped by date (newest first) and has_more
    """
    try:
        pager = TimelinePager.resume(page, page_size)
        if kind not in ("all", "pain_entry", "context_note"):
            raise ValidationFailed(f"Unknown timeline filter: {kind}")

        entries_resp = await es.search(
            index=entries_index,
            from_=pager.offset,
            size=page_size,
            query=user_scope_query(user_id),
            sort=[{"timestamp_created": {"order": "desc", "missing": "_last"}}],
            track_total_hits=True,
        )
        notes_resp = await es.search(
            index=notes_index,
            from_=pager.offset,
            size=page_size,
            query=user_scope_query(user_id, exclude_deleted=True),
            sort=[{"occurred_at": {"order": "desc"}}],
            track_total_hits=True,
        )

        entry_records = hits_to_records(entries_resp)
        note_records = hits_to_records(notes_resp)
        pager.record_page(
            len(entry_records),
            len(note_records),
            entries_total=hits_total(entries_resp),
            notes_total=hits_total(notes_resp),
        )

        items = merge_timeline(
            _valid_records(PainEntry, entry_records), _valid_records(ContextNote, note_records)
        )
        items = filter_by_kind(items, kind)
        days = [
            {"date": day.isoformat(), "items": [summarize_item(item) for item in day_items]}
            for day, day_items in group_by_date(items).items()
        ]
        return {
            "status": "ok",
            "page": page,
            "days": days,
            "item_count": len(items),
            "has_more": pager.has_more,
        }
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to load timeline page {page}: {e}")
        return {"status": "error", "error": str(e)}


async def add_pain_entry_impl(
    es: AsyncElasticsearch,
    es_index: str,
    user_id: str,
    pain_level: str,
    medications: List[str] = None,
    dose_quarters: Dict[str, int] = None,
    selected_date: str = None,
    selected_time: str = None,
    notes: str = None,
    ctx: Context = None,
) -> Dict[str, Any]:
    """
    Implementation for recording a pain entry with the medications taken.

    Each selected medication defaults to one tablet (4 quarters); dose_quarters
    overrides single medications and is clamped to the selector's bounds.
    """
    try:
        selection = DoseSelection(medications or [])
        for name, quarters in (dose_quarters or {}).items():
            if not selection.is_selected(name):
                raise ValidationFailed(f"Dose given for unselected medication: {name}")
            selection.set_dose(name, quarters)

        try:
            entry = PainEntry(
                user_id=user_id,
                timestamp_created=utc_now(),
                selected_date=selected_date,
                selected_time=selected_time,
                pain_level=pain_level,
                medications=selection.names,
                medication_intakes=selection.to_intakes(),
                notes=notes,
            )
        except ValidationError as e:
            raise ValidationFailed(f"Invalid pain entry: {e}") from e

        resp = await es.index(index=es_index, document=entry.model_dump(mode="json", exclude={"id"}))
        entry.id = get_es_response_id(resp)
        return {"status": "saved", "entry": entry.model_dump(mode="json")}
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to save pain entry: {e}")
        return {"status": "error", "error": str(e)}


async def add_context_note_impl(
    es: AsyncElasticsearch,
    es_index: str,
    user_id: str,
    text: str,
    occurred_at: str = None,
    ctx: Context = None,
) -> Dict[str, Any]:
    """
    Implementation for saving a context note.

    Empty text and text over MAX_NOTE_LENGTH characters are rejected before
    anything is sent to Elasticsearch.
    """
    try:
        text = (text or "").strip()
        if not text:
            raise ValidationFailed("Note text must not be empty")
        if len(text) > MAX_NOTE_LENGTH:
            raise ValidationFailed(f"Note text exceeds {MAX_NOTE_LENGTH} characters")

        note = ContextNote(
            user_id=user_id,
            text=text,
            occurred_at=_parse_instant(occurred_at, "occurred_at") or utc_now(),
        )
        resp = await es.index(index=es_index, document=note.model_dump(mode="json", exclude={"id"}))
        note.id = get_es_response_id(resp)
        return {"status": "saved", "note": note.model_dump(mode="json")}
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to save context note: {e}")
        return {"status": "error", "error": str(e)}


async def soft_delete_context_note_impl(
    es: AsyncElasticsearch,
    es_index: str,
    user_id: str,
    note_id: str,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Implementation for deleting a note by setting its deleted_at tombstone."""
    try:
        source = await get_owned_document(es, es_index, note_id, user_id)
        if source is None or source.get("deleted_at"):
            raise RecordNotFound(es_index, note_id)
        deleted_at = utc_now().isoformat()
        await es.update(index=es_index, id=note_id, doc={"deleted_at": deleted_at})
        return {"status": "deleted", "id": note_id, "deleted_at": deleted_at}
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to delete context note {note_id}: {e}")
        return {"status": "error", "error": str(e)}
