"""MigraineMinder FastMCP Server for keeping a personal migraine diary."""

import os
from typing import List

from fastmcp import Context, FastMCP

from diary_schema import ClinicianData, PatientData
from prompts.voice_review_prompts import reminder_guidance_impl, voice_course_guidance_impl
from resources.diary_resources import list_context_notes_impl, list_pain_entries_impl
from tools.course_tools import (
    add_user_medication_impl,
    delete_course_impl,
    fetch_courses,
    list_courses_impl,
    review_voice_course_impl,
    search_medications_impl,
    submit_course_draft_impl,
)
from tools.export_tools import build_medication_plan
from tools.reminder_tools import (
    LoggingScheduler,
    create_reminders_impl,
    delete_reminder_impl,
    list_reminders_impl,
    mark_reminder_done_impl,
    set_reminder_notifications_impl,
    snooze_reminder_impl,
    update_reminder_group_impl,
)
from tools.timeline_tools import (
    add_context_note_impl,
    add_pain_entry_impl,
    load_timeline_page_impl,
    soft_delete_context_note_impl,
)
from utils.debounce import Debouncer
from utils.es_utils import create_es_client, parse_review_mode

# --- Elasticsearch Client ---
PAIN_ENTRIES_INDEX = os.environ.get("PAIN_ENTRIES_INDEX", "pain_entries")
CONTEXT_NOTES_INDEX = os.environ.get("CONTEXT_NOTES_INDEX", "context_notes")
REMINDERS_INDEX = os.environ.get("REMINDERS_INDEX", "reminders")
MEDICATION_COURSES_INDEX = os.environ.get("MEDICATION_COURSES_INDEX", "medication_courses")
USER_MEDICATIONS_INDEX = os.environ.get("USER_MEDICATIONS_INDEX", "user_medications")

# Initialize Elasticsearch client using shared utility
try:
    es = create_es_client()
except Exception as e:
    raise RuntimeError(f"Failed to initialize Elasticsearch client: {e}")

# --- Transcript Review Configuration ---
# 'none', or 'every_X' (e.g., 'every_5'); needs ANTHROPIC_API_KEY when enabled
review_trigger_modulo = parse_review_mode(os.environ.get("TRANSCRIPT_REVIEW_MODE", "none"))

TIMELINE_PAGE_SIZE = int(os.environ.get("TIMELINE_PAGE_SIZE", "20"))

scheduler = LoggingScheduler()
medication_search = Debouncer(delay=0.3)

mcp = FastMCP("MigraineMinder")


# --- MCP Tools: Timeline ---
@mcp.tool(
    name="load_timeline_page",
    description=(
        "Load one page of the diary timeline: pain entries and context notes merged, "
        "newest first, grouped by day. Use page=0 first and increase it while has_more is true. "
        "kind filters to 'all', 'pain_entry' or 'context_note'."
    ),
)
async def load_timeline_page(user_id: str, page: int = 0, kind: str = "all", ctx: Context = None) -> dict:
    """
    Load a page of the combined diary timeline.

    Args:
        user_id: Owner of the diary
        page: Zero-based page number
        kind: Item filter
        ctx: FastMCP context for logging

    Returns:
        dict: Days with their items and the has_more flag
    """
    return await load_timeline_page_impl(
        es=es,
        entries_index=PAIN_ENTRIES_INDEX,
        notes_index=CONTEXT_NOTES_INDEX,
        user_id=user_id,
        page=page,
        page_size=TIMELINE_PAGE_SIZE,
        kind=kind,
        ctx=ctx,
    )


@mcp.tool(
    name="add_pain_entry",
    description=(
        "Record a headache. pain_level is one of leicht, mittel, stark, sehr_stark. "
        "medications lists what was taken; dose_quarters optionally maps a medication to "
        "its dose in quarter tablets (4 = one tablet, 1-16)."
    ),
)
async def add_pain_entry(
    user_id: str,
    pain_level: str,
    medications: list[str] = None,
    dose_quarters: dict[str, int] = None,
    selected_date: str = None,
    selected_time: str = None,
    notes: str = None,
    ctx: Context = None,
) -> dict:
    """
    Record a pain entry with the medications taken.

    Args:
        user_id: Owner of the diary
        pain_level: leicht, mittel, stark or sehr_stark
        medications: Names of the medications taken
        dose_quarters: Optional dose per medication in quarter tablets (1-16)
        selected_date: Date of the headache (YYYY-MM-DD), default today
        selected_time: Time of the headache (HH:MM), default now
        notes: Free text notes
        ctx: FastMCP context for logging

    Returns:
        dict: Saved entry or error message
    """
    return await add_pain_entry_impl(
        es=es,
        es_index=PAIN_ENTRIES_INDEX,
        user_id=user_id,
        pain_level=pain_level,
        medications=medications,
        dose_quarters=dose_quarters,
        selected_date=selected_date,
        selected_time=selected_time,
        notes=notes,
        ctx=ctx,
    )


@mcp.tool(
    name="add_context_note",
    description="Save a free-text context note (e.g. a voice memo). occurred_at is ISO8601, default now.",
)
async def add_context_note(user_id: str, text: str, occurred_at: str = None, ctx: Context = None) -> dict:
    """
    Save a context note.

    Args:
        user_id: Owner of the diary
        text: Note text (1-5000 characters after trimming)
        occurred_at: ISO8601 timestamp, default now
        ctx: FastMCP context for logging

    Returns:
        dict: Saved note or error message
    """
    return await add_context_note_impl(
        es=es, es_index=CONTEXT_NOTES_INDEX, user_id=user_id, text=text, occurred_at=occurred_at, ctx=ctx
    )


@mcp.tool(name="delete_context_note", description="Delete a context note (kept as a tombstone).")
async def delete_context_note(user_id: str, note_id: str, ctx: Context = None) -> dict:
    """
    Soft-delete a context note.

    Args:
        user_id: Owner of the note
        note_id: ID of the note
        ctx: FastMCP context for logging

    Returns:
        dict: Deletion status or error message
    """
    return await soft_delete_context_note_impl(
        es=es, es_index=CONTEXT_NOTES_INDEX, user_id=user_id, note_id=note_id, ctx=ctx
    )


# --- MCP Tools: Reminders ---
@mcp.tool(
    name="create_reminders",
    description=(
        "Create reminders. Each form needs type (medication, appointment, todo), title and date "
        "(YYYY-MM-DD); optional times (HH:MM), times_of_day (morning, noon, evening, night), "
        "repeat (none, daily, weekly, monthly, weekdays), medications, notes, "
        "notify_offsets_minutes (max 4) and follow-up settings for appointments."
    ),
)
async def create_reminders(user_id: str, forms: list[dict], ctx: Context = None) -> dict:
    """
    Create one or more reminders.

    Args:
        user_id: Owner of the reminders
        forms: Reminder forms; several times of day in one form create a series
        ctx: FastMCP context for logging

    Returns:
        dict: Created reminders or error message
    """
    return await create_reminders_impl(
        es=es, es_index=REMINDERS_INDEX, user_id=user_id, forms=forms, scheduler=scheduler, ctx=ctx
    )


@mcp.tool(
    name="list_reminders",
    description=(
        "List reminders. view: relevant (overdue, today, medication within 24h, appointments "
        "within 48h), medication (date_range today, 7d, 30d, all), appointments (limit 1, 3, all), "
        "attention, grouped, all."
    ),
)
async def list_reminders(
    user_id: str, view: str = "relevant", date_range: str = "all", limit: str = "all", ctx: Context = None
) -> dict:
    """
    List reminders for one of the reminder views.

    Args:
        user_id: Owner of the reminders
        view: relevant, medication, appointments, attention, grouped or all
        date_range: Range for the medication view (today, 7d, 30d, all)
        limit: Limit for the appointments view (1, 3, all)
        ctx: FastMCP context for logging

    Returns:
        dict: Reminders (or groups) with attention and due labels, or error message
    """
    return await list_reminders_impl(
        es=es,
        es_index=REMINDERS_INDEX,
        user_id=user_id,
        view=view,
        date_range=date_range,
        limit=limit,
        ctx=ctx,
    )


@mcp.tool(
    name="mark_reminder_done",
    description="Mark a reminder done. Repeating reminders move on to their next occurrence.",
)
async def mark_reminder_done(user_id: str, reminder_id: str, ctx: Context = None) -> dict:
    """
    Complete a reminder.

    Args:
        user_id: Owner of the reminder
        reminder_id: ID of the reminder
        ctx: FastMCP context for logging

    Returns:
        dict: Updated reminder or error message
    """
    return await mark_reminder_done_impl(
        es=es, es_index=REMINDERS_INDEX, user_id=user_id, reminder_id=reminder_id, scheduler=scheduler, ctx=ctx
    )


@mcp.tool(name="delete_reminder", description="Delete a single reminder.")
async def delete_reminder(user_id: str, reminder_id: str, ctx: Context = None) -> dict:
    """
    Delete a reminder and cancel its notifications.

    Args:
        user_id: Owner of the reminder
        reminder_id: ID of the reminder
        ctx: FastMCP context for logging

    Returns:
        dict: Deletion status or error message
    """
    return await delete_reminder_impl(
        es=es, es_index=REMINDERS_INDEX, user_id=user_id, reminder_id=reminder_id, scheduler=scheduler, ctx=ctx
    )


@mcp.tool(
    name="update_reminder_group",
    description=(
        "Edit a reminder group shown by list_reminders(view='grouped'). Pass all of the "
        "group's ids and the edited form; the group is recreated from the form."
    ),
)
async def update_reminder_group(user_id: str, reminder_ids: list[str], form: dict, ctx: Context = None) -> dict:
    """
    Replace a reminder group with reminders built from the edited form.

    Args:
        user_id: Owner of the group
        reminder_ids: IDs of every reminder in the group
        form: Edited reminder form
        ctx: FastMCP context for logging

    Returns:
        dict: Deleted IDs and recreated reminders, or error message
    """
    return await update_reminder_group_impl(
        es=es,
        es_index=REMINDERS_INDEX,
        user_id=user_id,
        reminder_ids=reminder_ids,
        form=form,
        scheduler=scheduler,
        ctx=ctx,
    )


@mcp.tool(name="snooze_reminder", description="Snooze a reminder for the given number of minutes.")
async def snooze_reminder(user_id: str, reminder_id: str, minutes: int = 15, ctx: Context = None) -> dict:
    """
    Snooze a reminder.

    Args:
        user_id: Owner of the reminder
        reminder_id: ID of the reminder
        minutes: Snooze duration in minutes (positive)
        ctx: FastMCP context for logging

    Returns:
        dict: New snoozed_until and snooze_count, or error message
    """
    return await snooze_reminder_impl(
        es=es, es_index=REMINDERS_INDEX, user_id=user_id, reminder_id=reminder_id, minutes=minutes, ctx=ctx
    )


@mcp.tool(name="set_reminder_notifications", description="Turn a reminder's notifications on or off.")
async def set_reminder_notifications(user_id: str, reminder_id: str, enabled: bool, ctx: Context = None) -> dict:
    """
    Enable or disable notifications for a reminder.

    Args:
        user_id: Owner of the reminder
        reminder_id: ID of the reminder
        enabled: Whether notifications should fire
        ctx: FastMCP context for logging

    Returns:
        dict: Update status or error message
    """
    return await set_reminder_notifications_impl(
        es=es,
        es_index=REMINDERS_INDEX,
        user_id=user_id,
        reminder_id=reminder_id,
        enabled=enabled,
        scheduler=scheduler,
        ctx=ctx,
    )


# --- MCP Tools: Medication Courses ---
@mcp.tool(name="list_medication_courses", description="List the user's medication courses, active ones first.")
async def list_medication_courses(user_id: str, active_only: bool = False, ctx: Context = None) -> dict:
    """
    List medication courses.

    Args:
        user_id: Owner of the courses
        active_only: Only return courses still being taken
        ctx: FastMCP context for logging

    Returns:
        dict: Courses or error message
    """
    return await list_courses_impl(
        es=es, es_index=MEDICATION_COURSES_INDEX, user_id=user_id, active_only=active_only, ctx=ctx
    )


@mcp.tool(
    name="submit_course_draft",
    description=(
        "Create or update (course_id) a medication course from confirmed fields: "
        "medication_name (required), type (prophylaxis, acute, other), dose_text, start_date, "
        "is_active, end_date, baseline fields, subjective_effectiveness 0-10, had_side_effects, "
        "side_effects_text, discontinuation_reason, discontinuation_details, note_for_physician."
    ),
)
async def submit_course_draft(user_id: str, draft: dict, course_id: str = None, ctx: Context = None) -> dict:
    """
    Save a medication course from confirmed wizard fields.

    Args:
        user_id: Owner of the course
        draft: Confirmed course fields; medication_name is required
        course_id: Existing course to update, None to create
        ctx: FastMCP context for logging

    Returns:
        dict: Stored course with status created or updated, or error message
    """
    return await submit_course_draft_impl(
        es=es,
        courses_index=MEDICATION_COURSES_INDEX,
        medications_index=USER_MEDICATIONS_INDEX,
        user_id=user_id,
        draft=draft,
        course_id=course_id,
        ctx=ctx,
    )


@mcp.tool(name="delete_medication_course", description="Delete a medication course.")
async def delete_medication_course(user_id: str, course_id: str, ctx: Context = None) -> dict:
    """
    Delete a medication course.

    Args:
        user_id: Owner of the course
        course_id: ID of the course
        ctx: FastMCP context for logging

    Returns:
        dict: Deletion status or error message
    """
    return await delete_course_impl(
        es=es, es_index=MEDICATION_COURSES_INDEX, user_id=user_id, course_id=course_id, ctx=ctx
    )


@mcp.tool(
    name="review_voice_course",
    description=(
        "Parse a spoken description of a medication course and return a review prompt. "
        "Does NOT save anything; confirm with the user, then call submit_course_draft."
    ),
)
async def review_voice_course(user_id: str, transcript: str, ctx: Context = None) -> dict:
    """
    Return a review prompt for a spoken course description, do not save yet.

    Args:
        user_id: Current user (their medications are preferred in matching)
        transcript: Finalized speech-to-text output
        ctx: FastMCP context for logging

    Returns:
        dict: Review prompt, parsed fields and confidence label, or error message
    """
    return await review_voice_course_impl(
        es=es,
        medications_index=USER_MEDICATIONS_INDEX,
        user_id=user_id,
        transcript=transcript,
        review_trigger_modulo=review_trigger_modulo,
        ctx=ctx,
    )


@mcp.tool(name="add_user_medication", description="Add a medication name to the user's own list.")
async def add_user_medication(user_id: str, name: str, ctx: Context = None) -> dict:
    """
    Add a medication to the user's list.

    Args:
        user_id: Owner of the list
        name: Medication name
        ctx: FastMCP context for logging

    Returns:
        dict: saved or exists status, or error message
    """
    return await add_user_medication_impl(es=es, es_index=USER_MEDICATIONS_INDEX, user_id=user_id, name=name, ctx=ctx)


@mcp.tool(
    name="search_medications",
    description="Search-as-you-type over the user's medications and the built-in catalog.",
)
async def search_medications(user_id: str, query: str, ctx: Context = None) -> dict:
    """
    Search medication names by prefix.

    Args:
        user_id: Owner of the medication list
        query: Text typed so far
        ctx: FastMCP context for logging

    Returns:
        dict: Matching names, or status superseded when a newer search replaced this one
    """
    return await search_medications_impl(
        es=es,
        es_index=USER_MEDICATIONS_INDEX,
        user_id=user_id,
        query=query,
        debouncer=medication_search,
        ctx=ctx,
    )


@mcp.tool(
    name="get_medication_plan",
    description=(
        "Build the medication plan for a physician visit (active prophylaxis, acute medication, "
        "past courses) as structured data. Optional patient and clinicians metadata."
    ),
)
async def get_medication_plan(
    user_id: str, patient: dict = None, clinicians: list[dict] = None, ctx: Context = None
) -> dict:
    """
    Build the medication plan payload for a physician visit.

    Args:
        user_id: Owner of the courses
        patient: Optional patient header data
        clinicians: Optional treating physicians
        ctx: FastMCP context for logging

    Returns:
        dict: Plan sections or error message
    """
    try:
        courses = await fetch_courses(es, MEDICATION_COURSES_INDEX, user_id)
        plan = build_medication_plan(
            courses,
            PatientData.model_validate(patient) if patient else None,
            [ClinicianData.model_validate(c) for c in clinicians or []],
        )
        return {"status": "ok", "plan": plan}
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to build medication plan: {e}")
        return {"status": "error", "error": str(e)}


# --- MCP Resources ---
@mcp.resource(
    uri="diary://{user_id}/entries/{limit}",
    name="list_pain_entries",
    description="Retrieve a user's most recent pain entries",
)
async def list_pain_entries(user_id: str, limit: int = 20) -> List[dict]:
    """
    Retrieve a user's most recent pain entries.

    Args:
        user_id: Owner of the diary
        limit: Maximum number of entries to retrieve

    Returns:
        List of pain entry dictionaries
    """
    return await list_pain_entries_impl(es=es, es_index=PAIN_ENTRIES_INDEX, user_id=user_id, limit=limit)


@mcp.resource(
    uri="diary://{user_id}/notes/{limit}",
    name="list_context_notes",
    description="Retrieve a user's most recent context notes",
)
async def list_context_notes(user_id: str, limit: int = 20) -> List[dict]:
    """
    Retrieve a user's most recent context notes, deleted ones excluded.

    Args:
        user_id: Owner of the diary
        limit: Maximum number of notes to retrieve

    Returns:
        List of context note dictionaries
    """
    return await list_context_notes_impl(es=es, es_index=CONTEXT_NOTES_INDEX, user_id=user_id, limit=limit)


# --- MCP Prompts ---
@mcp.prompt(
    name="voice_course_guidance",
    description="How to capture a medication course by voice and confirm it before saving",
)
async def voice_course_guidance() -> str:
    """
    Provide guidance on capturing a medication course by voice.

    Returns:
        str: Prompt text with voice capture guidance
    """
    return await voice_course_guidance_impl()


@mcp.prompt(name="reminder_guidance", description="How to work with reminders and reminder series")
async def reminder_guidance() -> str:
    """
    Provide guidance on working with reminders and reminder series.

    Returns:
        str: Prompt text with reminder guidance
    """
    return await reminder_guidance_impl()


# --- Initialize and Register ---
if __name__ == "__main__":
    mcp.run()
