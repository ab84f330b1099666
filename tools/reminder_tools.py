"""Reminder tools for MigraineMinder MCP server."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from elasticsearch import AsyncElasticsearch
from fastmcp import Context
from pydantic import ValidationError

from diary_schema import Reminder, ReminderInput
from utils.date_utils import utc_now
from utils.errors import RecordNotFound, ValidationFailed
from utils.es_utils import get_es_response_id, get_owned_document, hits_to_records, user_scope_query
from utils.reminder_utils import (
    attention_level,
    build_reminders,
    coerce_reminders,
    completion_update,
    filter_appointment_view,
    filter_attention_reminders,
    filter_currently_relevant,
    filter_medication_view,
    format_notify_offsets,
    group_reminders,
    notification_times,
    relative_label,
    reminder_document,
    snooze_update,
    split_duplicates,
)

REMINDER_VIEWS = ("relevant", "medication", "appointments", "attention", "grouped", "all")
MAX_REMINDERS = 1000


class NotificationScheduler(Protocol):
    """Device-side delivery of reminder notifications."""

    async def schedule(self, reminder: Reminder, ctx: Context = None) -> None:
        ...

    async def cancel(self, reminder_id: str, ctx: Context = None) -> None:
        ...


class LoggingScheduler:
    """Default scheduler: reports what would be scheduled through the MCP context."""

    async def schedule(self, reminder: Reminder, ctx: Context = None) -> None:
        if ctx:
            times = ", ".join(t.isoformat() for t in notification_times(reminder)) or "none"
            await ctx.info(f"Schedule reminder {reminder.id} ({reminder.title}) at: {times}")

    async def cancel(self, reminder_id: str, ctx: Context = None) -> None:
        if ctx:
            await ctx.info(f"Cancel notifications for reminder {reminder_id}")


def _parse_form(form: Any) -> ReminderInput:
    try:
        return form if isinstance(form, ReminderInput) else ReminderInput.model_validate(form)
    except ValidationError as e:
        raise ValidationFailed(f"Invalid reminder: {e}") from e


def reminder_view(reminder: Reminder, now: datetime) -> Dict[str, Any]:
    """Reminder as tool output, with its attention level and relative due label."""
    view = reminder.model_dump(mode="json")
    view["attention"] = attention_level(reminder, now)
    view["notify_offsets_label"] = format_notify_offsets(reminder.notify_offsets_minutes)
    if reminder.date_time is not None:
        view["due"] = relative_label(reminder.date_time, now)
    return view


async def fetch_user_reminders(es: AsyncElasticsearch, es_index: str, user_id: str) -> List[Reminder]:
    """All reminders of a user; malformed documents are skipped."""
    resp = await es.search(
        index=es_index,
        size=MAX_REMINDERS,
        query=user_scope_query(user_id),
        sort=[{"date_time": {"order": "asc"}}],
    )
    return coerce_reminders(hits_to_records(resp))


async def _owned_reminder(es: AsyncElasticsearch, es_index: str, reminder_id: str, user_id: str) -> Reminder:
    source = await get_owned_document(es, es_index, reminder_id, user_id)
    if source is None:
        raise RecordNotFound(es_index, reminder_id)
    return Reminder.model_validate({**source, "id": reminder_id})


async def _index_reminders(
    es: AsyncElasticsearch,
    es_index: str,
    reminders: List[Reminder],
    scheduler: NotificationScheduler,
    ctx: Context = None,
) -> List[Reminder]:
    saved = []
    for reminder in reminders:
        resp = await es.index(index=es_index, document=reminder_document(reminder))
        reminder = reminder.model_copy(update={"id": get_es_response_id(resp)})
        if reminder.notification_enabled:
            await scheduler.schedule(reminder, ctx)
        saved.append(reminder)
    return saved


async def create_reminders_impl(
    es: AsyncElasticsearch,
    es_index: str,
    user_id: str,
    forms: List[dict],
    scheduler: NotificationScheduler,
    ctx: Context = None,
) -> Dict[str, Any]:
    """
    Implementation for creating reminders from one or more form submissions.

    Every form is validated before anything is written. A form with several
    times of day creates one reminder per time, sharing a series_id.
    Reminders that duplicate a pending one (same dedupe key) are skipped and
    reported under "duplicates".

    Args:
        es: Elasticsearch client
        es_index: Reminders index
        user_id: Owner of the new reminders
        forms: ReminderInput dicts (a single form is a list of one)
        scheduler: Notification scheduler
        ctx: FastMCP context for logging

    Returns:
        Dict with status, the created reminders and the skipped duplicates
    """
    try:
        parsed = [_parse_form(form) for form in forms]
        if not parsed:
            raise ValidationFailed("No reminders given")
        reminders = [r for form in parsed for r in build_reminders(form, user_id=user_id)]
        existing = await fetch_user_reminders(es, es_index, user_id)
        fresh, duplicates = split_duplicates(reminders, existing)
        saved = await _index_reminders(es, es_index, fresh, scheduler, ctx)
        if ctx:
            await ctx.info(
                f"Created {len(saved)} reminder(s) for {user_id}, skipped {len(duplicates)} duplicate(s)"
            )
        now = utc_now()
        return {
            "status": "created",
            "reminders": [reminder_view(r, now) for r in saved],
            "duplicates": [reminder_view(r, now) for r in duplicates],
        }
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to create reminders: {e}")
        return {"status": "error", "error": str(e)}


async def list_reminders_impl(
    es: AsyncElasticsearch,
    es_index: str,
    user_id: str,
    view: str = "relevant",
    date_range: str = "all",
    limit: str = "all",
    now: Optional[datetime] = None,
    ctx: Context = None,
) -> Dict[str, Any]:
    """
    Implementation for the reminder list views.

    Views:
        relevant: overdue, due today, medication within 24h, appointments within 48h
        medication: medication reminders narrowed by date_range (today, 7d, 30d, all)
        appointments: future appointments, limit 1, 3 or all
        attention: reminders that need the user's attention now
        grouped: series grouped for display
        all: everything with a date
    """
    try:
        if view not in REMINDER_VIEWS:
            raise ValidationFailed(f"Unknown view: {view}")
        now = now or utc_now()
        reminders = await fetch_user_reminders(es, es_index, user_id)

        if view == "grouped":
            groups = group_reminders(reminders, now)
            return {
                "status": "ok",
                "view": view,
                "groups": [
                    {
                        "key": g.key,
                        "display_title": g.display_title,
                        "frequency_label": g.frequency_label,
                        "times_per_day": g.times_per_day,
                        "is_recurring": g.is_recurring,
                        "next_occurrence": g.next_occurrence.isoformat(),
                        "ids": g.ids,
                        "reminder": reminder_view(g.reminder, now),
                    }
                    for g in groups
                ],
            }

        if view == "relevant":
            selected = filter_currently_relevant(reminders, now)
        elif view == "medication":
            selected = filter_medication_view(reminders, now, date_range)
        elif view == "appointments":
            selected = filter_appointment_view(reminders, now, limit)
        elif view == "attention":
            selected = filter_attention_reminders(reminders, now)
        else:
            selected = [r for r in reminders if r.date_time is not None]

        return {"status": "ok", "view": view, "reminders": [reminder_view(r, now) for r in selected]}
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to list reminders: {e}")
        return {"status": "error", "error": str(e)}


async def mark_reminder_done_impl(
    es: AsyncElasticsearch,
    es_index: str,
    user_id: str,
    reminder_id: str,
    scheduler: NotificationScheduler,
    now: Optional[datetime] = None,
    ctx: Context = None,
) -> Dict[str, Any]:
    """
    Implementation for completing a reminder.

    One-off reminders become done and their notifications are cancelled.
    Repeating reminders move to their next occurrence and are rescheduled.
    """
    try:
        now = now or utc_now()
        reminder = await _owned_reminder(es, es_index, reminder_id, user_id)
        update = completion_update(reminder, now)
        await es.update(index=es_index, id=reminder_id, doc=update)

        updated = Reminder.model_validate({**reminder.model_dump(), **update})
        await scheduler.cancel(reminder_id, ctx)
        if "date_time" in update and updated.notification_enabled:
            await scheduler.schedule(updated, ctx)
        return {"status": "updated", "reminder": reminder_view(updated, now)}
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to complete reminder {reminder_id}: {e}")
        return {"status": "error", "error": str(e)}


async def delete_reminder_impl(
    es: AsyncElasticsearch,
    es_index: str,
    user_id: str,
    reminder_id: str,
    scheduler: NotificationScheduler,
    ctx: Context = None,
) -> Dict[str, Any]:
    try:
        await _owned_reminder(es, es_index, reminder_id, user_id)
        await es.delete(index=es_index, id=reminder_id)
        await scheduler.cancel(reminder_id, ctx)
        return {"status": "deleted", "id": reminder_id}
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to delete reminder {reminder_id}: {e}")
        return {"status": "error", "error": str(e)}


async def update_reminder_group_impl(
    es: AsyncElasticsearch,
    es_index: str,
    user_id: str,
    reminder_ids: List[str],
    form: dict,
    scheduler: NotificationScheduler,
    ctx: Context = None,
) -> Dict[str, Any]:
    """
    Implementation for editing a displayed reminder group.

    The form is validated and every member's ownership checked first; then all
    members are deleted and the group is recreated from the form, so changing
    the number of times per day works like any other edit.

    Args:
        es: Elasticsearch client
        es_index: Reminders index
        user_id: Owner of the group
        reminder_ids: IDs of every reminder in the group
        form: ReminderInput dict with the edited values
        scheduler: Notification scheduler
        ctx: FastMCP context for logging

    Returns:
        Dict with status, deleted IDs and the recreated reminders
    """
    try:
        parsed = _parse_form(form)
        if not reminder_ids:
            raise ValidationFailed("No reminders to update")
        for reminder_id in reminder_ids:
            await _owned_reminder(es, es_index, reminder_id, user_id)

        for reminder_id in reminder_ids:
            await es.delete(index=es_index, id=reminder_id)
            await scheduler.cancel(reminder_id, ctx)

        saved = await _index_reminders(
            es, es_index, build_reminders(parsed, user_id=user_id), scheduler, ctx
        )
        now = utc_now()
        return {
            "status": "updated",
            "deleted": list(reminder_ids),
            "reminders": [reminder_view(r, now) for r in saved],
        }
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to update reminder group: {e}")
        return {"status": "error", "error": str(e)}


async def snooze_reminder_impl(
    es: AsyncElasticsearch,
    es_index: str,
    user_id: str,
    reminder_id: str,
    minutes: int,
    now: Optional[datetime] = None,
    ctx: Context = None,
) -> Dict[str, Any]:
    try:
        now = now or utc_now()
        reminder = await _owned_reminder(es, es_index, reminder_id, user_id)
        try:
            update = snooze_update(reminder, minutes, now)
        except ValueError as e:
            raise ValidationFailed(str(e)) from e
        await es.update(index=es_index, id=reminder_id, doc=update)
        return {"status": "snoozed", "id": reminder_id, **update}
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to snooze reminder {reminder_id}: {e}")
        return {"status": "error", "error": str(e)}


async def set_reminder_notifications_impl(
    es: AsyncElasticsearch,
    es_index: str,
    user_id: str,
    reminder_id: str,
    enabled: bool,
    scheduler: NotificationScheduler,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Implementation for switching a reminder's notifications on or off."""
    try:
        reminder = await _owned_reminder(es, es_index, reminder_id, user_id)
        await es.update(index=es_index, id=reminder_id, doc={"notification_enabled": enabled})
        if enabled:
            await scheduler.schedule(reminder.model_copy(update={"notification_enabled": True}), ctx)
        else:
            await scheduler.cancel(reminder_id, ctx)
        return {"status": "updated", "id": reminder_id, "notification_enabled": enabled}
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to toggle notifications for {reminder_id}: {e}")
        return {"status": "error", "error": str(e)}
