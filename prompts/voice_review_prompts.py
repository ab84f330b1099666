"""Prompts implementations for MigraineMinder MCP server."""


async def voice_course_guidance_impl() -> str:
    """
    Implementation for guidance on capturing a medication course by voice.

    Returns:
        str: Prompt text with voice capture guidance
    """
    return """# Voice Capture of Medication Courses

Users can describe a medication course in one sentence, e.g.
"Ich nehme seit März Ajovy 225 mg einmal im Monat als Prophylaxe".

## Flow

1. Pass the finalized transcript to **review_voice_course()**. Nothing is saved by this call.
2. Show the returned `review_prompt` and ask the user to confirm or correct it.
   - Mention the confidence label when the medication name is only "Wahrscheinlich" or "Unsicher".
   - If no medication was recognized, ask for the name instead of guessing.
3. Only after confirmation, call **submit_course_draft()** with the confirmed fields
   (`medication_name`, `type`, `dose_text`, `start_date`, `is_active`).
4. Offer the optional follow-up questions of the wizard (baseline migraine days,
   effectiveness 0-10, side effects, reason for stopping) but never insist.

## Do Not

- Do not save a course straight from the transcript.
- Do not give dosing advice; only record what the user says.
- Do not ask all optional questions at once. One or two at a time is enough.

## Dose Text Format

Dose text is stored in the diary's own notation, for example:
- `50 mg 1-0-1-0` (morning-noon-evening-night)
- `225 mg s.c. 1×/Monat`
- `10 mg bei Bedarf (max. 10/Monat)`
"""


async def reminder_guidance_impl() -> str:
    """Guidance for creating and completing reminders."""
    return """# Reminder Guidance

- Use **list_reminders(view="relevant")** at the start of a conversation to see overdue
  and upcoming reminders. Mention at most the first two.
- Medication taken several times a day is one reminder per time of day in a shared series;
  edit the whole series with **update_reminder_group()** using all of its ids.
- Marking a repeating reminder done moves it to its next occurrence; it does not delete it.
- Appointment reminders notify 1 day and 2 hours ahead unless other offsets are chosen
  (at most four).
"""
