"""Medication course tools for MigraineMinder MCP server."""

from datetime import date
from typing import Any, Dict, List, Optional

from elasticsearch import AsyncElasticsearch
from fastmcp import Context
from pydantic import ValidationError

from diary_schema import MedicationCourse, MedicationCourseInput
from transcript_review import review_transcript_parse
from utils.course_wizard import LAST_STEP, MedicationCourseWizard
from utils.date_utils import utc_now
from utils.debounce import Debouncer
from utils.dosage_utils import dosage_from_text
from utils.errors import RecordNotFound, ValidationFailed
from utils.es_utils import (
    get_es_response_id,
    get_owned_document,
    hits_to_records,
    increment_review_counter,
    user_scope_query,
)
from utils.prompt_utils import generate_course_review_prompt
from utils.voice_utils import KNOWN_MEDICATIONS, confidence_label, parse_medication_course_from_voice

MAX_COURSES = 500
MAX_USER_MEDICATIONS = 200


async def fetch_user_medication_names(es: AsyncElasticsearch, es_index: str, user_id: str) -> List[str]:
    resp = await es.search(
        index=es_index,
        size=MAX_USER_MEDICATIONS,
        query=user_scope_query(user_id),
        sort=[{"name": {"order": "asc"}}],
    )
    return [record["name"] for record in hits_to_records(resp) if record.get("name")]


async def fetch_courses(es: AsyncElasticsearch, es_index: str, user_id: str) -> List[MedicationCourse]:
    """A user's courses, active ones first, then most recent start date."""
    resp = await es.search(
        index=es_index,
        size=MAX_COURSES,
        query=user_scope_query(user_id),
        sort=[
            {"is_active": {"order": "desc"}},
            {"start_date": {"order": "desc", "missing": "_last"}},
        ],
    )
    courses = []
    for record in hits_to_records(resp):
        try:
            courses.append(MedicationCourse.model_validate(record))
        except ValidationError:
            continue
    return courses


def _parse_course(course: Any) -> MedicationCourseInput:
    try:
        return course if isinstance(course, MedicationCourseInput) else MedicationCourseInput.model_validate(course)
    except ValidationError as e:
        raise ValidationFailed(f"Invalid medication course: {e}") from e


async def list_courses_impl(
    es: AsyncElasticsearch, es_index: str, user_id: str, active_only: bool = False, ctx: Context = None
) -> Dict[str, Any]:
    try:
        courses = await fetch_courses(es, es_index, user_id)
        if active_only:
            courses = [c for c in courses if c.is_active]
        return {"status": "ok", "courses": [c.model_dump(mode="json") for c in courses]}
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to list medication courses: {e}")
        return {"status": "error", "error": str(e)}


async def save_course_impl(
    es: AsyncElasticsearch,
    es_index: str,
    user_id: str,
    course: Any,
    course_id: Optional[str] = None,
    ctx: Context = None,
) -> Dict[str, Any]:
    """
    Implementation for creating (course_id None) or replacing a medication course.

    Args:
        es: Elasticsearch client
        es_index: Medication courses index
        user_id: Owner of the course
        course: MedicationCourseInput or an equivalent dict
        course_id: Existing course to update
        ctx: FastMCP context for logging

    Returns:
        Dict with status "created" or "updated" and the stored course
    """
    try:
        payload = _parse_course(course)
        now = utc_now()
        created_at = now
        if course_id is not None:
            existing = await get_owned_document(es, es_index, course_id, user_id)
            if existing is None:
                raise RecordNotFound(es_index, course_id)
            created_at = existing.get("created_at") or now

        stored = MedicationCourse(
            **payload.model_dump(), user_id=user_id, created_at=created_at, updated_at=now
        )
        document = stored.model_dump(mode="json", exclude={"id"})
        if course_id is None:
            resp = await es.index(index=es_index, document=document)
            stored.id = get_es_response_id(resp)
            status = "created"
        else:
            await es.index(index=es_index, id=course_id, document=document)
            stored.id = course_id
            status = "updated"
        if ctx:
            await ctx.info(f"Medication course {stored.medication_name} {status}")
        return {"status": status, "course": stored.model_dump(mode="json")}
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to save medication course: {e}")
        return {"status": "error", "error": str(e)}


async def delete_course_impl(
    es: AsyncElasticsearch, es_index: str, user_id: str, course_id: str, ctx: Context = None
) -> Dict[str, Any]:
    try:
        if await get_owned_document(es, es_index, course_id, user_id) is None:
            raise RecordNotFound(es_index, course_id)
        await es.delete(index=es_index, id=course_id)
        return {"status": "deleted", "id": course_id}
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to delete medication course {course_id}: {e}")
        return {"status": "error", "error": str(e)}


async def submit_course_draft_impl(
    es: AsyncElasticsearch,
    courses_index: str,
    medications_index: str,
    user_id: str,
    draft: dict,
    course_id: Optional[str] = None,
    ctx: Context = None,
) -> Dict[str, Any]:
    """
    Implementation for running a wizard draft through all steps and saving it.

    In edit mode the stored course is hydrated first and the draft fields
    override it. The draft must pass the step guards before it is saved.
    """
    try:
        known_meds = await fetch_user_medication_names(es, medications_index, user_id)
        wizard = MedicationCourseWizard(known_meds=known_meds)

        existing = None
        if course_id is not None:
            source = await get_owned_document(es, courses_index, course_id, user_id)
            if source is None:
                raise RecordNotFound(courses_index, course_id)
            existing = MedicationCourse.model_validate({**source, "id": course_id})
        wizard.open(existing)

        draft = dict(draft)
        try:
            if "medication_name" in draft:
                wizard.set_medication_name(draft.pop("medication_name") or "")
            if "dose_text" in draft:
                draft["dosage"] = dosage_from_text(draft.pop("dose_text"), draft.get("type", wizard.draft.type))
            wizard.update(**draft)
        except ValidationError as e:
            raise ValidationFailed(f"Invalid course draft: {e}") from e

        while wizard.step < LAST_STEP:
            if not wizard.can_proceed():
                raise ValidationFailed(f"Step {wizard.step} is incomplete: medication name is required")
            wizard.next_step()

        async def save(payload: MedicationCourseInput, target_id: Optional[str]) -> dict:
            return await save_course_impl(es, courses_index, user_id, payload, target_id, ctx)

        return await wizard.submit(save)
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to submit course draft: {e}")
        return {"status": "error", "error": str(e)}


async def review_voice_course_impl(
    es: AsyncElasticsearch,
    medications_index: str,
    user_id: str,
    transcript: str,
    review_trigger_modulo: int = 0,
    today: Optional[date] = None,
    ctx: Context = None,
) -> Dict[str, Any]:
    """
    Implementation for turning a spoken course description into a review prompt.

    Nothing is saved here: the parse is shown to the user, and only confirmed
    fields go into the wizard draft. Every review_trigger_modulo-th call also
    runs the advisory LLM transcript review.

    Args:
        es: Elasticsearch client
        medications_index: User medications index (names preferred in matching)
        user_id: Current user
        transcript: Finalized speech-to-text output
        review_trigger_modulo: 0 disables the LLM review
        today: Reference date for relative start dates
        ctx: FastMCP context for logging

    Returns:
        Dict with status "review", the prompt and the parsed fields
    """
    try:
        user_meds = await fetch_user_medication_names(es, medications_index, user_id)
        parsed = parse_medication_course_from_voice(transcript, user_meds, today=today)
        parsed_json = parsed.model_dump(mode="json")

        transcript_reviewed = False
        if review_trigger_modulo and parsed.raw_transcript.strip():
            count = await increment_review_counter(es)
            if count % review_trigger_modulo == 0:
                review = await review_transcript_parse(parsed.raw_transcript, parsed_json, es, ctx)
                transcript_reviewed = review.get("status") == "review_completed"

        return {
            "status": "review",
            "review_prompt": generate_course_review_prompt(parsed),
            "parsed": parsed_json,
            "confidence_label": confidence_label(parsed.medication_name_confidence),
            "transcript_reviewed": transcript_reviewed,
        }
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to review voice input: {e}")
        return {"status": "error", "error": str(e)}


async def add_user_medication_impl(
    es: AsyncElasticsearch, es_index: str, user_id: str, name: str, ctx: Context = None
) -> Dict[str, Any]:
    try:
        name = (name or "").strip()
        if not name:
            raise ValidationFailed("Medication name must not be empty")
        existing = await fetch_user_medication_names(es, es_index, user_id)
        if any(known.lower() == name.lower() for known in existing):
            return {"status": "exists", "name": name}
        resp = await es.index(
            index=es_index,
            document={"user_id": user_id, "name": name, "created_at": utc_now().isoformat()},
        )
        return {"status": "saved", "id": get_es_response_id(resp), "name": name}
    except Exception as e:
        if ctx:
            await ctx.error(f"Failed to save medication {name}: {e}")
        return {"status": "error", "error": str(e)}


async def search_medications_impl(
    es: AsyncElasticsearch,
    es_index: str,
    user_id: str,
    query: str,
    debouncer: Debouncer,
    include_catalog: bool = True,
    ctx: Context = None,
) -> Dict[str, Any]:
    """
    Implementation for search-as-you-type over the user's medications.

    Calls arriving while an earlier one is still waiting supersede it; the
    superseded call returns status "superseded" with no results.
    """

    async def run_query() -> List[str]:
        resp = await es.search(
            index=es_index,
            size=20,
            query=user_scope_query(user_id, {"match_phrase_prefix": {"name": query}}),
        )
        names = [record["name"] for record in hits_to_records(resp) if record.get("name")]
        if include_catalog:
            lowered = query.lower()
            for catalog_name, _ in KNOWN_MEDICATIONS:
                if catalog_name.lower().startswith(lowered) and catalog_name not in names:
                    names.append(catalog_name)
        return names

    try:
        if not (query or "").strip():
            return {"status": "ok", "query": query, "results": []}
        results = await debouncer.call(run_query)
        if results is None:
            return {"status": "superseded", "query": query, "results": []}
        return {"status": "ok", "query": query, "results": results}
    except Exception as e:
        if ctx:
            await ctx.error(f"Medication search failed: {e}")
        return {"status": "error", "error": str(e)}
