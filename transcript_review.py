"""LLM jury review comparing a voice transcript with its heuristic course parse."""

import asyncio
import json
import os
from typing import Optional

import anthropic
from elasticsearch import AsyncElasticsearch
from fastmcp import Context

ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY")
TRANSCRIPT_REVIEW_INDEX = os.environ.get("TRANSCRIPT_REVIEW_INDEX", "transcript_reviews")

REVIEW_PROMPT_TEMPLATE = (
    "A patient described a migraine medication course by voice. A rule-based parser "
    "turned the transcript into structured fields.\n"
    "- List details from the transcript that the parse missed or got wrong "
    "(medication name, course type, dose, rhythm, start date, whether it is still taken).\n"
    "- Rate how faithful the parse is to the transcript on a scale of 1-10.\n"
    "- Keep it brief; do not give medical advice.\n\n"
    "Transcript:\n{transcript}\n\n"
    "Parsed course (JSON):\n{parsed_course}"
)

AGGREGATION_PROMPT_TEMPLATE = (
    "Several models reviewed the same voice transcript against a parsed medication course. "
    "Compile their findings into a markdown table with the columns: Model, "
    "Missed/Wrong Fields, Faithfulness Rating, Summary. Below are their reports.\n\n"
    "---\n\n{jury_reports}"
)

JURY_MODELS = [
    ("claude-3-5-haiku-latest", "Claude 3.5 Haiku (latest)"),
    ("claude-sonnet-4-20250514", "Claude 4 Sonnet (20250514)"),
    ("claude-opus-4-1-20250805", "Claude 4.1 Opus (20250805)"),
]
AGGREGATION_MODEL = "claude-sonnet-4-20250514"


def _response_text(response) -> str:
    if hasattr(response, "content") and response.content:
        return response.content[0].text
    return str(response)


async def review_transcript_parse(
    transcript: str,
    parsed_course: dict,
    es: AsyncElasticsearch,
    ctx: Context = None,
    client: Optional[anthropic.AsyncAnthropic] = None,
) -> dict:
    """
    Ask a jury of models how well the parse reflects the transcript and store the report.

    The review is advisory only: it never changes the parse or any stored course.
    A failing jury model is recorded in the report instead of aborting the review.

    Args:
        transcript: Raw finalized transcript
        parsed_course: ParsedMedicationCourse dumped in JSON mode
        es: Elasticsearch client for storing the report
        ctx: FastMCP context for logging
        client: Anthropic client (created from ANTHROPIC_API_KEY when omitted)

    Returns:
        dict: Review status with per-model outputs and the aggregated table
    """
    prompt = REVIEW_PROMPT_TEMPLATE.format(
        transcript=transcript, parsed_course=json.dumps(parsed_course, indent=2, ensure_ascii=False)
    )

    try:
        if client is None:
            if not ANTHROPIC_API_KEY:
                raise RuntimeError("ANTHROPIC_API_KEY environment variable not set.")
            client = anthropic.AsyncAnthropic(api_key=ANTHROPIC_API_KEY)

        async def call_jury_model(model_id: str, model_label: str) -> dict:
            try:
                response = await client.messages.create(
                    model=model_id,
                    max_tokens=512,
                    messages=[{"role": "user", "content": prompt}],
                )
                return {
                    "model_id": model_id,
                    "model_label": model_label,
                    "jury_report": _response_text(response),
                    "success": True,
                    "error": None,
                }
            except anthropic.APIError as e:
                if ctx:
                    await ctx.error(f"Review model {model_label} failed: {e}")
                return {
                    "model_id": model_id,
                    "model_label": model_label,
                    "jury_report": f"Error: {e}",
                    "success": False,
                    "error": str(e),
                }

        jury_outputs = await asyncio.gather(
            *[call_jury_model(model_id, model_label) for model_id, model_label in JURY_MODELS]
        )
        successful = [o for o in jury_outputs if o["success"]]

        jury_reports = "\n\n".join(f"### {o['model_label']}\n\n{o['jury_report']}" for o in jury_outputs)
        aggregation = await client.messages.create(
            model=AGGREGATION_MODEL,
            max_tokens=700,
            messages=[{"role": "user", "content": AGGREGATION_PROMPT_TEMPLATE.format(jury_reports=jury_reports)}],
        )
        aggregation_text = _response_text(aggregation)

        report = {
            "transcript": transcript,
            "parsed_course": parsed_course,
            "jury_prompt": prompt,
            "jury_models": [model_id for model_id, _ in JURY_MODELS],
            "jury_outputs": jury_outputs,
            "successful_models_count": len(successful),
            "failed_models_count": len(jury_outputs) - len(successful),
            "jury_aggregation_model": AGGREGATION_MODEL,
            "jury_aggregation": aggregation_text,
        }
        await es.index(index=TRANSCRIPT_REVIEW_INDEX, document=report)

        return {
            "status": "review_completed",
            "jury_outputs": jury_outputs,
            "successful_models_count": len(successful),
            "failed_models_count": len(jury_outputs) - len(successful),
            "jury_aggregation": aggregation_text,
        }
    except Exception as e:
        if ctx:
            await ctx.error(f"Transcript review failed: {e}")
        return {"status": "error", "error": str(e)}
