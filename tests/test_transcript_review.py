from types import SimpleNamespace

import anthropic
import httpx

import transcript_review
from transcript_review import AGGREGATION_MODEL, JURY_MODELS, TRANSCRIPT_REVIEW_INDEX, review_transcript_parse

PARSED = {"medication_name": "Ajovy", "type": "prophylaxis", "dosage": {"dose_value": "225"}}


class FakeMessages:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.requests = []

    async def create(self, model, max_tokens, messages):
        self.requests.append(model)
        if model in self.failing:
            raise anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com"))
        return SimpleNamespace(content=[SimpleNamespace(text=f"report from {model}")])


def fake_client(failing=()):
    return SimpleNamespace(messages=FakeMessages(failing))


async def test_review_is_indexed(es):
    client = fake_client()
    result = await review_transcript_parse("Ajovy seit März", PARSED, es, client=client)

    assert result["status"] == "review_completed"
    assert result["successful_models_count"] == len(JURY_MODELS)
    assert result["jury_aggregation"] == f"report from {AGGREGATION_MODEL}"
    (report,) = es.docs(TRANSCRIPT_REVIEW_INDEX).values()
    assert report["transcript"] == "Ajovy seit März"
    assert report["parsed_course"] == PARSED
    assert '"Ajovy"' in report["jury_prompt"]


async def test_failing_model_is_recorded(es, ctx):
    failing_model = JURY_MODELS[0][0]
    result = await review_transcript_parse("Ajovy", PARSED, es, ctx=ctx, client=fake_client([failing_model]))

    assert result["status"] == "review_completed"
    assert result["failed_models_count"] == 1
    failed = [o for o in result["jury_outputs"] if not o["success"]]
    assert failed[0]["model_id"] == failing_model
    assert ctx.errors


async def test_missing_api_key_is_an_error(es, ctx, monkeypatch):
    monkeypatch.setattr(transcript_review, "ANTHROPIC_API_KEY", None)
    result = await review_transcript_parse("Ajovy", PARSED, es, ctx=ctx)
    assert result["status"] == "error"
    assert "ANTHROPIC_API_KEY" in result["error"]
    assert es.calls == []
