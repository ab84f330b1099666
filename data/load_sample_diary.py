import asyncio
import json
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add parent directory to path so we can import from utils
parent_dir = Path(__file__).parent.parent
sys.path.append(str(parent_dir))

# Load environment variables from .env file (override shell env vars)
load_dotenv(parent_dir / ".env", override=True)

from data.create_indices import create_indices
from diary_schema import ContextNote, MedicationCourse, PainEntry, Reminder
from utils.es_utils import create_es_client

SAMPLE_FILE = Path(__file__).parent / "sample_diary.json"

# Sample section -> (index, model used to validate each record)
SECTIONS = {
    "pain_entries": (os.environ.get("PAIN_ENTRIES_INDEX", "pain_entries"), PainEntry),
    "context_notes": (os.environ.get("CONTEXT_NOTES_INDEX", "context_notes"), ContextNote),
    "reminders": (os.environ.get("REMINDERS_INDEX", "reminders"), Reminder),
    "medication_courses": (os.environ.get("MEDICATION_COURSES_INDEX", "medication_courses"), MedicationCourse),
}
USER_MEDICATIONS_INDEX = os.environ.get("USER_MEDICATIONS_INDEX", "user_medications")


def build_actions(samples: dict) -> list:
    actions = []
    for section, (index, model) in SECTIONS.items():
        for record in samples.get(section, []):
            record = {"user_id": samples["user_id"], **record}
            document = model.model_validate(record).model_dump(mode="json", exclude={"id"})
            actions.append({"index": {"_index": index}})
            actions.append(document)
    for name in samples.get("user_medications", []):
        actions.append({"index": {"_index": USER_MEDICATIONS_INDEX}})
        actions.append({"user_id": samples["user_id"], "name": name})
    return actions


async def load_sample_diary(es, reset: bool = False):
    """Load the demo diary; existing indices are only dropped when reset is set."""
    await create_indices(es, reset=reset)

    with open(SAMPLE_FILE, "r", encoding="utf-8") as f:
        samples = json.load(f)

    actions = build_actions(samples)

    # Bulk insert with longer timeout
    es_with_timeout = es.options(request_timeout=120)
    resp = await es_with_timeout.bulk(operations=actions, refresh=True)

    if not resp.get("errors", True):
        print(f"Bulk insert successful: {len(actions) // 2} sample records loaded.")
    else:
        print(f"Bulk insert completed with errors: {resp}")
    return resp


async def main():
    es = create_es_client()
    try:
        await load_sample_diary(es, reset="--reset" in sys.argv)
    finally:
        await es.close()


if __name__ == "__main__":
    asyncio.run(main())
