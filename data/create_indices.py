import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add parent directory to path so we can import from utils
parent_dir = Path(__file__).parent.parent
sys.path.append(str(parent_dir))

# Load environment variables from .env file (override shell env vars)
load_dotenv(parent_dir / ".env", override=True)

from utils.es_utils import create_es_client

INDEX_MAPPINGS = {
    os.environ.get("PAIN_ENTRIES_INDEX", "pain_entries"): {
        "properties": {
            "user_id": {"type": "keyword"},
            "timestamp_created": {"type": "date"},
            "selected_date": {"type": "date"},
            "selected_time": {"type": "keyword"},
            "pain_level": {"type": "keyword"},
            "medications": {"type": "keyword"},
            "medication_intakes": {
                "type": "object",
                "properties": {
                    "medication_name": {"type": "keyword"},
                    "dose_quarters": {"type": "integer"},
                },
            },
            "notes": {"type": "text"},
        }
    },
    os.environ.get("CONTEXT_NOTES_INDEX", "context_notes"): {
        "properties": {
            "user_id": {"type": "keyword"},
            "text": {"type": "text"},
            "occurred_at": {"type": "date"},
            "deleted_at": {"type": "date"},
        }
    },
    os.environ.get("REMINDERS_INDEX", "reminders"): {
        "properties": {
            "user_id": {"type": "keyword"},
            "type": {"type": "keyword"},
            "title": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
            "date_time": {"type": "date"},
            "repeat": {"type": "keyword"},
            "notes": {"type": "text"},
            "notification_enabled": {"type": "boolean"},
            "status": {"type": "keyword"},
            "medications": {"type": "keyword"},
            "time_of_day": {"type": "keyword"},
            "series_id": {"type": "keyword"},
            "follow_up_enabled": {"type": "boolean"},
            "follow_up_interval_value": {"type": "integer"},
            "follow_up_interval_unit": {"type": "keyword"},
            "next_follow_up_date": {"type": "date"},
            "notify_offsets_minutes": {"type": "integer"},
            "snoozed_until": {"type": "date"},
            "snooze_count": {"type": "integer"},
        }
    },
    os.environ.get("MEDICATION_COURSES_INDEX", "medication_courses"): {
        "properties": {
            "user_id": {"type": "keyword"},
            "medication_name": {"type": "keyword"},
            "type": {"type": "keyword"},
            "dose_text": {"type": "text"},
            "start_date": {"type": "date"},
            "end_date": {"type": "date"},
            "is_active": {"type": "boolean"},
            "baseline_migraine_days": {"type": "keyword"},
            "baseline_acute_med_days": {"type": "keyword"},
            "baseline_triptan_doses_per_month": {"type": "integer"},
            "baseline_impairment_level": {"type": "keyword"},
            "subjective_effectiveness": {"type": "integer"},
            "had_side_effects": {"type": "boolean"},
            "side_effects_text": {"type": "text"},
            "discontinuation_reason": {"type": "keyword"},
            "discontinuation_details": {"type": "text"},
            "note_for_physician": {"type": "text"},
            "created_at": {"type": "date"},
            "updated_at": {"type": "date"},
        }
    },
    os.environ.get("USER_MEDICATIONS_INDEX", "user_medications"): {
        "properties": {
            "user_id": {"type": "keyword"},
            "name": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
            "created_at": {"type": "date"},
        }
    },
    os.environ.get("TRANSCRIPT_REVIEW_INDEX", "transcript_reviews"): {
        "properties": {
            "transcript": {"type": "text"},
            "parsed_course": {"type": "object", "enabled": False},
            "jury_outputs": {"type": "object", "enabled": False},
            "successful_models_count": {"type": "integer"},
            "failed_models_count": {"type": "integer"},
            "jury_aggregation": {"type": "text"},
        }
    },
}


async def create_indices(es, reset: bool = False):
    for index, mappings in INDEX_MAPPINGS.items():
        if await es.indices.exists(index=index):
            if not reset:
                print(f"Index {index} exists, skipping")
                continue
            await es.indices.delete(index=index)
            print(f"Deleted index {index}")
        await es.indices.create(index=index, mappings=mappings)
        print(f"Created index {index}")


async def main():
    es = create_es_client()
    try:
        await create_indices(es, reset="--reset" in sys.argv)
    finally:
        await es.close()


if __name__ == "__main__":
    asyncio.run(main())
