"""Elasticsearch utilities for MigraineMinder."""

import os
from typing import Any, Dict, List, Optional

from elasticsearch import AsyncElasticsearch

# Get configuration from environment
REVIEW_COUNTER_INDEX = os.environ.get("REVIEW_COUNTER_INDEX", "transcript_review_counter")


def create_es_client(
    endpoint: Optional[str] = None, api_key: Optional[str] = None, debug: bool = False
) -> AsyncElasticsearch:
    """
    Create and configure AsyncElasticsearch client.

    Args:
        endpoint: Elasticsearch endpoint URL (defaults to ES_ENDPOINT env var)
        api_key: API key for authentication (defaults to ES_API_KEY env var)
        debug: If True, print connection details (default: False)

    Returns:
        Configured AsyncElasticsearch client

    Examples:
        # Use environment variables
        es = create_es_client()

        # Local development node
        es = create_es_client(endpoint="http://localhost:9200")
    """
    es_endpoint = (endpoint or os.environ.get("ES_ENDPOINT", "http://localhost:9200")).strip()
    es_api_key = api_key or os.environ.get("ES_API_KEY")
    if es_api_key:
        es_api_key = es_api_key.strip()

    if debug:
        print("[ES Client Debug]")
        print(f"  Endpoint: {es_endpoint}")
        print(f"  API Key: {'*' * 20 if es_api_key else 'None (using no auth)'}")
        if es_api_key and ("<" in es_api_key or ">" in es_api_key):
            print("  WARNING: API key looks like a placeholder (contains < or >)")

    if es_api_key:
        # Cloud/Serverless with API key authentication
        return AsyncElasticsearch(
            hosts=[es_endpoint],
            api_key=es_api_key,
            verify_certs=True,
            request_timeout=30,
        )
    # Local instance without authentication
    return AsyncElasticsearch(hosts=[es_endpoint], verify_certs=False, request_timeout=30)


def get_es_response_id(resp: Any) -> Optional[str]:
    """
    Standardize extraction of document ID from Elasticsearch response.

    Args:
        resp: Elasticsearch response object

    Returns:
        Document ID or None if not found
    """
    if hasattr(resp, "get"):
        return resp.get("_id")
    if hasattr(resp, "body") and resp.body:
        return resp.body.get("_id")
    return None


def user_scope_query(user_id: str, *clauses: dict, exclude_deleted: bool = False) -> dict:
    """
    Bool query restricted to one user's documents.

    Args:
        user_id: Owner of the documents
        clauses: Additional filter clauses
        exclude_deleted: Drop soft-deleted documents (deleted_at set)

    Returns:
        Elasticsearch query body
    """
    query: Dict[str, Any] = {"bool": {"filter": [{"term": {"user_id": user_id}}, *clauses]}}
    if exclude_deleted:
        query["bool"]["must_not"] = [{"exists": {"field": "deleted_at"}}]
    return query


def hits_to_records(resp: Any) -> List[dict]:
    """Flatten search hits into source dicts carrying their document ID as `id`."""
    records = []
    for hit in resp["hits"]["hits"]:
        record = dict(hit["_source"])
        record["id"] = hit["_id"]
        records.append(record)
    return records


def hits_total(resp: Any) -> Optional[int]:
    total = resp["hits"].get("total")
    if isinstance(total, dict):
        return total.get("value")
    return total


async def get_owned_document(es: AsyncElasticsearch, index: str, doc_id: str, user_id: str) -> Optional[dict]:
    """
    Fetch a document only if it belongs to user_id.

    Returns:
        The document source, or None when it is missing or owned by someone else
    """
    resp = await es.options(ignore_status=404).get(index=index, id=doc_id)
    if not resp.get("found"):
        return None
    source = resp["_source"]
    if source.get("user_id") != user_id:
        return None
    return source


async def get_review_counter(es: AsyncElasticsearch) -> int:
    """
    Get the current transcript review trigger counter from Elasticsearch.

    Returns:
        Current counter value (0 if counter doesn't exist)
    """
    resp = await es.options(ignore_status=404).get(index=REVIEW_COUNTER_INDEX, id="global_counter")
    if not resp.get("found"):
        return 0
    return resp["_source"].get("count", 0)


async def increment_review_counter(es: AsyncElasticsearch) -> int:
    """
    Increment and return the transcript review trigger counter.

    Returns:
        New counter value after increment
    """
    new_count = await get_review_counter(es) + 1
    await es.index(index=REVIEW_COUNTER_INDEX, id="global_counter", document={"count": new_count})
    return new_count


def parse_review_mode(mode: Optional[str]) -> int:
    """
    Translate TRANSCRIPT_REVIEW_MODE into a trigger modulo.

    'none' gives 0 (never), 'every_N' gives N; anything unparsable falls back to 0.
    """
    if not mode or mode == "none":
        return 0
    if mode.startswith("every_"):
        try:
            return max(int(mode.split("_")[1]), 0)
        except (ValueError, IndexError):
            return 0
    return 0
