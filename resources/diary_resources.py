"""Resources implementations for MigraineMinder MCP server."""

from typing import List

from elasticsearch import AsyncElasticsearch

from utils.es_utils import hits_to_records, user_scope_query


async def list_pain_entries_impl(
    es: AsyncElasticsearch, es_index: str, user_id: str, limit: int = 20
) -> List[dict]:
    """
    Implementation for retrieving a user's most recent pain entries.

    Args:
        es: Elasticsearch client
        es_index: Pain entries index
        user_id: Owner of the diary
        limit: Maximum number of entries to retrieve

    Returns:
        List of pain entry dictionaries sorted by creation time descending

    Raises:
        Exception: If Elasticsearch query fails
    """
    resp = await es.search(
        index=es_index,
        size=limit,
        query=user_scope_query(user_id),
        sort=[{"timestamp_created": {"order": "desc", "missing": "_last"}}],
    )
    return hits_to_records(resp)


async def list_context_notes_impl(
    es: AsyncElasticsearch, es_index: str, user_id: str, limit: int = 20
) -> List[dict]:
    """Most recent context notes that have not been deleted."""
    resp = await es.search(
        index=es_index,
        size=limit,
        query=user_scope_query(user_id, exclude_deleted=True),
        sort=[{"occurred_at": {"order": "desc"}}],
    )
    return hits_to_records(resp)
