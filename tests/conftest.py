import itertools
from datetime import datetime, timezone

import pytest


class FakeElasticsearch:
    """In-memory stand-in for AsyncElasticsearch covering the calls the tools make."""

    def __init__(self):
        self.indices_data = {}
        self.calls = []
        self.fail_on = set()
        self._ids = itertools.count(1)

    def _check(self, method):
        self.calls.append(method)
        if method in self.fail_on:
            raise ConnectionError(f"{method} failed")

    def options(self, **kwargs):
        return self

    def seed(self, index, doc_id, source):
        self.indices_data.setdefault(index, {})[doc_id] = dict(source)

    def docs(self, index):
        return self.indices_data.get(index, {})

    async def index(self, index, document, id=None, refresh=None):
        self._check("index")
        doc_id = id or f"doc-{next(self._ids)}"
        self.indices_data.setdefault(index, {})[doc_id] = dict(document)
        return {"_id": doc_id, "result": "created"}

    async def get(self, index, id):
        self._check("get")
        source = self.docs(index).get(id)
        if source is None:
            return {"_id": id, "found": False}
        return {"_id": id, "found": True, "_source": dict(source)}

    async def update(self, index, id, doc):
        self._check("update")
        self.indices_data[index][id].update(doc)
        return {"_id": id, "result": "updated"}

    async def delete(self, index, id):
        self._check("delete")
        del self.indices_data[index][id]
        return {"_id": id, "result": "deleted"}

    async def search(self, index, size=10, query=None, sort=None, from_=0, track_total_hits=None):
        self._check("search")
        hits = [
            {"_id": doc_id, "_source": dict(source)}
            for doc_id, source in self.docs(index).items()
            if _matches(source, query)
        ]
        for spec in reversed(sort or []):
            field, options = next(iter(spec.items()))
            reverse = options.get("order") == "desc"
            present = [h for h in hits if h["_source"].get(field) is not None]
            missing = [h for h in hits if h["_source"].get(field) is None]
            present.sort(key=lambda h: h["_source"][field], reverse=reverse)
            hits = present + missing
        page = hits[from_:from_ + size]
        return {"hits": {"total": {"value": len(hits), "relation": "eq"}, "hits": page}}

    async def close(self):
        pass


def _matches(source, query):
    if not query:
        return True
    if "bool" in query:
        clause = query["bool"]
        if not all(_matches(source, q) for q in clause.get("filter", [])):
            return False
        if any(_matches(source, q) for q in clause.get("must_not", [])):
            return False
        return True
    if "term" in query:
        field, value = next(iter(query["term"].items()))
        return source.get(field) == value
    if "exists" in query:
        return source.get(query["exists"]["field"]) is not None
    if "match_phrase_prefix" in query:
        field, value = next(iter(query["match_phrase_prefix"].items()))
        return str(source.get(field, "")).lower().startswith(value.lower())
    raise NotImplementedError(query)


class FakeContext:
    def __init__(self):
        self.infos = []
        self.errors = []

    async def info(self, message):
        self.infos.append(message)

    async def error(self, message):
        self.errors.append(message)


class RecordingScheduler:
    def __init__(self):
        self.scheduled = []
        self.cancelled = []

    async def schedule(self, reminder, ctx=None):
        self.scheduled.append(reminder)

    async def cancel(self, reminder_id, ctx=None):
        self.cancelled.append(reminder_id)


@pytest.fixture
def es():
    return FakeElasticsearch()


@pytest.fixture
def ctx():
    return FakeContext()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def now():
    # Tuesday, 14:00 in Berlin (CEST)
    return datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)
