from data.create_indices import INDEX_MAPPINGS
from data.load_sample_diary import build_actions, load_sample_diary


class FakeIndices:
    def __init__(self, existing):
        self.existing = set(existing)
        self.deleted = []
        self.created = []

    async def exists(self, index):
        return index in self.existing

    async def delete(self, index):
        self.existing.discard(index)
        self.deleted.append(index)

    async def create(self, index, mappings):
        self.existing.add(index)
        self.created.append(index)


class FakeBulkClient:
    def __init__(self, existing=()):
        self.indices = FakeIndices(existing)
        self.operations = []

    def options(self, **kwargs):
        return self

    async def bulk(self, operations, refresh=None):
        self.operations.extend(operations)
        return {"errors": False}


async def test_loading_sample_diary_keeps_existing_indices():
    es = FakeBulkClient(existing=INDEX_MAPPINGS)
    await load_sample_diary(es)
    assert es.indices.deleted == []
    assert es.indices.created == []
    assert es.operations


async def test_loading_sample_diary_creates_missing_indices():
    es = FakeBulkClient(existing=["reminders"])
    await load_sample_diary(es)
    assert "reminders" not in es.indices.created
    assert set(es.indices.created) == set(INDEX_MAPPINGS) - {"reminders"}


async def test_reset_is_opt_in():
    es = FakeBulkClient(existing=INDEX_MAPPINGS)
    await load_sample_diary(es, reset=True)
    assert set(es.indices.deleted) == set(INDEX_MAPPINGS)
    assert set(es.indices.created) == set(INDEX_MAPPINGS)


def test_build_actions_stamps_user():
    actions = build_actions({"user_id": "demo", "user_medications": ["Ajovy"]})
    assert actions[1] == {"user_id": "demo", "name": "Ajovy"}
