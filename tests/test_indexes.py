import pytest

from petstore_api.app.storage import IndexMaintainer, ValidationError
from petstore_api.app.storage.indexes import ArrayIndex, ScalarIndex, normalise_id


class RecordingPipe:
    def __init__(self):
        self.commands = []

    def srem(self, key, member):
        self.commands.append(("SREM", key, member))

    def sadd(self, key, member):
        self.commands.append(("SADD", key, member))


def pet(ident=1, status="available", tags=("dog",)):
    return {"id": ident, "name": "rex", "status": status, "tags": [{"name": t} for t in tags]}


def test_index_keys_cover_status_and_every_tag():
    keys = IndexMaintainer().index_keys("pets", pet(tags=("dog", "puppy", "dog")))
    assert keys == ["pets:status:available", "pets:tags:dog", "pets:tags:puppy"]


def test_users_are_indexed_by_username():
    keys = IndexMaintainer().index_keys("users", {"id": 3, "username": "alice"})
    assert keys == ["users:username:alice"]


def test_plan_is_symmetric_difference():
    maintainer = IndexMaintainer()
    plan = maintainer.plan("pets", pet(tags=("dog", "old")), pet(status="sold", tags=("dog", "new")))
    assert plan.ident == "1"
    assert plan.removals == ["pets:status:available", "pets:tags:old"]
    assert plan.additions == ["pets:status:sold", "pets:tags:new"]


def test_plan_without_changes_is_empty():
    plan = IndexMaintainer().plan("pets", pet(), pet())
    assert not plan


def test_plan_one_sided():
    maintainer = IndexMaintainer()
    added = maintainer.plan("pets", None, pet())
    removed = maintainer.plan("pets", pet(), None)
    assert added.additions == removed.removals == ["pets:status:available", "pets:tags:dog"]
    assert not added.removals and not removed.additions
    with pytest.raises(ValueError):
        maintainer.plan("pets", None, None)


def test_plan_refuses_identifier_change():
    with pytest.raises(ValidationError):
        IndexMaintainer().plan("pets", pet(ident=1), pet(ident=2))


def test_apply_queues_removals_before_additions():
    maintainer = IndexMaintainer()
    pipe = RecordingPipe()
    issued = maintainer.reindex(pipe, "pets", pet(), pet(status="sold"))
    assert pipe.commands == [
        ("SREM", "pets:status:available", "1"),
        ("SADD", "pets:status:sold", "1"),
    ]
    assert issued == ["SREM pets:status:available", "SADD pets:status:sold"]


def test_add_and_remove_helpers():
    maintainer = IndexMaintainer()
    pipe = RecordingPipe()
    maintainer.add_to_indexes(pipe, "users", {"id": "u7", "username": "bob"})
    maintainer.remove_from_indexes(pipe, "users", {"id": "u7", "username": "bob"})
    assert pipe.commands == [
        ("SADD", "users:username:bob", "u7"),
        ("SREM", "users:username:bob", "u7"),
    ]


def test_tag_without_name_fails_before_any_command():
    maintainer = IndexMaintainer()
    pipe = RecordingPipe()
    record = {"id": 1, "status": "available", "tags": [{"name": "dog"}, {"label": "cat"}]}
    with pytest.raises(ValidationError):
        maintainer.add_to_indexes(pipe, "pets", record)
    assert pipe.commands == []


@pytest.mark.parametrize(
    "record",
    [
        {"status": "available"},
        {"id": None, "status": "available"},
        {"id": 1},
        {"id": 1, "status": 5},
        {"id": 1, "status": "available", "tags": "dog"},
        {"id": 1, "status": "available", "tags": ["dog"]},
    ],
)
def test_invalid_pets_are_rejected(record):
    with pytest.raises(ValidationError):
        IndexMaintainer().index_keys("pets", record)


def test_missing_optional_tags_are_allowed():
    assert IndexMaintainer().index_keys("pets", {"id": 1, "status": "sold", "tags": None}) == [
        "pets:status:sold"
    ]


def test_unknown_collection_is_rejected():
    with pytest.raises(ValidationError):
        IndexMaintainer().schema("orders")


@pytest.mark.parametrize("value,expected", [(1, "1"), ("abc", "abc"), (-4, "-4")])
def test_normalise_id_accepts_ints_and_strings(value, expected):
    assert normalise_id(value) == expected


@pytest.mark.parametrize("value", [True, 1.5, "", "a:b", None, [1]])
def test_normalise_id_rejects_other_values(value):
    with pytest.raises(ValidationError):
        normalise_id(value, "pets")


def test_field_index_variants():
    record = {"status": "sold", "tags": [{"name": "a"}, {"name": "b"}]}
    assert ScalarIndex("status").values(record, "pets", "1") == ["sold"]
    assert ArrayIndex("tags").values(record, "pets", "1") == ["a", "b"]
    assert ScalarIndex("missing").values(record, "pets", "1") == []
    with pytest.raises(ValidationError):
        ArrayIndex("missing", required=True).values(record, "pets", "1")


def test_stored_generation_is_read_without_validation():
    maintainer = IndexMaintainer()
    stored = {"id": 4, "status": 7, "tags": [{"name": "dog"}, {"label": "x"}, "cat"]}
    assert maintainer.stored_keys("pets", stored) == ["pets:tags:dog"]
    plan = maintainer.plan("pets", stored, None, ident="4")
    assert plan.removals == ["pets:tags:dog"]
    plan = maintainer.plan("pets", stored, pet(ident=4, tags=("dog",)), ident="4")
    assert plan.removals == []
    assert plan.additions == ["pets:status:available"]


def test_incoming_generation_must_match_key():
    with pytest.raises(ValidationError):
        IndexMaintainer().plan("pets", None, pet(ident=5), ident="4")
