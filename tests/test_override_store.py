import asyncio
import json

import pytest

from packages.domain.classification.errors import PersistenceFailure
from packages.domain.classification.override_store import (
    InMemoryOverrideBackend,
    JsonFileOverrideBackend,
    OverrideStore,
)
from packages.domain.classification.schemas import Override


@pytest.fixture
def overrides_path(tmp_path):
    return tmp_path / "data" / "corrections.json"


@pytest.fixture
def file_store(overrides_path):
    return OverrideStore(JsonFileOverrideBackend(overrides_path))


async def test_missing_file_reads_as_empty(file_store, overrides_path):
    assert not overrides_path.exists()
    assert await file_store.lookup("sapi hidup") is None
    assert await file_store.all() == []
    assert json.loads(await file_store.serialize()) == []


async def test_upsert_then_case_insensitive_lookup(file_store):
    await file_store.upsert("Sapi Hidup", "010229")

    override = await file_store.lookup("SAPI HIDUP")
    assert override == Override(product_name="Sapi Hidup", correct_code="010229")
    assert await file_store.lookup("sapi") is None


async def test_upsert_is_idempotent(file_store):
    await file_store.upsert("komputer portabel", "847130")
    await file_store.upsert("komputer portabel", "847130")

    assert await file_store.all() == [
        Override(product_name="komputer portabel", correct_code="847130"),
    ]


async def test_same_name_last_write_wins_and_existing_casing_kept(file_store):
    await file_store.upsert("Sapi Hidup", "010221")
    stored = await file_store.upsert("SAPI HIDUP", "010229")

    assert stored.product_name == "Sapi Hidup"
    assert stored.correct_code == "010229"
    assert await file_store.all() == [
        Override(product_name="Sapi Hidup", correct_code="010229"),
    ]


async def test_new_names_are_appended_in_order(file_store):
    await file_store.upsert("termometer", "902511")
    await file_store.upsert("ponsel", "851713")
    await file_store.upsert("Termometer", "902519")

    assert [(o.product_name, o.correct_code) for o in await file_store.all()] == [
        ("termometer", "902519"),
        ("ponsel", "851713"),
    ]


async def test_file_format(file_store, overrides_path):
    await file_store.upsert("Sapi Hidup", "010229")

    assert json.loads(overrides_path.read_text(encoding="utf-8")) == [
        {"productName": "Sapi Hidup", "correctCode": "010229"},
    ]


async def test_legacy_corrections_file_is_readable(file_store, overrides_path):
    overrides_path.parent.mkdir(parents=True)
    overrides_path.write_text(
        json.dumps([{"productName": "Sapi Hidup", "correctHsCode": "010229"}]),
        encoding="utf-8",
    )

    found = await file_store.lookup("sapi hidup")
    assert found == Override(product_name="Sapi Hidup", correct_code="010229")

    await file_store.upsert("ponsel", "851713")
    assert json.loads(overrides_path.read_text(encoding="utf-8")) == [
        {"productName": "Sapi Hidup", "correctCode": "010229"},
        {"productName": "ponsel", "correctCode": "851713"},
    ]


async def test_serialize_is_full_json_table(file_store):
    for index in range(25):
        await file_store.upsert(f"barang {index}", f"{index:06d}")

    block = json.loads(await file_store.serialize())
    assert len(block) == 25
    assert block[0] == {"productName": "barang 0", "correctCode": "000000"}


async def test_overrides_are_read_fresh(overrides_path):
    writer = OverrideStore(JsonFileOverrideBackend(overrides_path))
    reader = OverrideStore(JsonFileOverrideBackend(overrides_path))

    assert await reader.lookup("ponsel") is None
    await writer.upsert("ponsel", "851713")
    assert (await reader.lookup("Ponsel")).correct_code == "851713"


async def test_malformed_file_is_not_overwritten(file_store, overrides_path):
    overrides_path.parent.mkdir(parents=True)
    overrides_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceFailure):
        await file_store.lookup("sapi hidup")
    with pytest.raises(PersistenceFailure):
        await file_store.upsert("sapi hidup", "010229")

    assert overrides_path.read_text(encoding="utf-8") == "{not json"


async def test_unwritable_location_propagates(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = OverrideStore(JsonFileOverrideBackend(blocker / "corrections.json"))

    with pytest.raises(PersistenceFailure):
        await store.upsert("sapi hidup", "010229")


async def test_concurrent_upserts_same_key_leave_one_entry(file_store):
    codes = [f"01022{i}" for i in range(10)]

    await asyncio.gather(*(file_store.upsert("Sapi Hidup", code) for code in codes))

    stored = await file_store.all()
    assert len(stored) == 1
    assert stored[0].correct_code == codes[-1]
    assert file_store._key_locks == {}


async def test_key_locks_do_not_accumulate(store):
    for index in range(50):
        await store.upsert(f"barang {index}", "847130")

    assert store._key_locks == {}
    assert store._lock_users == {}


async def test_key_lock_released_after_failed_upsert():
    class FailingBackend(InMemoryOverrideBackend):
        async def upsert(self, override):
            raise PersistenceFailure("disk full")

    store = OverrideStore(FailingBackend())

    with pytest.raises(PersistenceFailure):
        await store.upsert("sapi hidup", "010229")

    assert store._key_locks == {}


async def test_concurrent_upserts_different_keys_are_not_lost(file_store):
    names = [f"barang {i}" for i in range(15)]

    await asyncio.gather(*(file_store.upsert(name, "847130") for name in names))

    assert sorted(o.product_name for o in await file_store.all()) == sorted(names)


async def test_in_memory_backend_matches_file_semantics(store):
    await store.upsert("Sapi Hidup", "010221")
    await store.upsert("sapi hidup", "010229")

    assert await store.all() == [Override(product_name="Sapi Hidup", correct_code="010229")]
    assert (await store.lookup("SAPI hidup")).correct_code == "010229"
