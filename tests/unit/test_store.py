"""
Store tests against a real SQLite database.

Covers the atomic upsert, tag containment, same-day listing and deletion.
"""

from datetime import datetime, timedelta, timezone

from memory_bridge.models.memory import utcnow
from memory_bridge.services.store import day_bounds_utc

from tests.conftest import make_record, set_last_updated


class TestUpsert:

    async def test_first_insert_creates_row(self, store):
        result = await store.upsert(make_record("Meeting with Adam", tags=["work"]))

        assert result.created is True
        memory = await store.get_by_id(result.id)
        assert memory.text == "Meeting with Adam"
        assert memory.text_norm == "meeting with adam"
        assert memory.tags == ["work"]
        assert memory.type == "note"
        assert memory.source == "manual"
        assert memory.created_at == memory.last_updated

    async def test_conflict_refreshes_metadata_but_keeps_identity(self, store):
        first = await store.upsert(make_record("Meeting with Adam", tags=["work"], type="event"))
        await set_last_updated(store, first.id, utcnow() - timedelta(hours=1))
        before = await store.get_by_id(first.id)

        second = await store.upsert(make_record("  meeting WITH adam", tags=["urgent"], source="voice"))

        assert second.created is False
        assert second.id == first.id
        after = await store.get_by_id(first.id)
        assert after.text == "Meeting with Adam"
        assert after.tags == ["urgent"]
        assert after.source == "voice"
        assert after.type == "note"
        assert after.created_at == before.created_at
        assert after.last_updated > before.last_updated
        assert len(await store.list_all(10)) == 1

    async def test_conflict_without_update_leaves_row_untouched(self, store):
        first = await store.upsert(make_record("Buy milk", tags=["home"]))
        before = await store.get_by_id(first.id)

        second = await store.upsert(make_record("BUY MILK", tags=["other"]), update_existing=False)

        assert second.created is False
        assert second.id == first.id
        after = await store.get_by_id(first.id)
        assert after.tags == ["home"]
        assert after.last_updated == before.last_updated

    async def test_embedding_is_stored(self, store):
        result = await store.upsert(make_record("vector me", embedding=[0.1, 0.2, 0.3]))

        embedded = await store.list_all_embedded()
        assert [(item.id, item.embedding) for item in embedded] == [(result.id, [0.1, 0.2, 0.3])]

    async def test_rows_without_embedding_are_not_scanned(self, store):
        await store.upsert(make_record("no vector"))
        assert await store.list_all_embedded() == []
        memory = await store.get_by_text_norm("no vector")
        assert memory.embedding is None
        assert memory.has_embedding is False


class TestQueries:

    async def test_tag_containment(self, store):
        both = await store.upsert(make_record("Quarterly report", tags=["urgent", "work"]))
        await store.upsert(make_record("Water plants", tags=["home"]))

        assert [m.id for m in await store.list_by_tag("work")] == [both.id]
        assert [m.id for m in await store.list_by_tag("urgent")] == [both.id]
        assert await store.list_by_tag("wor") == []
        assert len(await store.list_by_tag("home")) == 1

    async def test_type_is_exact_match(self, store):
        await store.upsert(make_record("Dentist at 9", type="event"))
        await store.upsert(make_record("Dentist notes", type="events"))

        events = await store.list_by_type("event")
        assert [m.text for m in events] == ["Dentist at 9"]

    async def test_search_is_literal_substring(self, store):
        await store.upsert(make_record("100% done"))
        await store.upsert(make_record("1000 done"))

        matches = await store.search_text_norm("100%", limit=10)
        assert [m.text for m in matches] == ["100% done"]

    async def test_list_all_is_most_recent_first(self, store):
        old = await store.upsert(make_record("old"))
        new = await store.upsert(make_record("new"))
        now = utcnow()
        await set_last_updated(store, old.id, now - timedelta(minutes=5))
        await set_last_updated(store, new.id, now)

        assert [m.id for m in await store.list_all(10)] == [new.id, old.id]
        assert [m.id for m in await store.list_all(1)] == [new.id]

    async def test_created_today(self, store):
        result = await store.upsert(make_record("today's memory"))

        today = await store.list_created_today()
        assert [m.id for m in today] == [result.id]

        tomorrow = datetime.now(timezone.utc) + timedelta(days=1)
        assert await store.list_created_today(tomorrow) == []


class TestDelete:

    async def test_delete_existing(self, store):
        result = await store.upsert(make_record("to delete"))

        assert await store.delete_by_id(result.id) is True
        assert await store.get_by_id(result.id) is None

    async def test_delete_missing(self, store):
        assert await store.delete_by_id("00000000-0000-0000-0000-000000000000") is False

    async def test_reinsert_after_delete_gets_new_id(self, store):
        first = await store.upsert(make_record("again"))
        await store.delete_by_id(first.id)

        second = await store.upsert(make_record("again"))
        assert second.created is True
        assert second.id != first.id


class TestDayBounds:

    def test_utc_day(self):
        start, end = day_bounds_utc("UTC", datetime(2024, 3, 10, 15, 30, tzinfo=timezone.utc))
        assert start == datetime(2024, 3, 10)
        assert end == datetime(2024, 3, 11)

    def test_zone_shifts_the_day(self):
        # 02:00 UTC on the 10th is still the 9th in New York
        start, end = day_bounds_utc("America/New_York", datetime(2024, 3, 10, 2, 0, tzinfo=timezone.utc))
        assert start == datetime(2024, 3, 9, 5, 0)
        assert end == datetime(2024, 3, 10, 5, 0)

    def test_naive_reference_is_utc(self):
        start, _ = day_bounds_utc("UTC", datetime(2024, 1, 1, 23, 59))
        assert start == datetime(2024, 1, 1)


async def test_ping(store):
    assert await store.ping() is True
