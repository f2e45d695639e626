"""Tests for the in-memory event store."""

import textwrap

import pytest

from showroom_calendar.backends.base import CalendarBackend
from showroom_calendar.backends import memory
from showroom_calendar.backends.memory import MemoryBackend, normalize_date, normalize_time


@pytest.fixture
def backend():
    return MemoryBackend("showroom", {})


async def _seed(backend: MemoryBackend):
    await backend.create_event(
        title="田中様 商談", start_date="2025-12-12", start_time="10:00", end_time="11:00",
        type="meeting", assigned_to_name="目黒",
    )
    await backend.create_event(
        title="年末展示会", start_date="2025-12-21", end_date="2025-12-22", is_all_day=True,
        type="showroom", assigned_to_name="全員",
    )
    await backend.create_event(
        title="山田様 納車", start_date="2025-12-13", start_time="14:00", end_time="15:30",
        type="delivery", assigned_to_name="野島",
    )


class TestNormalize:
    def test_date_formats(self):
        assert normalize_date("2025-12-03") == "2025-12-03"
        assert normalize_date("2025/12/3") == "2025-12-03"
        assert normalize_date("2025-12-03T09:00:00") == "2025-12-03"

    def test_invalid_date(self):
        with pytest.raises(ValueError, match="Invalid date"):
            normalize_date("not-a-date")

    def test_times(self):
        assert normalize_time("9:05") == "09:05"
        assert normalize_time(600) == "10:00"
        assert normalize_time("") is None
        assert normalize_time(None) is None

    def test_invalid_time(self):
        with pytest.raises(ValueError, match="Invalid time"):
            normalize_time("25:00")
        with pytest.raises(ValueError, match="Invalid time"):
            normalize_time("noon")


class TestMemoryBackend:
    def test_satisfies_protocol(self, backend):
        assert isinstance(backend, CalendarBackend)

    async def test_create_assigns_id_and_timestamps(self, backend):
        event = await backend.create_event(title="Test", start_date="2025-12-12")
        assert event.id
        assert event.calendar == "showroom"
        assert event.end_date == "2025-12-12"
        assert event.created_at == event.updated_at != ""

    async def test_all_day_drops_times(self, backend):
        event = await backend.create_event(
            title="Fair", start_date="2025-12-21", is_all_day=True, start_time="10:00",
        )
        assert event.start_time is None
        assert event.end_time is None

    async def test_list_events_by_range(self, backend):
        await _seed(backend)
        events = await backend.list_events("2025-12-13", "2025-12-21")
        assert {e.title for e in events} == {"山田様 納車", "年末展示会"}

    async def test_events_on_date_includes_multi_day(self, backend):
        await _seed(backend)
        assert [e.title for e in backend.events_on_date("2025-12-22")] == ["年末展示会"]

    async def test_events_for_assignee(self, backend):
        await _seed(backend)
        assert [e.title for e in backend.events_for_assignee("野島")] == ["山田様 納車"]

    async def test_get_update_delete(self, backend):
        created = await backend.create_event(title="Old", start_date="2025-12-12")

        fetched = await backend.get_event(created.id)
        assert fetched.title == "Old"

        updated = await backend.update_event(created.id, title="New", end_date="2025/12/14")
        assert updated.title == "New"
        assert updated.end_date == "2025-12-14"
        assert updated.created_at == created.created_at

        assert await backend.delete_event(created.id) is True
        assert await backend.delete_event(created.id) is False
        with pytest.raises(LookupError):
            await backend.get_event(created.id)

    async def test_update_unknown_event(self, backend):
        with pytest.raises(LookupError, match="not found"):
            await backend.update_event("missing", title="x")

    async def test_start_after_end_rejected(self, backend):
        with pytest.raises(ValueError, match="after"):
            await backend.create_event(title="Bad", start_date="2025-12-14", end_date="2025-12-12")

    async def test_unknown_type_rejected(self, backend):
        with pytest.raises(ValueError, match="event type"):
            await backend.create_event(title="Bad", start_date="2025-12-12", type="party")

    async def test_unknown_field_rejected(self, backend):
        with pytest.raises(ValueError, match="Unknown event fields"):
            await backend.create_event(title="Bad", start_date="2025-12-12", color="red")

    async def test_clear(self, backend):
        await _seed(backend)
        backend.clear()
        assert await backend.list_events("2025-01-01", "2025-12-31") == []


class TestEventsFile:
    async def test_loads_yaml_file(self, tmp_path):
        path = tmp_path / "events.yaml"
        path.write_text(textwrap.dedent("""\
            events:
              - id: event-5
                title: 年末展示会
                start_date: 2025-12-21
                end_date: 2025-12-22
                is_all_day: true
                type: showroom
              - id: event-9
                title: 営業会議
                start_date: 2025-12-19
                start_time: 09:00
                end_time: "10:30"
                type: other
                recurrence: monthly
        """), encoding="utf-8")
        backend = MemoryBackend("sales", {"events_file": str(path)})

        fair = await backend.get_event("event-5")
        assert fair.start_date == "2025-12-21"
        assert fair.calendar == "sales"

        meeting = await backend.get_event("event-9")
        assert meeting.start_time == "09:00"
        assert meeting.end_time == "10:30"
        assert meeting.recurrence == "monthly"

    async def test_changes_written_back(self, tmp_path):
        path = tmp_path / "data" / "events.yaml"
        backend = MemoryBackend("sales", {"events_file": str(path)})
        created = await backend.create_event(
            title="鈴木様 車検", start_date="2025-12-14", start_time="09:00", end_time="17:00",
            type="inspection",
        )
        assert path.is_file()

        reloaded = MemoryBackend("sales", {"events_file": str(path)})
        event = await reloaded.get_event(created.id)
        assert event.title == "鈴木様 車検"
        assert event.start_time == "09:00"
        assert event.type == "inspection"

    async def test_bad_entry_fails_whole_load(self, tmp_path):
        path = tmp_path / "events.yaml"
        original = textwrap.dedent("""\
            events:
              - id: a
                title: 朝礼
                start_date: 2025-12-15
                type: other
              - id: bad
                title: 忘年会
                start_date: 2025-12-26
                type: party
              - id: c
                title: 山田様 納車
                start_date: 2025-12-16
                type: delivery
        """)
        path.write_text(original, encoding="utf-8")
        backend = MemoryBackend("sales", {"events_file": str(path)})

        with pytest.raises(ValueError, match="event #2"):
            await backend.list_events("2025-12-01", "2025-12-31")
        # still unloaded, so the second read fails the same way
        with pytest.raises(ValueError, match="party"):
            await backend.list_events("2025-12-01", "2025-12-31")
        with pytest.raises(ValueError):
            await backend.create_event(title="追加", start_date="2025-12-17")

        assert path.read_text(encoding="utf-8") == original

    async def test_failed_write_leaves_store_unchanged(self, tmp_path, monkeypatch):
        path = tmp_path / "events.yaml"
        backend = MemoryBackend("sales", {"events_file": str(path)})
        created = await backend.create_event(title="鈴木様 車検", start_date="2025-12-14", type="inspection")
        saved = path.read_text(encoding="utf-8")

        def fail_dump(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(memory.yaml, "safe_dump", fail_dump)

        with pytest.raises(OSError):
            await backend.create_event(title="追加", start_date="2025-12-15")
        with pytest.raises(OSError):
            await backend.update_event(created.id, title="変更")
        with pytest.raises(OSError):
            await backend.delete_event(created.id)

        events = await backend.list_events("2025-12-01", "2025-12-31")
        assert [e.title for e in events] == ["鈴木様 車検"]
        assert path.read_text(encoding="utf-8") == saved
        assert [p.name for p in tmp_path.iterdir()] == ["events.yaml"]

    async def test_quoted_false_is_not_all_day(self, tmp_path):
        path = tmp_path / "events.yaml"
        path.write_text(textwrap.dedent("""\
            events:
              - id: event-3
                title: 田中様 商談
                start_date: 2025-12-12
                start_time: "10:00"
                end_time: "11:00"
                is_all_day: "false"
                type: meeting
              - id: event-4
                title: 棚卸し
                start_date: 2025-12-13
                is_all_day: "True"
                type: other
        """), encoding="utf-8")
        backend = MemoryBackend("sales", {"events_file": str(path)})

        meeting = await backend.get_event("event-3")
        assert meeting.is_all_day is False
        assert meeting.start_time == "10:00"
        assert meeting.end_time == "11:00"
        assert (await backend.get_event("event-4")).is_all_day is True

    async def test_unrecognised_all_day_value_rejected(self, backend):
        with pytest.raises(ValueError, match="Invalid boolean"):
            await backend.create_event(title="x", start_date="2025-12-12", is_all_day="sometimes")
