from __future__ import annotations

from datetime import datetime

import pytest

from adventeditor.api import TransportError
from adventeditor.export import parse_markdown_document
from adventeditor.models import TextRecord
from adventeditor.session import EditorSession, SessionBusyError, SessionObserver, SessionState

from conftest import FakeStore


def _seeded_store():
    return FakeStore([
        TextRecord(1, "First", "one", updated_at="2024-12-01T00:00:00+00:00", id=1),
        TextRecord(2, "Second", "", updated_at="2024-12-02T00:00:00+00:00", id=2),
    ])


class RecordingObserver(SessionObserver):
    def __init__(self):
        self.states = []
        self.errors = []
        self.resets = []

    def on_state_changed(self, state):
        self.states.append(state)

    def on_error(self, operation, error):
        self.errors.append((operation, error))

    def on_draft_reset(self, slot, title, content):
        self.resets.append((slot, title, content))


def test_new_session_starts_on_slot_one_with_default_title():
    session = EditorSession(FakeStore())
    assert session.selected_slot == 1
    assert session.draft_title == "Text 1"
    assert session.draft_content == ""
    assert session.state is SessionState.IDLE
    assert session.records == {}


@pytest.mark.parametrize("slot", range(1, 25))
def test_select_slot_resets_drafts_without_touching_records(slot):
    store = _seeded_store()
    session = EditorSession(store)
    session.load_all()
    before = session.records
    other = slot % 24 + 1

    session.select_slot(slot)
    session.select_slot(other)

    assert session.records == before
    rec = before.get(other)
    if rec is None:
        assert (session.draft_title, session.draft_content) == (f"Text {other}", "")
    else:
        assert (session.draft_title, session.draft_content) == (rec.title, rec.content)
    assert store.ops() == ["list_all"]


def test_select_slot_discards_unsaved_edits():
    session = EditorSession(_seeded_store())
    session.load_all()
    session.draft_content = "changed"
    assert session.dirty

    session.select_slot(3)
    session.select_slot(1)

    assert session.draft_content == "one"
    assert not session.dirty


@pytest.mark.parametrize("bad", [0, 25, -1])
def test_select_slot_rejects_out_of_range(bad):
    session = EditorSession(FakeStore())
    with pytest.raises(ValueError):
        session.select_slot(bad)
    assert session.selected_slot == 1


def test_load_all_keys_records_by_slot_not_position():
    store = FakeStore([TextRecord(3, "Three", "c"), TextRecord(1, "One", "a")])
    session = EditorSession(store)

    records = session.load_all()

    assert sorted(records) == [1, 3]
    assert records[3].title == "Three"
    assert records[1].title == "One"
    assert session.draft_title == "One"


def test_load_all_failure_keeps_previous_records():
    store = _seeded_store()
    session = EditorSession(store)
    observer = RecordingObserver()
    session.add_observer(observer)
    session.load_all()
    store.failures["list_all"] = TransportError("HTTP 500: boom", status=500)

    with pytest.raises(TransportError):
        session.load_all()

    assert sorted(session.records) == [1, 2]
    assert session.state is SessionState.IDLE
    assert observer.errors[0][0] == "load"


def test_save_blank_drafts_is_noop():
    store = FakeStore()
    session = EditorSession(store)
    session.draft_title = "   "
    session.draft_content = "\n\t"

    assert session.save() is None
    assert store.calls == []
    assert session.records == {}
    assert session.last_saved_at is None


def test_save_inserts_into_empty_slot_then_reloads(clock):
    store = FakeStore()
    session = EditorSession(store, clock=clock)
    session.load_all()
    session.select_slot(5)
    session.draft_title = "Day 5"
    session.draft_content = "Hello **world**"

    saved = session.save()

    assert store.ops() == ["list_all", "insert", "list_all"]
    inserted = store.calls[1][1]
    assert inserted.to_row()["text_number"] == 5
    assert inserted.title == "Day 5"
    assert inserted.content == "Hello **world**"
    assert datetime.fromisoformat(inserted.updated_at).tzinfo is not None
    assert saved.slot_number == 5
    assert session.records[5].content == "Hello **world**"
    assert session.records[5].id is not None
    assert session.last_saved_at is not None
    assert not session.dirty


def test_save_falls_back_to_update_when_insert_is_rejected():
    store = _seeded_store()
    session = EditorSession(store)
    session.load_all()
    session.draft_title = "First (edited)"
    session.draft_content = "new body"

    session.save()

    assert store.ops() == ["list_all", "insert", "update", "list_all"]
    assert store.calls[2][1] == 1
    assert session.records[1].content == "new body"
    assert session.records[1].title == "First (edited)"
    assert store.rows[1].content == "new body"


def test_save_failure_keeps_drafts_and_records():
    store = _seeded_store()
    session = EditorSession(store)
    observer = RecordingObserver()
    session.add_observer(observer)
    session.load_all()
    store.failures["update"] = TransportError("HTTP 500: down", status=500)
    session.draft_content = "unsaved work"

    with pytest.raises(TransportError):
        session.save()

    assert session.draft_content == "unsaved work"
    assert session.records[1].content == "one"
    assert session.last_saved_at is None
    assert session.state is SessionState.IDLE
    assert observer.errors[-1][0] == "save"


def test_save_reports_insert_error_when_update_matched_nothing():
    store = FakeStore()
    session = EditorSession(store)
    rejected = TransportError("HTTP 400: bad column", status=400)
    store.failures["insert"] = rejected
    session.select_slot(4)
    session.draft_content = "text"

    with pytest.raises(TransportError) as excinfo:
        session.save()

    assert excinfo.value is rejected
    assert store.ops() == ["insert", "update", "list_all"]
    assert 4 not in session.records
    assert session.draft_content == "text"


def test_save_keeps_local_copy_when_reload_fails():
    store = FakeStore()
    session = EditorSession(store)
    session.select_slot(2)
    session.draft_content = "body"
    store.failures["list_all"] = TransportError("timeout")

    saved = session.save()

    assert saved.slot_number == 2
    assert session.records[2].content == "body"
    assert store.rows[2].content == "body"


class SilentUpdateStore(FakeStore):
    """Update that matches no row: succeeds without writing anything."""

    def update(self, slot, fields):
        self.calls.append(("update", slot, dict(fields)))
        self._maybe_fail("update")
        return None


def test_save_fails_when_duplicate_insert_and_update_changes_nothing():
    store = SilentUpdateStore([TextRecord(id=1, slot_number=1, title="Old", content="old")])
    session = EditorSession(store)
    session.load_all()
    session.draft_content = "new edits"

    with pytest.raises(TransportError) as excinfo:
        session.save()

    assert excinfo.value.status == 409
    assert store.ops() == ["list_all", "insert", "update", "list_all"]
    assert session.records[1].content == "old"
    assert session.draft_content == "new edits"
    assert session.last_saved_at is None


def test_save_fails_when_update_changes_nothing_and_reload_fails():
    store = FakeStore()
    session = EditorSession(store)
    rejected = TransportError("HTTP 400: bad column", status=400)
    store.failures["insert"] = rejected
    store.failures["list_all"] = TransportError("timeout")
    session.select_slot(4)
    session.draft_content = "text"

    with pytest.raises(TransportError) as excinfo:
        session.save()

    assert excinfo.value is rejected
    assert 4 not in session.records
    assert session.draft_content == "text"
    assert session.last_saved_at is None


def test_upsert_mode_uses_single_write():
    store = _seeded_store()
    session = EditorSession(store, save_mode="upsert")
    session.load_all()
    session.draft_content = "replaced"

    session.save()

    assert store.ops() == ["list_all", "upsert", "list_all"]
    assert session.records[1].content == "replaced"


def test_unknown_save_mode_rejected():
    with pytest.raises(ValueError):
        EditorSession(FakeStore(), save_mode="merge")


def test_delete_requires_confirmation():
    store = _seeded_store()
    session = EditorSession(store)
    session.load_all()

    assert session.delete(None) is False
    assert session.delete(lambda slot: False) is False
    assert store.ops() == ["list_all"]
    assert 1 in session.records


def test_delete_removes_record_and_blanks_drafts(clock):
    store = _seeded_store()
    session = EditorSession(store, clock=clock)
    session.load_all()
    asked = []

    assert session.delete(lambda slot: asked.append(slot) or True) is True

    assert asked == [1]
    assert store.calls[-1] == ("delete", 1)
    assert 1 not in session.records
    assert (session.draft_title, session.draft_content) == ("Text 1", "")
    assert session.last_saved_at is not None


def test_delete_of_missing_record_succeeds():
    store = FakeStore()
    session = EditorSession(store)
    session.select_slot(9)

    assert session.delete(lambda slot: True) is True
    assert 9 not in session.records


def test_delete_failure_keeps_record():
    store = _seeded_store()
    session = EditorSession(store)
    session.load_all()
    store.failures["delete"] = TransportError("HTTP 503: unavailable", status=503)

    with pytest.raises(TransportError):
        session.delete(lambda slot: True)

    assert 1 in session.records
    assert session.draft_title == "First"


def test_overlapping_operations_are_rejected():
    store = FakeStore()
    session = EditorSession(store)
    observer = RecordingObserver()
    session.add_observer(observer)
    inner = {}

    original_insert = store.insert

    def insert_and_interfere(record):
        assert session.busy
        for name, call in (("load", session.load_all), ("save", session.save),
                           ("delete", lambda: session.delete(lambda n: True))):
            try:
                call()
            except SessionBusyError as e:
                inner[name] = e
        return original_insert(record)

    store.insert = insert_and_interfere
    session.draft_content = "x"
    session.save()

    assert set(inner) == {"load", "save", "delete"}
    assert observer.states == [SessionState.SAVING, SessionState.IDLE]
    assert not session.busy


def test_failing_observer_does_not_break_session():
    class Broken(SessionObserver):
        def on_draft_reset(self, slot, title, content):
            raise RuntimeError("widget gone")

    session = EditorSession(_seeded_store())
    session.add_observer(Broken())
    session.load_all()
    session.select_slot(2)
    assert session.draft_title == "Second"


def test_export_current_round_trips_active_drafts():
    session = EditorSession(FakeStore())
    session.select_slot(6)
    session.draft_title = "Nikolaus: Stiefel"
    session.draft_content = "# Heading\n\n- list\n\ntrailing\n"

    exported = session.export_current()

    assert exported.filename == "nikolaus__stiefel.md"
    assert parse_markdown_document(exported.content) == (
        "Nikolaus: Stiefel",
        "# Heading\n\n- list\n\ntrailing\n",
    )


def test_export_all_yields_one_file_per_record_in_slot_order():
    store = FakeStore([TextRecord(10, "Ten", "x"), TextRecord(2, "Two Words", "y")])
    session = EditorSession(store)
    session.load_all()

    files = list(session.export_all())

    assert [f.filename for f in files] == ["text_2_two_words.md", "text_10_ten.md"]
    assert files[1].content == "# Ten\n\nx"
    assert store.ops() == ["list_all"]


def test_has_content_reflects_loaded_records():
    session = EditorSession(_seeded_store())
    session.load_all()
    assert session.has_content(1)
    assert not session.has_content(2)
    assert not session.has_content(3)
