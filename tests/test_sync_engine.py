import asyncio

from sourcelab.core.annotations import Category, Geometry, SyncStatus, ToolMode, is_temp_id
from sourcelab.core.editor import AnnotationEditor, new_local_editor
from sourcelab.core.events import EventType
from sourcelab.core.store import AnnotationStore
from sourcelab.core.sync import SyncEngine
from tests.fakes import GatedRemote, make_annotation


def _engine(store, remote, clock, document_id="doc-1"):
    return SyncEngine(store, remote, document_id=document_id, call_later=clock.call_later)


def _draw(editor, start=(10, 10), end=(110, 60)):
    editor.set_tool_mode(ToolMode.ANNOTATE)
    editor.pointer_down(*start)
    editor.pointer_move(*end)
    editor.pointer_up(*end)


def test_burst_of_edits_syncs_once_after_quiet_period(clock, remote):
    async def scenario():
        store = AnnotationStore()
        engine = _engine(store, remote, clock)
        store.add(make_annotation("a1"))
        clock.advance(1500)
        store.update("a1", {"x": 20})
        clock.advance(1900)
        store.add(make_annotation("a2"))
        clock.advance(1999)
        assert remote.bulk_calls == []
        clock.advance(1)
        await engine.wait_idle()
        assert len(remote.bulk_calls) == 1
        doc_id, payload = remote.bulk_calls[0]
        assert doc_id == "doc-1"
        assert [a["id"] for a in payload] == ["a1", "a2"]
        assert payload[0]["x"] == 20
        assert all(a["documentId"] == "doc-1" and "syncStatus" not in a for a in payload)
        # nothing further scheduled
        clock.advance(10_000)
        await engine.wait_idle()
        assert len(remote.bulk_calls) == 1

    asyncio.run(scenario())


def test_successful_bulk_sync_marks_snapshot_synced(clock, remote):
    async def scenario():
        store = AnnotationStore()
        engine = _engine(store, remote, clock)
        seen = []
        store.events.on(EventType.SYNC_COMPLETED, lambda e: seen.append(e.data["count"]))
        store.add(make_annotation("a1"))
        assert engine.has_unsynced_changes
        assert await engine.sync_now()
        assert store.get("a1").sync_status == SyncStatus.SYNCED
        assert not engine.has_unsynced_changes
        assert engine.last_synced_at is not None
        assert seen == [1]

    asyncio.run(scenario())


def test_committed_annotation_reaches_synced_through_bulk_channel(clock, remote):
    # create call fails, so only the debounced bulk sync can deliver it
    remote.fail.add("create")

    async def scenario():
        store = AnnotationStore()
        editor = AnnotationEditor(store=store, sync=_engine(store, remote, clock), document_id="doc-1")
        _draw(editor)
        rec = editor.commit_pending("Article I")
        assert store.get(rec.id).sync_status == SyncStatus.LOCAL
        assert store.get(rec.id).text == "Article I"
        assert store.get(rec.id).geometry == Geometry(x=10, y=10, width=100, height=50)
        assert store.get(rec.id).category == Category.GENERAL
        assert editor.tool_mode == ToolMode.SELECT
        await editor.sync.wait_idle()
        assert store.get(rec.id).sync_status == SyncStatus.LOCAL
        clock.advance(2000)
        await editor.sync.wait_idle()
        assert store.get(rec.id).sync_status == SyncStatus.SYNCED
        assert rec.id in remote.server

    asyncio.run(scenario())


def test_create_ack_replaces_temporary_id(clock, remote):
    async def scenario():
        store = AnnotationStore()
        editor = AnnotationEditor(store=store, sync=_engine(store, remote, clock), document_id="doc-1")
        _draw(editor)
        rec = editor.commit_pending("Seal", "important")
        assert is_temp_id(rec.id)
        editor.select(rec.id)
        await editor.sync.wait_idle()
        assert [r.id for r in store.list()] == ["srv-1"]
        assert store.get("srv-1").sync_status == SyncStatus.SYNCED
        assert editor.selected_id == "srv-1"
        sent = remote.created[0]
        assert sent["documentId"] == "doc-1"
        assert sent["category"] == "important"
        assert sent["color"] == "#ef4444"

    asyncio.run(scenario())


def test_edit_during_create_keeps_record_dirty(clock, remote):
    async def scenario():
        store = AnnotationStore()
        editor = AnnotationEditor(store=store, sync=_engine(store, remote, clock), document_id="doc-1")
        _draw(editor)
        rec = editor.commit_pending("draft")
        editor.edit_annotation(rec.id, text="final")
        await editor.sync.wait_idle()
        assert store.get("srv-1").sync_status == SyncStatus.LOCAL
        assert store.get("srv-1").text == "final"

    asyncio.run(scenario())


def test_delete_before_create_ack_removes_server_copy(clock, remote):
    async def scenario():
        store = AnnotationStore()
        engine = _engine(store, remote, clock)
        rec = store.add(make_annotation("tmp-1"))
        task = engine.annotation_created(rec)
        store.remove("tmp-1")
        await task
        await engine.wait_idle()
        assert remote.deleted == ["srv-1"]
        assert remote.server == {}

    asyncio.run(scenario())


def test_failed_bulk_sync_sets_error_without_rollback(clock, remote):
    remote.fail.add("bulk")

    async def scenario():
        store = AnnotationStore()
        engine = _engine(store, remote, clock)
        failures = []
        store.events.on(EventType.SYNC_FAILED, lambda e: failures.append(e.data["error"]))
        store.add(make_annotation("a1"))
        assert not await engine.sync_now()
        assert engine.has_error
        assert failures == ["bulk failed"]
        assert store.get("a1").sync_status == SyncStatus.LOCAL
        assert not engine.is_syncing
        # no automatic retry
        clock.advance(10_000)
        await engine.wait_idle()
        assert len(remote.bulk_calls) == 1
        remote.fail.clear()
        assert await engine.sync_now()
        assert not engine.has_error

    asyncio.run(scenario())


def test_delete_is_fire_and_forget(clock, remote):
    remote.fail.add("delete")

    async def scenario():
        store = AnnotationStore()
        store.load([make_annotation("a1")])
        editor = AnnotationEditor(store=store, sync=_engine(store, remote, clock), document_id="doc-1")
        editor.delete_annotation("a1")
        assert "a1" not in store
        await editor.sync.wait_idle()
        assert remote.deleted == ["a1"]
        assert len(store) == 0

    asyncio.run(scenario())


def test_manual_sync_cancels_pending_debounce(clock, remote):
    async def scenario():
        store = AnnotationStore()
        engine = _engine(store, remote, clock)
        store.add(make_annotation("a1"))
        assert engine.timer.pending
        await engine.sync_now()
        assert not engine.timer.pending
        clock.advance(5000)
        await engine.wait_idle()
        assert len(remote.bulk_calls) == 1

    asyncio.run(scenario())


def test_close_cancels_pending_sync(clock, remote):
    async def scenario():
        store = AnnotationStore()
        engine = _engine(store, remote, clock)
        store.add(make_annotation("a1"))
        engine.close()
        assert clock.pending == []
        store.add(make_annotation("a2"))
        clock.advance(5000)
        await engine.wait_idle()
        assert remote.bulk_calls == []

    asyncio.run(scenario())


def test_local_only_editor_never_talks_to_server(clock, remote):
    async def scenario():
        store = AnnotationStore()
        engine = _engine(store, remote, clock, document_id=None)
        editor = AnnotationEditor(store=store, sync=engine)
        _draw(editor)
        rec = editor.commit_pending("offline")
        editor.delete_annotation(rec.id)
        clock.advance(5000)
        await engine.wait_idle()
        assert not await engine.sync_now()
        assert remote.created == remote.deleted == remote.bulk_calls == []

    asyncio.run(scenario())

    editor = new_local_editor()
    assert editor.sync is None


def test_attach_document_pushes_local_annotations(clock, remote):
    async def scenario():
        editor = new_local_editor(author="Ada")
        _draw(editor)
        rec = editor.commit_pending("before publish")
        editor.attach_document("doc-9", remote=remote, call_later=clock.call_later)
        assert editor.store.get(rec.id).document_id == "doc-9"
        assert await editor.sync.sync_now()
        (doc_id, payload), = remote.bulk_calls
        assert doc_id == "doc-9"
        assert payload[0]["author"] == "Ada"
        assert editor.store.get(rec.id).sync_status == SyncStatus.SYNCED

    asyncio.run(scenario())


def test_editor_keeps_an_empty_store_it_was_given(clock, remote):
    async def scenario():
        store = AnnotationStore()
        editor = AnnotationEditor(store=store, sync=_engine(store, remote, clock), document_id="doc-1")
        assert editor.store is store
        _draw(editor)
        editor.commit_pending("first clause")
        assert len(store) == 1
        await editor.sync.wait_idle()
        assert [r.id for r in store.list()] == ["srv-1"]
        assert store.get("srv-1").sync_status == SyncStatus.SYNCED

    asyncio.run(scenario())


def test_overlapping_bulk_syncs_deliver_newest_snapshot_last(clock):
    remote = GatedRemote()

    async def scenario():
        store = AnnotationStore()
        store.load([make_annotation("a1")])
        engine = _engine(store, remote, clock)
        first = asyncio.ensure_future(engine.sync_now())
        assert await asyncio.to_thread(remote.entered.wait, 5)
        store.update("a1", {"x": 99})
        second = asyncio.ensure_future(engine.sync_now())
        await asyncio.sleep(0)
        remote.gate.set()
        assert await first
        assert await second
        assert [payload[0]["x"] for _, payload in remote.bulk_calls] == [10, 99]
        assert remote.server["a1"]["x"] == 99
        assert store.get("a1").sync_status == SyncStatus.SYNCED

    asyncio.run(scenario())


def test_remote_calls_never_overlap(clock):
    remote = GatedRemote()

    async def scenario():
        store = AnnotationStore()
        store.load([make_annotation("a1")])
        engine = _engine(store, remote, clock)
        bulk = asyncio.ensure_future(engine.sync_now())
        assert await asyncio.to_thread(remote.entered.wait, 5)
        engine.annotation_created(store.add(make_annotation("tmp-1")))
        engine.annotation_deleted("a1")
        await asyncio.sleep(0.05)
        remote.gate.set()
        assert await bulk
        await engine.wait_idle()
        assert remote.peak == 1
        assert len(remote.created) == 1
        assert remote.deleted == ["a1"]

    asyncio.run(scenario())
