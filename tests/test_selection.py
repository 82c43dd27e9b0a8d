from sourcelab.core.annotations import Geometry, SyncStatus, ToolMode
from sourcelab.core.editor import AnnotationEditor
from sourcelab.core.selection import (
    NOTHING_SELECTED, AnnotationDeleted, DragEnd, DragMove, DragStart, EmptyCanvasDown, ModeChanged,
    Rekeyed, Select, transition,
)
from tests.fakes import make_annotation

S = ToolMode.SELECT
BOX = Geometry(x=10, y=10, width=100, height=50)


def _drag(handle, to, start=(60, 35), scale=1.0):
    s = transition(NOTHING_SELECTED, DragStart("a1", start[0], start[1], BOX, handle), S, scale)
    s = transition(s, DragMove(*to), S, scale)
    return transition(s, DragEnd(*to), S, scale)


def test_select_only_in_select_mode():
    assert transition(NOTHING_SELECTED, Select("a1"), S, 1.0).selected_id == "a1"
    assert transition(NOTHING_SELECTED, Select("a1"), ToolMode.ANNOTATE, 1.0).selected_id is None


def test_move_patch_carries_position_only():
    s = _drag("move", (80, 45))
    assert s.selected_id == "a1"
    assert s.finished.patch() == {"x": 30, "y": 20}


def test_move_at_zoom_uses_image_space_delta():
    s = _drag("move", (100, 90), start=(60, 70), scale=2.0)
    assert s.finished.current == Geometry(x=30, y=20, width=100, height=50)


def test_resize_from_corner():
    s = _drag("se", (130, 75), start=(110, 60))
    assert s.finished.patch() == {"x": 10, "y": 10, "width": 120, "height": 65}


def test_resize_past_opposite_edge_normalizes():
    # drag the west edge 150px to the right, past the east edge at x=110
    s = _drag("w", (160, 35), start=(10, 35))
    assert s.finished.current == Geometry(x=110, y=10, width=50, height=50)


def test_drag_without_movement_finishes_nothing():
    s = _drag("move", (60, 35))
    assert s.finished is None
    assert s.selected_id == "a1"


def test_selection_cleared_by_empty_canvas_mode_change_and_delete():
    selected = transition(NOTHING_SELECTED, Select("a1"), S, 1.0)
    assert transition(selected, EmptyCanvasDown(), S, 1.0) == NOTHING_SELECTED
    assert transition(selected, ModeChanged(ToolMode.ANNOTATE), S, 1.0) == NOTHING_SELECTED
    assert transition(selected, AnnotationDeleted("a1"), S, 1.0) == NOTHING_SELECTED
    assert transition(selected, AnnotationDeleted("other"), S, 1.0).selected_id == "a1"


def test_rekey_follows_selection():
    selected = transition(NOTHING_SELECTED, Select("tmp-1"), S, 1.0)
    assert transition(selected, Rekeyed("tmp-1", "srv-1"), S, 1.0).selected_id == "srv-1"


# ---- through the editor ----

def test_editor_drag_marks_synced_record_dirty():
    ed = AnnotationEditor()
    ed.store.load([make_annotation("a1")])
    ed.pointer_down(60, 35, target_id="a1")
    ed.pointer_move(80, 45)
    assert ed.drag_preview == ("a1", Geometry(x=30, y=20, width=100, height=50))
    # store untouched until the drag ends
    assert ed.store.get("a1").x == 10
    ed.pointer_up(80, 45)
    rec = ed.store.get("a1")
    assert (rec.x, rec.y) == (30, 20)
    assert rec.sync_status == SyncStatus.DIRTY
    assert ed.selected_id == "a1"


def test_editor_click_without_move_does_not_edit():
    ed = AnnotationEditor()
    ed.store.load([make_annotation("a1")])
    ed.pointer_down(60, 35, target_id="a1")
    ed.pointer_up(60, 35)
    assert ed.store.get("a1").sync_status == SyncStatus.SYNCED
    assert ed.selected_id == "a1"


def test_editor_resize_handle():
    ed = AnnotationEditor()
    ed.store.load([make_annotation("a1")])
    ed.pointer_down(110, 35, target_id="a1", handle="e")
    ed.pointer_up(160, 35)
    assert ed.store.get("a1").width == 150


def test_editor_delete_selected_clears_selection():
    ed = AnnotationEditor()
    ed.store.load([make_annotation("a1"), make_annotation("a2")])
    ed.select("a1")
    assert ed.delete_selected().id == "a1"
    assert ed.selected_id is None
    assert [r.id for r in ed.annotations()] == ["a2"]
    # nothing selected: no-op
    assert ed.delete_selected() is None
    assert len(ed.store) == 1


def test_editor_hit_test_prefers_topmost():
    ed = AnnotationEditor()
    ed.store.load([make_annotation("under"), make_annotation("over", x=50, y=20)])
    assert ed.hit_test(60, 30) == "over"
    assert ed.hit_test(15, 15) == "under"
    assert ed.hit_test(500, 500) is None
    ed.zoom_in()
    # device (72, 36) is image (60, 30) at 1.2x
    assert ed.hit_test(72, 36) == "over"
