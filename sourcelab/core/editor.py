"""
Annotation editor.

Composes the transform, draw-tool and selection state machines with the
annotation store and (optionally) a sync engine. UI-agnostic: the host shell
feeds pointer/key input in and redraws on the events emitted through
``editor.events``.
"""

from __future__ import annotations
from typing import Any, Optional, Tuple
import asyncio
import logging

from . import draw_tool, selection, transform
from .annotations import Annotation, Document, Geometry, ToolMode, ANONYMOUS_AUTHOR
from .errors import ValidationFailure
from .events import AnnotationEvent, EventType
from .shortcuts import ShortcutHandlers
from .store import AnnotationStore
from .sync import DEFAULT_DEBOUNCE_MS, RemoteAnnotations, SyncEngine
from .timer import CallLater

logger = logging.getLogger(__name__)


class AnnotationEditor:
    """
    Owns the editing state of one canvas.

    - tool mode (Select / Annotate), shared by both state machines
    - zoom scale
    - draw-tool state and selection state (pure transitions, see draw_tool/selection)
    - the annotation store
    - the sync engine, when the canvas belongs to a persisted document
    """

    def __init__(
        self,
        store: Optional[AnnotationStore] = None,
        sync: Optional[SyncEngine] = None,
        document_id: Optional[str] = None,
        author: str = ANONYMOUS_AUTHOR,
    ):
        self.store = store if store is not None else AnnotationStore()
        self.events = self.store.events
        self.sync = sync
        self.document_id = document_id
        self.author = author
        self.tool_mode = ToolMode.SELECT
        self.scale = transform.DEFAULT_SCALE
        self.draw_state = draw_tool.IDLE
        self.selection = selection.NOTHING_SELECTED
        self.events.on(EventType.ANNOTATION_REKEYED, self._on_rekeyed)

    # ---- derived state ----
    @property
    def selected_id(self) -> Optional[str]:
        return self.selection.selected_id

    @property
    def selected(self) -> Optional[Annotation]:
        return self.store.get(self.selection.selected_id) if self.selection.selected_id else None

    @property
    def pending_geometry(self) -> Optional[Geometry]:
        return self.draw_state.pending.geometry if self.draw_state.pending else None

    def annotations(self):
        return self.store.list()

    def hit_test(self, x: float, y: float) -> Optional[str]:
        """Topmost annotation under a device-space point (last drawn wins)."""
        ix, iy = transform.to_image_space((x, y), self.scale)
        for rec in reversed(self.store.list()):
            if rec.geometry.contains(ix, iy):
                return rec.id
        return None

    # ---- state machine plumbing ----
    def _draw(self, event: draw_tool.DrawEvent) -> draw_tool.DrawState:
        before = self.draw_state
        self.draw_state = draw_tool.transition(before, event, self.tool_mode, self.scale)
        if self.draw_state != before:
            self.events.emit(EventType.DRAW_STATE_CHANGED, {"phase": self.draw_state.phase})
        return self.draw_state

    def _select(self, event: selection.SelectionEvent) -> selection.SelectionState:
        before = self.selection.selected_id
        self.selection = selection.transition(self.selection, event, self.tool_mode, self.scale)
        if self.selection.selected_id != before:
            self.events.emit(EventType.SELECTION_CHANGED, {"id": self.selection.selected_id})
        return self.selection

    def _on_rekeyed(self, event: AnnotationEvent):
        self._select(selection.Rekeyed(event.data["old_id"], event.data["new_id"]))

    # ---- pointer input (device coordinates) ----
    def pointer_down(self, x: float, y: float, target_id: Optional[str] = None, handle: Optional[str] = None):
        if target_id is None:
            if self.tool_mode == ToolMode.SELECT:
                self._select(selection.EmptyCanvasDown())
            self._draw(draw_tool.PointerDown(x, y))
            return
        if self.tool_mode == ToolMode.SELECT:
            rec = self.store.get(target_id)
            if rec is not None:
                self._select(selection.DragStart(target_id, x, y, rec.geometry, handle or "move"))
        else:
            self._draw(draw_tool.PointerDown(x, y, on_annotation=True))

    def pointer_move(self, x: float, y: float):
        if self.draw_state.phase == draw_tool.DrawPhase.DRAWING:
            self._draw(draw_tool.PointerMove(x, y))
        elif self.selection.drag is not None:
            self._select(selection.DragMove(x, y))

    def pointer_up(self, x: Optional[float] = None, y: Optional[float] = None):
        if self.draw_state.phase == draw_tool.DrawPhase.DRAWING:
            self._draw(draw_tool.PointerUp(x, y))
        elif self.selection.drag is not None:
            finished = self._select(selection.DragEnd(x, y)).finished
            if finished is not None:
                self.store.update(finished.annotation_id, finished.patch())

    @property
    def drag_preview(self) -> Optional[Tuple[str, Geometry]]:
        drag = self.selection.drag
        return (drag.annotation_id, drag.current) if drag else None

    # ---- pending commit ----
    def commit_pending(self, text: str, category: Any = None, color: Optional[str] = None) -> Annotation:
        state = self._draw(draw_tool.Commit(text, category, color))
        draft = state.committed
        if draft is None:
            raise ValidationFailure("Nothing to commit; draw a rectangle first")
        g = draft.geometry
        record = self.store.add(Annotation(
            document_id=self.document_id,
            x=g.x, y=g.y, width=g.width, height=g.height,
            text=draft.text,
            category=draft.category,
            color=draft.color,
            author=self.author,
        ))
        self._change_mode(ToolMode.SELECT)
        if self.sync is not None:
            self.sync.annotation_created(record)
        return record

    def cancel_pending(self):
        self._draw(draw_tool.Cancel())

    # ---- tool mode / zoom ----
    def set_tool_mode(self, mode: ToolMode):
        """Explicit mode switch: abandons any in-progress or pending rectangle and clears the selection."""
        self._draw(draw_tool.Cancel())
        self._change_mode(mode)

    def _change_mode(self, mode: ToolMode):
        changed = mode != self.tool_mode
        self.tool_mode = mode
        self._select(selection.ModeChanged(mode))
        if changed:
            self.events.emit(EventType.TOOL_MODE_CHANGED, {"mode": mode})

    def _set_scale(self, scale: float):
        scale = transform.clamp_scale(scale)
        if scale != self.scale:
            self.scale = scale
            self.events.emit(EventType.ZOOM_CHANGED, {"scale": scale})

    def zoom_in(self):
        self._set_scale(transform.zoom_in(self.scale))

    def zoom_out(self):
        self._set_scale(transform.zoom_out(self.scale))

    def reset_zoom(self):
        self._set_scale(transform.reset_zoom())

    # ---- selection / edits ----
    def select(self, annotation_id: str):
        if annotation_id in self.store:
            self._select(selection.Select(annotation_id))

    def clear_selection(self):
        self._select(selection.EmptyCanvasDown())

    def edit_annotation(self, annotation_id: str, **patch: Any) -> Optional[Annotation]:
        if "text" in patch:
            text = str(patch["text"]).strip()
            if not text:
                raise ValidationFailure("Annotation text must not be empty")
            patch["text"] = text
        return self.store.update(annotation_id, patch)

    def delete_annotation(self, annotation_id: str) -> Optional[Annotation]:
        removed = self.store.remove(annotation_id)
        if removed is None:
            return None
        self._select(selection.AnnotationDeleted(annotation_id))
        if self.sync is not None:
            self.sync.annotation_deleted(annotation_id)
        return removed

    def delete_selected(self) -> Optional[Annotation]:
        if self.selection.selected_id is None:
            return None
        return self.delete_annotation(self.selection.selected_id)

    def shortcut_handlers(self) -> ShortcutHandlers:
        return ShortcutHandlers(
            on_select_tool=lambda: self.set_tool_mode(ToolMode.SELECT),
            on_annotate_tool=lambda: self.set_tool_mode(ToolMode.ANNOTATE),
            on_zoom_in=self.zoom_in,
            on_zoom_out=self.zoom_out,
            on_delete=self.delete_selected,
        )

    # ---- document lifecycle ----
    def attach_document(self, document_id: str, remote: Optional[RemoteAnnotations] = None, **sync_kwargs: Any):
        """Switch a local-only canvas to a persisted document."""
        self.document_id = document_id
        self.store.assign_document(document_id)
        if self.sync is None:
            if remote is None:
                raise ValueError("A remote is required to attach a document to a local-only editor")
            self.sync = SyncEngine(self.store, remote, **sync_kwargs)
        self.sync.set_document(document_id)
        self.events.emit(EventType.DOCUMENT_CHANGED, {"document_id": document_id})

    def close(self):
        if self.sync is not None:
            self.sync.close()


def new_local_editor(author: str = ANONYMOUS_AUTHOR) -> AnnotationEditor:
    """Unsaved canvas: annotations live only in memory until the document is published."""
    return AnnotationEditor(author=author)


async def open_document(
    api,
    share_token: str,
    debounce_ms: float = DEFAULT_DEBOUNCE_MS,
    call_later: Optional[CallLater] = None,
    author: str = ANONYMOUS_AUTHOR,
) -> Tuple[Document, AnnotationEditor]:
    """Load a shared document. ``NotFound`` propagates: the view is terminal ("document not found")."""
    doc = await asyncio.to_thread(api.get_document, share_token)
    store = AnnotationStore()
    store.load(doc.annotations)
    sync = SyncEngine(store, api, document_id=doc.id, debounce_ms=debounce_ms, call_later=call_later)
    logger.info("Opened document %s (%s) with %d annotation(s)", doc.id, doc.title, len(doc.annotations))
    return doc, AnnotationEditor(store=store, sync=sync, document_id=doc.id, author=author)


async def publish_document(
    api,
    editor: AnnotationEditor,
    title: str,
    image_path: str,
    description: Optional[str] = None,
    **sync_kwargs: Any,
) -> Document:
    """Upload the image, create the document and push the local annotations to it."""
    image_url = await asyncio.to_thread(api.upload_image, image_path)
    doc = await asyncio.to_thread(api.create_document, title, image_url, description)
    editor.attach_document(doc.id, remote=api, **sync_kwargs)
    await editor.sync.sync_now()
    logger.info("Published document %s; share token %s", doc.id, doc.share_token)
    return doc
