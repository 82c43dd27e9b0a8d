from __future__ import annotations
from typing import List, Optional
import base64
from PySide6.QtWidgets import QGraphicsView, QGraphicsScene, QGraphicsRectItem, QGraphicsTextItem, QGraphicsPixmapItem
from PySide6.QtGui import QPixmap, QImage, QPen, QColor, QBrush, QMouseEvent, QPainter
from PySide6.QtCore import Qt, QRectF, Signal, QPointF

from sourcelab.core.annotations import Annotation, Geometry, ToolMode
from sourcelab.core.draw_tool import DrawPhase
from sourcelab.core.editor import AnnotationEditor
from sourcelab.core.events import EventType
from sourcelab.core.transform import to_device_space

HANDLE_RADIUS = 6.0  # device pixels around an edge/corner of the selected rectangle

_REDRAW_EVENTS = (
    EventType.ANNOTATION_ADDED, EventType.ANNOTATION_UPDATED, EventType.ANNOTATION_REMOVED,
    EventType.ANNOTATION_REKEYED, EventType.ANNOTATIONS_LOADED, EventType.SYNC_STATUS_CHANGED,
    EventType.SELECTION_CHANGED, EventType.DRAW_STATE_CHANGED, EventType.ZOOM_CHANGED,
    EventType.TOOL_MODE_CHANGED,
)


class AnnotationGraphicsRect(QGraphicsRectItem):
    def __init__(self, rect: QRectF, color: QColor, selected: bool = False, preview: bool = False):
        super().__init__(rect)
        fill = QColor(color)
        fill.setAlpha(50)
        self.setBrush(QBrush(fill, Qt.BrushStyle.SolidPattern))
        pen = QPen(color)
        pen.setWidthF(3.0 if selected else 2.0)
        if preview:
            pen.setStyle(Qt.PenStyle.DashLine)
        self.setPen(pen)


class CanvasView(QGraphicsView):
    """Shows the document image and forwards pointer input to the editor.

    Scene coordinates are device coordinates: the image and every rectangle are
    drawn at ``editor.scale``; the editor converts back to image space.
    """
    pendingCommit = Signal(object)   # Geometry awaiting text/category/color

    def __init__(self, editor: AnnotationEditor, parent=None):
        super().__init__(parent)
        self.setScene(QGraphicsScene(self))
        self.setRenderHint(QPainter.RenderHint.Antialiasing, True)
        self.setMouseTracking(True)
        self._pixmap_item: Optional[QGraphicsPixmapItem] = None
        self._items: List[QGraphicsRectItem] = []
        self.editor: Optional[AnnotationEditor] = None
        self.set_editor(editor)

    def set_editor(self, editor: AnnotationEditor):
        if self.editor is not None:
            for et in _REDRAW_EVENTS:
                self.editor.events.off(et, self._on_editor_event)
        self.editor = editor
        for et in _REDRAW_EVENTS:
            editor.events.on(et, self._on_editor_event)
        self.refresh()

    def load_image(self, image_url: str) -> bool:
        """Accepts a data: URL (as returned by the upload endpoint) or a local file path."""
        img = QImage()
        if image_url.startswith('data:'):
            _, _, encoded = image_url.partition(',')
            ok = img.loadFromData(base64.b64decode(encoded))
        else:
            ok = img.load(image_url)
        scene = self.scene()
        if self._pixmap_item is not None:
            scene.removeItem(self._pixmap_item)
            self._pixmap_item = None
        if not ok:
            scene.addItem(QGraphicsTextItem("Could not load image"))
            return False
        self._pixmap_item = scene.addPixmap(QPixmap.fromImage(img))
        self._pixmap_item.setZValue(-1)
        self.refresh()
        return True

    def show_message(self, text: str):
        scene = self.scene(); scene.clear()
        self._pixmap_item = None
        self._items.clear()
        scene.addItem(QGraphicsTextItem(text))

    # ---- rendering ----
    def _on_editor_event(self, _event):
        self.refresh()

    def _device_rect(self, g: Geometry) -> QRectF:
        x, y = to_device_space((g.x, g.y), self.editor.scale)
        w, h = to_device_space((g.width, g.height), self.editor.scale)
        return QRectF(x, y, w, h)

    def refresh(self):
        scene = self.scene()
        for item in self._items:
            scene.removeItem(item)
        self._items.clear()
        if self._pixmap_item is not None:
            self._pixmap_item.setScale(self.editor.scale)
        drag = self.editor.drag_preview
        for rec in self.editor.annotations():
            geometry = drag[1] if drag and drag[0] == rec.id else rec.geometry
            self._add_rect(geometry, QColor(rec.color), selected=rec.id == self.editor.selected_id)
        preview = self.editor.draw_state.preview
        if preview is not None:
            self._add_rect(preview, QColor(255, 215, 0), preview=True)
        bounds = scene.itemsBoundingRect()
        self.setSceneRect(bounds if not bounds.isEmpty() else QRectF(0, 0, 800, 600))

    def _add_rect(self, g: Geometry, color: QColor, selected: bool = False, preview: bool = False):
        item = AnnotationGraphicsRect(self._device_rect(g), color, selected=selected, preview=preview)
        self.scene().addItem(item)
        self._items.append(item)

    # ---- pointer input ----
    def _handle_at(self, rec: Annotation, pos: QPointF) -> Optional[str]:
        r = self._device_rect(rec.geometry)
        near = lambda a, b: abs(a - b) <= HANDLE_RADIUS
        inside_x = r.left() - HANDLE_RADIUS <= pos.x() <= r.right() + HANDLE_RADIUS
        inside_y = r.top() - HANDLE_RADIUS <= pos.y() <= r.bottom() + HANDLE_RADIUS
        if not (inside_x and inside_y):
            return None
        vertical = "n" if near(pos.y(), r.top()) else "s" if near(pos.y(), r.bottom()) else ""
        horizontal = "w" if near(pos.x(), r.left()) else "e" if near(pos.x(), r.right()) else ""
        return (vertical + horizontal) or None

    def mousePressEvent(self, event: QMouseEvent):  # noqa: N802
        if event.button() != Qt.MouseButton.LeftButton:
            return super().mousePressEvent(event)
        pos = self.mapToScene(event.position().toPoint())
        target, handle = None, None
        selected = self.editor.selected
        if self.editor.tool_mode == ToolMode.SELECT and selected is not None:
            handle = self._handle_at(selected, pos)
            if handle:
                target = selected.id
        if target is None:
            target = self.editor.hit_test(pos.x(), pos.y())
        self.editor.pointer_down(pos.x(), pos.y(), target_id=target, handle=handle)

    def mouseMoveEvent(self, event: QMouseEvent):  # noqa: N802
        pos = self.mapToScene(event.position().toPoint())
        self.editor.pointer_move(pos.x(), pos.y())
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event: QMouseEvent):  # noqa: N802
        if event.button() != Qt.MouseButton.LeftButton:
            return super().mouseReleaseEvent(event)
        pos = self.mapToScene(event.position().toPoint())
        self.editor.pointer_up(pos.x(), pos.y())
        if self.editor.draw_state.phase == DrawPhase.PENDING_COMMIT:
            self.pendingCommit.emit(self.editor.pending_geometry)
