from __future__ import annotations
import sys, asyncio, logging
from pathlib import Path
from typing import Optional
from PySide6.QtWidgets import (
    QApplication, QMainWindow, QFileDialog, QWidget, QVBoxLayout,
    QMessageBox, QToolBar, QLabel, QStatusBar, QInputDialog, QLineEdit, QTextEdit, QPlainTextEdit
)
from PySide6.QtGui import QAction, QGuiApplication
from PySide6.QtCore import Qt, QObject, QEvent, QSize
from PySide6 import QtAsyncio

from sourcelab.core.annotations import Document, Geometry, ToolMode
from sourcelab.core.api_client import ApiClient
from sourcelab.core.config import ClientSettings
from sourcelab.core.editor import AnnotationEditor, new_local_editor, open_document, publish_document
from sourcelab.core.errors import NotFound, SourceLabError, ValidationFailure
from sourcelab.core.events import EventType
from sourcelab.core.shortcuts import KeyEvent, ShortcutDispatcher
from sourcelab.ui.canvas_view import CanvasView
from sourcelab.ui.note_dialog import NoteDialog

logger = logging.getLogger(__name__)

_KEY_NAMES = {
    Qt.Key.Key_V: "v",
    Qt.Key.Key_A: "a",
    Qt.Key.Key_Escape: "escape",
    Qt.Key.Key_Equal: "=",
    Qt.Key.Key_Plus: "+",
    Qt.Key.Key_Minus: "-",
    Qt.Key.Key_Delete: "delete",
    Qt.Key.Key_Backspace: "backspace",
}

_STATUS_EVENTS = (
    EventType.ANNOTATION_ADDED, EventType.ANNOTATION_UPDATED, EventType.ANNOTATION_REMOVED,
    EventType.SYNC_STATUS_CHANGED, EventType.SYNC_STARTED, EventType.SYNC_COMPLETED,
    EventType.SYNC_FAILED, EventType.TOOL_MODE_CHANGED, EventType.ZOOM_CHANGED, EventType.DOCUMENT_CHANGED,
)


def _text_input_focused() -> bool:
    return isinstance(QApplication.focusWidget(), (QLineEdit, QTextEdit, QPlainTextEdit))


class ShortcutFilter(QObject):
    """Application-wide event filter feeding key presses to a ShortcutDispatcher."""

    def __init__(self, dispatcher: ShortcutDispatcher, parent=None):
        super().__init__(parent)
        self.dispatcher = dispatcher

    def eventFilter(self, obj, event):  # noqa: N802
        if event.type() == QEvent.Type.KeyPress and not event.isAutoRepeat():
            name = _KEY_NAMES.get(Qt.Key(event.key()))
            if name is not None:
                mods = event.modifiers()
                key = KeyEvent(
                    key=name,
                    ctrl=bool(mods & Qt.KeyboardModifier.ControlModifier),
                    meta=bool(mods & Qt.KeyboardModifier.MetaModifier),
                )
                if self.dispatcher.dispatch(key):
                    return True
        return super().eventFilter(obj, event)


class MainWindow(QMainWindow):
    def __init__(self, settings: ClientSettings):
        super().__init__()
        self.settings = settings
        self.setWindowTitle("Primary Source Lab")
        self.resize(1200, 900)
        self.api = ApiClient(base_url=settings.api_url, timeout=settings.request_timeout)
        self.document: Optional[Document] = None
        self._image_path: Optional[str] = None

        self.status_label = QLabel("Local only")
        status = QStatusBar()
        status.addPermanentWidget(self.status_label)
        self.setStatusBar(status)

        self.editor: AnnotationEditor = new_local_editor(author=settings.author)
        self.canvas = CanvasView(self.editor)
        self.canvas.pendingCommit.connect(self._on_pending_commit)

        container = QWidget()
        layout = QVBoxLayout(container)
        layout.addWidget(self.canvas)
        self.setCentralWidget(container)
        self._create_toolbar()

        self.dispatcher = ShortcutDispatcher(_text_input_focused, self.editor.shortcut_handlers())
        self._shortcut_filter = ShortcutFilter(self.dispatcher, self)
        QApplication.instance().installEventFilter(self._shortcut_filter)
        self.dispatcher.register()
        self._watch_editor()

    def _create_toolbar(self):
        tb = QToolBar("Main")
        tb.setIconSize(QSize(24, 24))
        tb.setMovable(False)
        self.addToolBar(tb)

        def add_action(text: str, slot, tooltip: str | None = None):
            act = QAction(text, self)
            if tooltip:
                act.setToolTip(tooltip)
            act.triggered.connect(slot)
            tb.addAction(act)
            return act

        add_action("New", self.new_from_image, "Start a local canvas from an image file")
        add_action("Open", self.open_shared, "Open a document by share token")
        tb.addSeparator()
        add_action("Select", lambda: self.editor.set_tool_mode(ToolMode.SELECT), "Select / move (V, Esc)")
        add_action("Annotate", lambda: self.editor.set_tool_mode(ToolMode.ANNOTATE), "Draw a region (A)")
        add_action("Zoom In", lambda: self.editor.zoom_in(), "Ctrl/Cmd + =")
        add_action("Zoom Out", lambda: self.editor.zoom_out(), "Ctrl/Cmd + -")
        add_action("Reset Zoom", lambda: self.editor.reset_zoom())
        add_action("Delete", lambda: self.editor.delete_selected(), "Delete selected annotation (Del)")
        tb.addSeparator()
        add_action("Save", self.save_now, "Sync annotations now")
        add_action("Share", self.share, "Publish (if needed) and copy the share link")

    # ---- editor wiring ----
    def _watch_editor(self):
        for et in _STATUS_EVENTS:
            self.editor.events.on(et, lambda _e: self._update_status())
        self._update_status()

    def _replace_editor(self, editor: AnnotationEditor):
        self.editor.close()
        self.editor = editor
        self.canvas.set_editor(editor)
        self.dispatcher.handlers = editor.shortcut_handlers()
        self._watch_editor()

    def _update_status(self):
        ed = self.editor
        parts = [f"{ed.tool_mode.value.capitalize()}", f"{ed.scale:.0%}"]
        if ed.sync is None or ed.document_id is None:
            parts.append("Local only")
        elif ed.sync.is_syncing:
            parts.append("Saving...")
        elif ed.sync.has_error:
            parts.append("Save failed")
        elif ed.sync.has_unsynced_changes:
            parts.append("Unsaved changes")
        elif ed.sync.last_synced_at is not None:
            parts.append(f"Saved {ed.sync.last_synced_at.astimezone():%H:%M:%S}")
        else:
            parts.append("Saved")
        self.status_label.setText(" | ".join(parts))

    def _on_pending_commit(self, geometry: Geometry):
        dlg = NoteDialog(self, geometry=geometry)
        if dlg.exec() == NoteDialog.DialogCode.Accepted:
            try:
                self.editor.commit_pending(dlg.text(), dlg.category(), dlg.color())
            except ValidationFailure as e:
                QMessageBox.warning(self, "Annotation", str(e))
                self.editor.cancel_pending()
        else:
            self.editor.cancel_pending()

    # ---- documents ----
    def new_from_image(self):
        path, _ = QFileDialog.getOpenFileName(self, "Open Image", str(Path.cwd()), "Images (*.png *.jpg *.jpeg *.gif *.webp)")
        if not path:
            return
        self._image_path = path
        self.document = None
        self._replace_editor(new_local_editor(author=self.settings.author))
        self.canvas.load_image(path)
        self.setWindowTitle(f"Primary Source Lab - {Path(path).name} (unsaved)")

    def open_shared(self):
        token, ok = QInputDialog.getText(self, "Open Document", "Share token:")
        if ok and token.strip():
            asyncio.ensure_future(self.load_document(token.strip()))

    async def load_document(self, share_token: str):
        try:
            doc, editor = await open_document(self.api, share_token, debounce_ms=self.settings.debounce_ms, author=self.settings.author)
        except NotFound:
            self.document = None
            self.canvas.show_message("Document not found")
            self.setWindowTitle("Primary Source Lab - document not found")
            return
        except SourceLabError as e:
            QMessageBox.critical(self, "Open Failed", f"Could not load document:\n{e}")
            return
        self.document = doc
        self._image_path = None
        self._replace_editor(editor)
        self.canvas.load_image(doc.image_url)
        self.setWindowTitle(f"Primary Source Lab - {doc.title}")

    def save_now(self):
        if self.editor.sync is None or self.editor.document_id is None:
            QMessageBox.information(self, "Not Shared Yet", "Use Share to publish this canvas first.")
            return
        asyncio.ensure_future(self.editor.sync.sync_now())

    def share(self):
        if self.document is not None:
            self._copy_share_link(self.document)
            return
        if not self._image_path:
            QMessageBox.information(self, "No Image", "Open an image first.")
            return
        title, ok = QInputDialog.getText(self, "Publish", "Title:", text=Path(self._image_path).stem)
        if ok and title.strip():
            asyncio.ensure_future(self._publish(title.strip()))

    async def _publish(self, title: str):
        try:
            doc = await publish_document(self.api, self.editor, title, self._image_path, debounce_ms=self.settings.debounce_ms)
        except ValidationFailure as e:
            QMessageBox.warning(self, "Publish", str(e))
            return
        except SourceLabError as e:
            QMessageBox.critical(self, "Publish Failed", f"Could not publish document:\n{e}")
            return
        self.document = doc
        self.setWindowTitle(f"Primary Source Lab - {doc.title}")
        self._update_status()
        self._copy_share_link(doc)

    def _copy_share_link(self, doc: Document):
        link = f"{self.settings.api_url}/api/documents/{doc.share_token}"
        QGuiApplication.clipboard().setText(doc.share_token)
        QMessageBox.information(self, "Share", f"Share token copied to clipboard:\n{doc.share_token}\n\n{link}")

    def closeEvent(self, event):  # noqa: N802
        self.dispatcher.unregister()
        QApplication.instance().removeEventFilter(self._shortcut_filter)
        self.editor.close()
        super().closeEvent(event)


def run():
    settings = ClientSettings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = QApplication(sys.argv)
    win = MainWindow(settings)
    win.show()
    token = sys.argv[1] if len(sys.argv) > 1 else None
    QtAsyncio.run(win.load_document(token) if token else None, keep_running=True, handle_sigint=True)


if __name__ == "__main__":
    run()
