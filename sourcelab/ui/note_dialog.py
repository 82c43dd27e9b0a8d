from __future__ import annotations
from PySide6.QtWidgets import (QDialog, QVBoxLayout, QLabel, QTextEdit, QComboBox, QDialogButtonBox, QFormLayout, QLineEdit)
from PySide6.QtGui import QColor

from sourcelab.core.annotations import Category, Geometry, CATEGORY_COLORS, DEFAULT_CATEGORY, DEFAULT_COLOR, DEFAULT_TEXT


class NoteDialog(QDialog):
    """Editor for a freshly drawn rectangle (the pending-commit step)."""

    def __init__(self, parent=None, geometry: Geometry | None = None, text: str = DEFAULT_TEXT,
                 category: Category = DEFAULT_CATEGORY, color: str = DEFAULT_COLOR):
        super().__init__(parent)
        self.setWindowTitle("New Annotation")
        self.resize(420, 320)

        self._text_edit = QTextEdit()
        self._text_edit.setPlainText(text)
        self._text_edit.selectAll()
        self._text_edit.setPlaceholderText("What does this region show?")

        self._category_box = QComboBox()
        for c in Category:
            self._category_box.addItem(c.value.capitalize(), c)
        self._category_box.setCurrentIndex(list(Category).index(category))
        self._category_box.currentIndexChanged.connect(self._on_category_changed)

        self._color_edit = QLineEdit(color)
        self._color_edit.setPlaceholderText("#rrggbb")

        self._error_label = QLabel("")
        self._error_label.setStyleSheet("color: #ef4444")

        form = QFormLayout()
        if geometry is not None:
            form.addRow(QLabel("Region"), QLabel(f"{geometry.width:.0f} x {geometry.height:.0f} at ({geometry.x:.0f}, {geometry.y:.0f})"))
        form.addRow(QLabel("Note"), self._text_edit)
        form.addRow(QLabel("Category"), self._category_box)
        form.addRow(QLabel("Color"), self._color_edit)

        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel)
        buttons.accepted.connect(self._on_accept)
        buttons.rejected.connect(self.reject)

        layout = QVBoxLayout(self)
        layout.addLayout(form)
        layout.addWidget(self._error_label)
        layout.addWidget(buttons)

    def _on_category_changed(self, _index: int):
        self._color_edit.setText(CATEGORY_COLORS[self.category()])

    def _on_accept(self):
        if not self.text():
            self._error_label.setText("The note cannot be empty.")
            return
        if not QColor(self.color()).isValid():
            self._error_label.setText("Color must look like #rrggbb.")
            return
        self.accept()

    def text(self) -> str:
        return self._text_edit.toPlainText().strip()

    def category(self) -> Category:
        return self._category_box.currentData()

    def color(self) -> str:
        return self._color_edit.text().strip()
