from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List

from PySide6.QtCore import QPointF, QRectF, QSettings, Qt, Signal
from PySide6.QtGui import QColor, QImage, QKeySequence, QMouseEvent, QPainter, QPen, QShortcut
from PySide6.QtWidgets import (
    QApplication,
    QColorDialog,
    QFileDialog,
    QHBoxLayout,
    QInputDialog,
    QMainWindow,
    QMessageBox,
    QWidget,
)

from palette_editor.codec import EncodeError, save_image
from palette_editor.image_model import IndexedImage, PaletteOverflowError
from palette_editor.palette_ops import (
    MAX_PALETTE_SIZE,
    PaletteError,
    hex_to_rgb,
    read_act_palette,
    rgb_to_hex,
    write_act,
)

logger = logging.getLogger(__name__)

BG_COLOR = QColor(60, 10, 0)
_ALPHA_CYCLE = (255, 128, 0)


@dataclass
class EditorSettings:
    padding: float = 3.0
    inner_width: float = 208.0
    columns: int = 16
    zoom_step: float = 0.1
    min_zoom: float = 0.1
    panel_visible: bool = True
    zoom: float = 1.0

    @property
    def cell_size(self) -> float:
        return self.inner_width / self.columns

    @classmethod
    def load(cls, store: QSettings) -> "EditorSettings":
        settings = cls()
        settings.panel_visible = str(store.value("panel_visible", True)).lower() not in ("false", "0")
        try:
            settings.zoom = max(settings.min_zoom, float(store.value("zoom", 1.0)))
        except (TypeError, ValueError):
            settings.zoom = 1.0
        return settings

    def save(self, store: QSettings) -> None:
        store.setValue("panel_visible", self.panel_visible)
        store.setValue("zoom", self.zoom)


def qimage_from_indexed(image: IndexedImage) -> QImage:
    rgba = image.render()
    qimage = QImage(rgba, image.width, image.height, image.width * 4, QImage.Format.Format_RGBA8888)
    # detach from the render buffer
    return qimage.copy()


class CanvasWidget(QWidget):
    pixelPainted = Signal(int, int)

    def __init__(self, settings: EditorSettings, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._settings = settings
        self._qimage: QImage | None = None
        self._painting = False
        self.setMinimumSize(200, 200)
        self.setMouseTracking(False)

    def set_image(self, qimage: QImage) -> None:
        self._qimage = qimage
        self.update()

    def _target_rect(self) -> QRectF:
        if self._qimage is None:
            return QRectF()
        aspect = self._qimage.width() / self._qimage.height()
        side = min(self.height() * aspect, float(self.width())) * self._settings.zoom
        return QRectF(0.0, 0.0, side, side / aspect)

    def _pixel_at(self, pos: QPointF) -> tuple[int, int] | None:
        rect = self._target_rect()
        if self._qimage is None or rect.width() <= 0 or not rect.contains(pos):
            return None
        x = int((pos.x() - rect.x()) * self._qimage.width() / rect.width())
        y = int((pos.y() - rect.y()) * self._qimage.height() / rect.height())
        if 0 <= x < self._qimage.width() and 0 <= y < self._qimage.height():
            return x, y
        return None

    def paintEvent(self, event) -> None:  # type: ignore[override]
        painter = QPainter(self)
        painter.fillRect(self.rect(), BG_COLOR)
        if self._qimage is not None:
            painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform, False)
            painter.drawImage(self._target_rect(), self._qimage)
        painter.end()

    def mousePressEvent(self, event: QMouseEvent) -> None:  # type: ignore[override]
        if event.button() == Qt.MouseButton.LeftButton:
            self._painting = True
            self._paint_at(event.position())
            event.accept()
            return
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event: QMouseEvent) -> None:  # type: ignore[override]
        if self._painting:
            self._paint_at(event.position())
            event.accept()
            return
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:  # type: ignore[override]
        if event.button() == Qt.MouseButton.LeftButton:
            self._painting = False
        super().mouseReleaseEvent(event)

    def _paint_at(self, pos: QPointF) -> None:
        hit = self._pixel_at(pos)
        if hit is not None:
            self.pixelPainted.emit(*hit)


class PalettePanel(QWidget):
    indexSelected = Signal(int)
    editRequested = Signal(int)

    def __init__(self, settings: EditorSettings, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._settings = settings
        self._colors: List[tuple[int, int, int]] = []
        self._alphas: List[int] = []
        self._usage: List[int] = []
        self._selected = 0
        self.setFixedWidth(int(settings.inner_width + settings.padding))

    def set_state(self, image: IndexedImage, selected: int) -> None:
        self._colors = list(image.palette)
        self._alphas = [image.alpha(i) for i in range(len(self._colors))]
        self._usage = image.count_usage()
        self._selected = selected
        self.update()

    def _index_at(self, pos: QPointF) -> int | None:
        cell = self._settings.cell_size
        column = int(pos.x() // cell)
        row = int(pos.y() // cell)
        if not 0 <= column < self._settings.columns:
            return None
        index = row * self._settings.columns + column
        return index if 0 <= index < len(self._colors) else None

    def paintEvent(self, event) -> None:  # type: ignore[override]
        painter = QPainter(self)
        painter.fillRect(self.rect(), Qt.GlobalColor.black)
        cell = self._settings.cell_size
        padding = self._settings.padding
        for index, (r, g, b) in enumerate(self._colors):
            x = (index % self._settings.columns) * cell
            y = (index // self._settings.columns) * cell
            swatch = QRectF(x + padding, y + padding, cell - padding, cell - padding)
            painter.fillRect(swatch, QColor(r, g, b))
            if self._alphas[index] < 255:
                # diagonal marks a (partly) transparent slot
                painter.setPen(QPen(QColor(255, 255, 255), 1))
                painter.drawLine(swatch.topLeft(), swatch.bottomRight())
            if index < len(self._usage) and self._usage[index] == 0:
                painter.setPen(QPen(QColor(128, 128, 128), 1, Qt.PenStyle.DotLine))
                painter.drawRect(swatch)
            if index == self._selected:
                painter.setPen(QPen(QColor(255, 255, 0), 2))
                painter.drawRect(swatch.adjusted(-1, -1, 1, 1))
        painter.end()

    def mousePressEvent(self, event: QMouseEvent) -> None:  # type: ignore[override]
        index = self._index_at(event.position())
        if index is not None and event.button() == Qt.MouseButton.LeftButton:
            self.indexSelected.emit(index)
            event.accept()
            return
        super().mousePressEvent(event)

    def mouseDoubleClickEvent(self, event: QMouseEvent) -> None:  # type: ignore[override]
        index = self._index_at(event.position())
        if index is not None:
            self.editRequested.emit(index)
            event.accept()
            return
        super().mouseDoubleClickEvent(event)


class EditorWindow(QMainWindow):
    def __init__(self, image: IndexedImage, path: Path) -> None:
        super().__init__()
        self.image = image
        self.path = path
        self.selected_index = 0
        self._store = QSettings("PaletteEditor", "PaletteEditor")
        self.settings = EditorSettings.load(self._store)

        self.canvas = CanvasWidget(self.settings)
        self.panel = PalettePanel(self.settings)
        self.panel.setVisible(self.settings.panel_visible)
        central = QWidget()
        layout = QHBoxLayout(central)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(0)
        layout.addWidget(self.canvas, 1)
        layout.addWidget(self.panel)
        self.setCentralWidget(central)

        self.canvas.pixelPainted.connect(self._paint_pixel)
        self.panel.indexSelected.connect(self._select_index)
        self.panel.editRequested.connect(self._edit_color)
        QShortcut(QKeySequence.StandardKey.Save, self, activated=self._save)
        QShortcut(QKeySequence("Ctrl+E"), self, activated=self._export_act)
        QShortcut(QKeySequence("Ctrl+I"), self, activated=self._import_act)

        self.setWindowTitle(f"Png editor - {path.name}")
        self.resize(800, 600)
        self._refresh()

    def _refresh(self) -> None:
        self.canvas.set_image(qimage_from_indexed(self.image))
        self.panel.set_state(self.image, self.selected_index)
        r, g, b = self.image.palette[self.selected_index]
        self.statusBar().showMessage(
            f"{self.image.width}x{self.image.height}  index {self.selected_index}  "
            f"{rgb_to_hex((r, g, b))}  alpha {self.image.alpha(self.selected_index)}  "
            f"zoom {self.settings.zoom:.1f}"
        )

    # -- slots ------------------------------------------------------------

    def _paint_pixel(self, x: int, y: int) -> None:
        if self.image.get_pixel(x, y) == self.selected_index:
            return
        self.image.set_pixel(x, y, self.selected_index)
        self._refresh()

    def _select_index(self, index: int) -> None:
        self.selected_index = index
        self._refresh()

    def _edit_color(self, index: int) -> None:
        r, g, b = self.image.palette[index]
        color = QColorDialog.getColor(QColor(r, g, b), self, f"Palette index {index}")
        if not color.isValid():
            return
        self.image.set_color(index, (color.red(), color.green(), color.blue()))
        self.selected_index = index
        self._refresh()

    def _push_color(self) -> None:
        try:
            self.selected_index = self.image.push_color(self.image.palette[self.selected_index])
        except PaletteOverflowError:
            logger.warning("Palette full; cannot add more than %s colors", MAX_PALETTE_SIZE)
            self.statusBar().showMessage(f"Palette full ({MAX_PALETTE_SIZE} colors)")
            return
        self._refresh()

    def _cycle_alpha(self) -> None:
        current = self.image.alpha(self.selected_index)
        if current in _ALPHA_CYCLE:
            alpha = _ALPHA_CYCLE[(_ALPHA_CYCLE.index(current) + 1) % len(_ALPHA_CYCLE)]
        else:
            alpha = _ALPHA_CYCLE[0]
        self.image.set_transparency(self.selected_index, alpha)
        self._refresh()

    def _prompt_swap(self) -> None:
        text, ok = QInputDialog.getText(
            self, "Swap", "Palette indexes to swap (separate with space):"
        )
        if not ok:
            return
        parts = text.split()
        try:
            first, second = (int(part) for part in parts)
        except ValueError:
            self.statusBar().showMessage(f"Expected two indexes, got {text!r}")
            return
        size = len(self.image.palette)
        if not (0 <= first < size and 0 <= second < size):
            self.statusBar().showMessage(f"Indexes must be below {size}")
            return
        self.image.swap_indices(first, second)
        logger.info("Swapped palette indexes %s and %s", first, second)
        self._refresh()

    def _enter_hex_color(self) -> None:
        current = rgb_to_hex(self.image.palette[self.selected_index])
        text, ok = QInputDialog.getText(
            self, "Hex color", f"Color for palette index {self.selected_index} (#rrggbb):", text=current
        )
        if not ok:
            return
        try:
            color = hex_to_rgb(text)
        except ValueError as exc:
            self.statusBar().showMessage(str(exc))
            return
        self.image.set_color(self.selected_index, color)
        self._refresh()

    def _save(self) -> None:
        try:
            save_image(self.image, self.path)
        except EncodeError as exc:
            logger.error("Save failed: %s", exc)
            QMessageBox.critical(self, "Save failed", str(exc))
            return
        self.statusBar().showMessage(f"Saved {self.path}")

    def _export_act(self) -> None:
        target, _ = QFileDialog.getSaveFileName(
            self, "Export palette", str(self.path.with_suffix(".act")), "ACT palette (*.act)"
        )
        if not target:
            return
        try:
            write_act(Path(target), self.image.palette_info())
        except (OSError, PaletteError) as exc:
            logger.error("Palette export failed: %s", exc)
            QMessageBox.critical(self, "Export failed", str(exc))
            return
        self.statusBar().showMessage(f"Exported palette to {target}")

    def _import_act(self) -> None:
        source, _ = QFileDialog.getOpenFileName(
            self, "Import palette", str(self.path.parent), "ACT palette (*.act)"
        )
        if not source:
            return
        try:
            palette = read_act_palette(Path(source))
        except (OSError, PaletteError) as exc:
            logger.warning("Palette import failed path=%s err=%s", source, exc)
            QMessageBox.warning(self, "Import failed", str(exc))
            return
        self.image.apply_palette(palette)
        logger.info("Imported %s colors from %s", palette.size, source)
        self._refresh()

    # -- keyboard ---------------------------------------------------------

    def keyPressEvent(self, event) -> None:  # type: ignore[override]
        key = event.key()
        if event.modifiers() & Qt.KeyboardModifier.ControlModifier:
            super().keyPressEvent(event)
            return
        if key == Qt.Key.Key_Equal:
            self.settings.zoom += self.settings.zoom_step
        elif key == Qt.Key.Key_Minus:
            self.settings.zoom = max(self.settings.min_zoom, self.settings.zoom - self.settings.zoom_step)
        elif key == Qt.Key.Key_P:
            self.settings.panel_visible = not self.settings.panel_visible
            self.panel.setVisible(self.settings.panel_visible)
        elif key == Qt.Key.Key_N:
            self._push_color()
            return
        elif key == Qt.Key.Key_A:
            self._cycle_alpha()
            return
        elif key == Qt.Key.Key_T:
            self._prompt_swap()
            return
        elif key == Qt.Key.Key_H:
            self._enter_hex_color()
            return
        else:
            super().keyPressEvent(event)
            return
        self.settings.save(self._store)
        self._refresh()

    def closeEvent(self, event) -> None:  # type: ignore[override]
        self.settings.save(self._store)
        super().closeEvent(event)


def run(image: IndexedImage, path: Path) -> int:
    app = QApplication.instance() or QApplication(sys.argv)
    window = EditorWindow(image, path)
    window.show()
    return app.exec()
