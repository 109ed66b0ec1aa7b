"""Interactive mask editor dialog driven by an :class:`EditingSession`."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

import numpy as np
import pyqtgraph as pg
from PySide6.QtCore import QEvent, QSize, Qt, QTimer, Signal
from PySide6.QtGui import QCloseEvent, QKeySequence, QMouseEvent, QPen, QShortcut
from PySide6.QtWidgets import (
    QButtonGroup,
    QDialog,
    QDialogButtonBox,
    QGraphicsEllipseItem,
    QHBoxLayout,
    QLabel,
    QMessageBox,
    QSizePolicy,
    QSlider,
    QSpinBox,
    QToolButton,
    QVBoxLayout,
    QWidget,
)

from ...core.compositor import render_overlay, tint_lookup_table
from ...core.tools import GestureEvent, GestureKind, Tool
from ...exporters import ExportError, export_binary_mask, prepare_output_path
from ...segmentation import SegmentationUnavailable
from ...session import EditingSession

logger = logging.getLogger(__name__)

_TOOL_LABELS = {
    Tool.CLICK: ("Select", "C", "Click an object to add it; click a selected object to remove it (C)"),
    Tool.BRUSH: ("Brush", "B", "Paint selected pixels (B)"),
    Tool.ERASE: ("Eraser", "E", "Erase selected pixels (E)"),
    Tool.LASSO: ("Lasso", "L", "Click vertices, double-click or Enter to fill (L)"),
    Tool.LASSO_ERASE: ("Lasso Erase", "Shift+L", "Click vertices, double-click or Enter to erase (Shift+L)"),
}


class MaskEditorDialog(QDialog):
    """Dialog hosting the click-select, brush and lasso workflow."""

    mask_saved = Signal(Path)

    def __init__(
        self,
        session: EditingSession,
        image_name: Optional[str] = None,
        output_path: Optional[Path] = None,
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self.session = session
        self.image_name = image_name
        self.output_path = Path(output_path) if output_path is not None else None

        config = session.config
        self._overlay_opacity = 1.0
        self._is_painting = False
        self._cursor_view_pos: Optional[tuple[float, float]] = None
        self._hover_pos: Optional[tuple[float, float]] = None
        self._saved_mask = session.mask.clone() if session.mask is not None else None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="segmentation")
        self._mask_lut = tint_lookup_table(config.overlay.color, config.overlay.alpha)
        self._tool_buttons: dict[Tool, QToolButton] = {}

        self._preview_timer = QTimer(self)
        self._preview_timer.setSingleShot(True)
        self._preview_timer.setInterval(config.preview.debounce_ms)
        self._preview_timer.timeout.connect(self._update_preview)

        title = f"Mask Editor - {image_name}" if image_name else "Mask Editor"
        self.setWindowTitle(title)
        self.resize(1000, 760)

        self._setup_ui()
        self._connect_signals()
        self._load_session()

    # --------------------------------------------------------------------- UI
    def _setup_ui(self) -> None:
        layout = QVBoxLayout(self)
        layout.setContentsMargins(10, 10, 10, 10)
        layout.setSpacing(6)

        layout.addWidget(self._build_toolbar())
        layout.addWidget(self._build_action_bar())

        self.canvas_widget = pg.GraphicsLayoutWidget()
        self.canvas_plot = self.canvas_widget.addPlot()
        self.canvas_plot.hideButtons()
        self.canvas_plot.setMenuEnabled(False)
        self.canvas_plot.hideAxis("left")
        self.canvas_plot.hideAxis("bottom")
        self.canvas_plot.setAspectLocked(True)
        self.canvas_plot.invertY(True)
        self.view_box = self.canvas_plot.getViewBox()
        self.view_box.setMouseEnabled(x=True, y=True)

        self.image_item = pg.ImageItem(axisOrder="row-major")
        self.mask_item = pg.ImageItem(axisOrder="row-major")
        self.mask_item.setLookupTable(self._mask_lut)
        self.mask_item.setLevels([0, 255])
        self.preview_item = pg.ImageItem(axisOrder="row-major")
        self.preview_item.setZValue(5)
        self.preview_item.setVisible(False)
        self.canvas_plot.addItem(self.image_item)
        self.canvas_plot.addItem(self.mask_item)
        self.canvas_plot.addItem(self.preview_item)

        self.lasso_item = pg.PlotDataItem(
            pen=pg.mkPen(color=(255, 255, 255), width=1.5, style=Qt.PenStyle.DashLine),
            symbol="o",
            symbolSize=5,
            symbolBrush=(255, 255, 255),
        )
        self.lasso_item.setZValue(8)
        self.canvas_plot.addItem(self.lasso_item)

        self.cursor_item = QGraphicsEllipseItem()
        pen = QPen(Qt.white)
        pen.setWidthF(1.25)
        pen.setCosmetic(True)
        self.cursor_item.setPen(pen)
        self.cursor_item.setBrush(Qt.BrushStyle.NoBrush)
        self.cursor_item.setZValue(10)
        self.cursor_item.setVisible(False)
        self.view_box.addItem(self.cursor_item)

        self.canvas_viewport = self.canvas_widget.viewport()
        self.canvas_viewport.setMouseTracking(True)
        self.canvas_viewport.installEventFilter(self)

        layout.addWidget(self.canvas_widget, 1)

        self.status_label = QLabel("Load an image to begin editing.")
        self.status_label.setObjectName("maskEditorStatus")
        layout.addWidget(self.status_label)

        self.button_box = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Save | QDialogButtonBox.StandardButton.Close,
            parent=self,
        )
        self.save_button = self.button_box.button(QDialogButtonBox.StandardButton.Save)
        layout.addWidget(self.button_box)

    def _build_toolbar(self) -> QWidget:
        toolbar = QWidget(self)
        toolbar_layout = QHBoxLayout(toolbar)
        toolbar_layout.setContentsMargins(0, 0, 0, 0)
        toolbar_layout.setSpacing(8)

        self.tool_group = QButtonGroup(toolbar)
        self.tool_group.setExclusive(True)
        for tool, (text, _shortcut, tooltip) in _TOOL_LABELS.items():
            button = QToolButton(toolbar)
            button.setText(text)
            button.setCheckable(True)
            button.setToolTip(tooltip)
            self._configure_tool_button(button)
            self.tool_group.addButton(button)
            toolbar_layout.addWidget(button)
            self._tool_buttons[tool] = button

        toolbar_layout.addSpacing(12)

        toolbar_layout.addWidget(QLabel("Brush Size:", toolbar))
        max_radius = int(self.session.tools.max_brush_radius)
        self.size_slider = QSlider(Qt.Orientation.Horizontal, toolbar)
        self.size_slider.setMinimum(1)
        self.size_slider.setMaximum(max_radius)
        self.size_slider.setPageStep(5)
        self.size_slider.setValue(int(round(self.session.tools.brush_radius)))
        self.size_slider.setToolTip("Adjust brush/eraser radius ([ and ])")
        toolbar_layout.addWidget(self.size_slider, 1)

        self.size_spin = QSpinBox(toolbar)
        self.size_spin.setMinimum(self.size_slider.minimum())
        self.size_spin.setMaximum(self.size_slider.maximum())
        self.size_spin.setValue(self.size_slider.value())
        toolbar_layout.addWidget(self.size_spin)

        toolbar_layout.addWidget(QLabel("Opacity:", toolbar))
        self.opacity_slider = QSlider(Qt.Orientation.Horizontal, toolbar)
        self.opacity_slider.setMinimum(0)
        self.opacity_slider.setMaximum(100)
        self.opacity_slider.setValue(int(self._overlay_opacity * 100))
        self.opacity_slider.setToolTip("Mask overlay opacity")
        toolbar_layout.addWidget(self.opacity_slider, 1)
        self.opacity_value_label = QLabel(f"{int(self._overlay_opacity * 100)}%", toolbar)
        self.opacity_value_label.setFixedWidth(40)
        toolbar_layout.addWidget(self.opacity_value_label)
        return toolbar

    def _build_action_bar(self) -> QWidget:
        bar = QWidget(self)
        bar_layout = QHBoxLayout(bar)
        bar_layout.setContentsMargins(0, 0, 0, 0)
        bar_layout.setSpacing(8)

        def make_button(text: str, tooltip: str) -> QToolButton:
            button = QToolButton(bar)
            button.setText(text)
            button.setToolTip(tooltip)
            self._configure_tool_button(button)
            bar_layout.addWidget(button)
            return button

        self.undo_button = make_button("Undo", "Undo last action (Ctrl/Cmd+Z)")
        self.redo_button = make_button("Redo", "Redo action (Ctrl/Cmd+Shift+Z)")
        bar_layout.addSpacing(12)
        self.clear_button = make_button("Clear", "Deselect everything")
        self.invert_button = make_button("Invert", "Swap selected and unselected pixels (I)")
        self.refine_button = make_button("Refine", "Smooth edges, fill pinholes, drop specks (R)")
        bar_layout.addStretch(1)
        return bar

    def _configure_tool_button(self, button: QToolButton) -> None:
        button.setToolButtonStyle(Qt.ToolButtonStyle.ToolButtonTextOnly)
        button.setIconSize(QSize(18, 18))
        button.setMinimumHeight(28)
        button.setSizePolicy(QSizePolicy.Policy.Fixed, QSizePolicy.Policy.Fixed)
        button.setAutoRaise(False)

    # ---------------------------------------------------------------- Signals
    def _connect_signals(self) -> None:
        shortcuts = []
        for tool, button in self._tool_buttons.items():
            button.toggled.connect(lambda checked, t=tool: checked and self._set_active_tool(t))
            shortcut = QShortcut(QKeySequence(_TOOL_LABELS[tool][1]), self)
            shortcut.activated.connect(button.click)
            shortcuts.append(shortcut)

        self.size_slider.valueChanged.connect(self._on_brush_size_changed)
        self.size_spin.valueChanged.connect(self.size_slider.setValue)
        self.opacity_slider.valueChanged.connect(self._on_opacity_changed)

        self.undo_button.clicked.connect(self._undo_action)
        self.redo_button.clicked.connect(self._redo_action)
        self.clear_button.clicked.connect(self._clear_action)
        self.invert_button.clicked.connect(self._invert_action)
        self.refine_button.clicked.connect(self._refine_action)

        bindings = (
            (QKeySequence.StandardKey.Undo, self._undo_action),
            (QKeySequence.StandardKey.Redo, self._redo_action),
            (QKeySequence.StandardKey.Save, self._save_action),
            (QKeySequence("I"), self._invert_action),
            (QKeySequence("R"), self._refine_action),
            (QKeySequence("["), lambda: self.size_slider.setValue(self.size_slider.value() - 1)),
            (QKeySequence("]"), lambda: self.size_slider.setValue(self.size_slider.value() + 1)),
        )
        for sequence, slot in bindings:
            shortcut = QShortcut(sequence, self)
            shortcut.activated.connect(slot)
            shortcuts.append(shortcut)
        self._shortcuts = shortcuts

        self.button_box.accepted.connect(self._save_action)
        self.button_box.rejected.connect(self.close)

    # ---------------------------------------------------------- Session sync
    def _load_session(self) -> None:
        if not self.session.has_image:
            self._set_status("No image loaded.")
            self.save_button.setEnabled(False)
            return

        image = self.session.image
        self.image_item.setImage(image, autoLevels=False, levels=(0, 255))
        self._tool_buttons[self.session.tools.tool].setChecked(True)
        self._refresh_mask_item()
        self.view_box.autoRange()
        self._prefetch_segmentation()
        height, width = image.shape[:2]
        self._set_status(f"Loaded {width}×{height} image. Click an object to select it.")

    def _prefetch_segmentation(self) -> None:
        try:
            self.session.prefetch_segmentation(self._executor)
        except SegmentationUnavailable as exc:
            logger.debug("Segmentation prefetch skipped: %s", exc)

    def _refresh_mask_item(self) -> None:
        if self.session.mask is None:
            return
        self.mask_item.setImage(self.session.binary_buffer(), autoLevels=False)
        self.mask_item.setOpacity(self._overlay_opacity)
        self._update_history_buttons()
        self._update_cursor_visual()

    def _update_history_buttons(self) -> None:
        self.undo_button.setEnabled(self.session.can_undo())
        self.redo_button.setEnabled(self.session.can_redo())

    def _set_status(self, message: str) -> None:
        self.status_label.setText(message)

    def _describe_state(self) -> str:
        mask = self.session.mask
        history = self.session.history
        return (
            f"{self.session.tools.tool.value} | {mask.count()} px selected | "
            f"{self.session.selection_count} object(s) | history {history.cursor + 1}/{len(history)}"
        )

    def _is_dirty(self) -> bool:
        return self.session.mask is not None and self.session.mask != self._saved_mask

    # -------------------------------------------------------------- Tools
    def _set_active_tool(self, tool: Tool) -> None:
        result = self.session.set_tool(tool)
        self._clear_preview()
        self._refresh_lasso()
        if result.committed:
            self._refresh_mask_item()
        if tool.is_stroke:
            self.canvas_viewport.setCursor(Qt.CursorShape.BlankCursor)
        else:
            self.canvas_viewport.setCursor(Qt.CursorShape.CrossCursor)
        self._update_cursor_visual()
        if self.session.mask is not None:
            self._set_status(self._describe_state())

    def _on_brush_size_changed(self, value: int) -> None:
        self.session.set_brush_radius(value)
        if self.size_spin.value() != value:
            self.size_spin.blockSignals(True)
            self.size_spin.setValue(value)
            self.size_spin.blockSignals(False)
        self._update_cursor_visual()

    def _on_opacity_changed(self, value: int) -> None:
        self._overlay_opacity = max(0.0, min(1.0, value / 100.0))
        self.mask_item.setOpacity(self._overlay_opacity)
        self.opacity_value_label.setText(f"{value}%")

    # -------------------------------------------------------------- Actions
    def _run_action(self, action, done: str) -> None:
        if self.session.mask is None:
            return
        if action():
            self._clear_preview()
            self._refresh_lasso()
            self._refresh_mask_item()
            self._set_status(f"{done}. {self._describe_state()}")

    def _undo_action(self) -> None:
        self._run_action(self.session.undo, "Undone")

    def _redo_action(self) -> None:
        self._run_action(self.session.redo, "Redone")

    def _clear_action(self) -> None:
        self._run_action(self.session.clear, "Cleared")

    def _invert_action(self) -> None:
        self._run_action(self.session.invert, "Inverted")

    def _refine_action(self) -> None:
        self._run_action(self.session.refine, "Refined")

    def _save_action(self) -> bool:
        if self.session.mask is None:
            return False
        path = self.output_path or prepare_output_path(self.image_name)
        try:
            export_binary_mask(self.session.mask, path)
        except ExportError as exc:
            logger.error("Failed to save mask to %s: %s", path, exc)
            QMessageBox.critical(self, "Save failed", f"Could not write mask to {path}")
            return False
        self.output_path = Path(path)
        self._saved_mask = self.session.mask.clone()
        self.mask_saved.emit(self.output_path)
        self._set_status(f"Saved mask to {self.output_path}")
        return True

    def _confirm_discard(self) -> bool:
        if not self._is_dirty():
            return True
        message = QMessageBox(self)
        message.setIcon(QMessageBox.Icon.Warning)
        message.setWindowTitle("Discard edits?")
        message.setText("You have unsaved edits. Discard changes?")
        message.setStandardButtons(
            QMessageBox.StandardButton.Discard | QMessageBox.StandardButton.Cancel
        )
        message.setDefaultButton(QMessageBox.StandardButton.Cancel)
        return message.exec() == QMessageBox.StandardButton.Discard

    def closeEvent(self, event: QCloseEvent) -> None:
        if self._confirm_discard():
            self._preview_timer.stop()
            self._executor.shutdown(wait=False, cancel_futures=True)
            event.accept()
            super().reject()
        else:
            event.ignore()

    def reject(self) -> None:
        self.close()

    # -------------------------------------------------------------- Gestures
    def eventFilter(self, obj, event):  # noqa: D401
        """Translate viewport mouse events into gesture events."""
        if obj is self.canvas_viewport and self.session.mask is not None:
            event_type = event.type()
            if event_type == QEvent.Type.MouseMove:
                return self._handle_mouse_move(event)
            if event_type == QEvent.Type.MouseButtonPress:
                return self._handle_mouse_press(event)
            if event_type == QEvent.Type.MouseButtonRelease:
                return self._handle_mouse_release(event)
            if event_type == QEvent.Type.MouseButtonDblClick:
                return self._handle_double_click(event)
            if event_type == QEvent.Type.Leave:
                self._cursor_view_pos = None
                self._hover_pos = None
                self._update_cursor_visual()
                self._clear_preview()
        return super().eventFilter(obj, event)

    def _dispatch(self, kind: GestureKind, pos: tuple[float, float] = (0.0, 0.0)) -> bool:
        try:
            result = self.session.handle(GestureEvent(kind, pos[0], pos[1]))
        except SegmentationUnavailable as exc:
            logger.warning("Click-select unavailable: %s", exc)
            self._set_status(f"Segmentation unavailable: {exc}")
            QMessageBox.warning(self, "Segmentation unavailable", str(exc))
            return False
        if result.changed or result.committed:
            self._clear_preview()
            self._refresh_mask_item()
        if result.committed:
            self._set_status(self._describe_state())
        return result.committed

    def _handle_mouse_press(self, event: QMouseEvent) -> bool:
        if event.button() != Qt.MouseButton.LeftButton:
            return False
        mapping = self._map_event_positions(event)
        if mapping is None:
            return False
        paint_pos, view_pos = mapping
        self._cursor_view_pos = view_pos
        tool = self.session.tools.tool
        if tool is Tool.CLICK:
            self._dispatch(GestureKind.ACTIVATE, paint_pos)
        elif tool.is_stroke:
            self._is_painting = True
            self._dispatch(GestureKind.DOWN, paint_pos)
        else:
            self._dispatch(GestureKind.DOWN, paint_pos)
            self._refresh_lasso()
        event.accept()
        return True

    def _handle_mouse_move(self, event: QMouseEvent) -> bool:
        mapping = self._map_event_positions(event)
        if mapping is None:
            self._cursor_view_pos = None
            self._hover_pos = None
            self._update_cursor_visual()
            self._clear_preview()
            return False

        paint_pos, view_pos = mapping
        self._cursor_view_pos = view_pos
        self._update_cursor_visual()
        tool = self.session.tools.tool
        if tool.is_stroke and self._is_painting:
            self._dispatch(GestureKind.MOVE, paint_pos)
            event.accept()
            return True
        if tool.is_polygon:
            self._refresh_lasso(paint_pos)
        elif tool is Tool.CLICK:
            self._schedule_preview(paint_pos)
        return False

    def _handle_mouse_release(self, event: QMouseEvent) -> bool:
        if event.button() != Qt.MouseButton.LeftButton or not self._is_painting:
            return False
        self._is_painting = False
        mapping = self._map_event_positions(event)
        paint_pos = mapping[0] if mapping is not None else (0.0, 0.0)
        self._dispatch(GestureKind.UP, paint_pos)
        event.accept()
        return True

    def _handle_double_click(self, event: QMouseEvent) -> bool:
        if event.button() != Qt.MouseButton.LeftButton:
            return False
        if not self.session.tools.tool.is_polygon:
            # Qt replaces the second press of a double click with this event.
            return self._handle_mouse_press(event)
        self._dispatch(GestureKind.DOUBLE_ACTIVATE)
        self._refresh_lasso()
        event.accept()
        return True

    def _map_event_positions(
        self, event: QMouseEvent
    ) -> Optional[tuple[tuple[float, float], tuple[float, float]]]:
        """Return (mask_coords, view_coords) for the given mouse event."""
        mask = self.session.mask
        if mask is None:
            return None

        pos = event.position()
        scene_pos = self.canvas_widget.mapToScene(pos.toPoint())
        view_point = self.view_box.mapSceneToView(scene_pos)
        view_x = view_point.x()
        view_y = view_point.y()
        if np.isnan(view_x) or np.isnan(view_y):
            return None

        local_point = self.image_item.mapFromScene(scene_pos)
        paint_x = local_point.x()
        paint_y = local_point.y()
        if np.isnan(paint_x) or np.isnan(paint_y):
            return None
        if not mask.contains(paint_x, paint_y):
            return None

        return (paint_x, paint_y), (view_x, view_y)

    def _update_cursor_visual(self) -> None:
        if self._cursor_view_pos is None or not self.session.tools.tool.is_stroke:
            self.cursor_item.setVisible(False)
            return
        radius = self.session.tools.brush_radius
        x, y = self._cursor_view_pos
        self.cursor_item.setRect(x - radius, y - radius, radius * 2, radius * 2)
        self.cursor_item.setVisible(True)

    def _refresh_lasso(self, hover: Optional[tuple[float, float]] = None) -> None:
        vertices = list(self.session.tools.polygon)
        if not vertices:
            self.lasso_item.setData([], [])
            return
        if hover is not None:
            vertices.append(hover)
        xs = [point[0] for point in vertices]
        ys = [point[1] for point in vertices]
        self.lasso_item.setData(xs, ys)

    # -------------------------------------------------------------- Preview
    def _schedule_preview(self, pos: tuple[float, float]) -> None:
        if not self.session.config.preview.enabled:
            return
        self._hover_pos = pos
        self._preview_timer.start()

    def _update_preview(self) -> None:
        if self._hover_pos is None or self.session.tools.tool is not Tool.CLICK:
            self._clear_preview()
            return
        # Hovering reads the cache only; loads and clicks start segmentation.
        preview = self.session.preview(*self._hover_pos)
        if preview is None:
            self._clear_preview()
            return
        overlay = self.session.config.overlay
        color = overlay.preview_remove_color if preview.removes else overlay.preview_add_color
        self.preview_item.setImage(render_overlay(preview.region, color, overlay.preview_alpha))
        self.preview_item.setVisible(True)

    def _clear_preview(self) -> None:
        self._preview_timer.stop()
        self.preview_item.setVisible(False)

    # -------------------------------------------------------------- Keys
    def keyPressEvent(self, event) -> None:
        if self.session.tools.tool.is_polygon:
            if event.key() in (Qt.Key.Key_Return, Qt.Key.Key_Enter):
                self._dispatch(GestureKind.CLOSE)
                self._refresh_lasso()
                return
            if event.key() == Qt.Key.Key_Escape and self.session.tools.polygon:
                self.session.tools.cancel()
                self._refresh_lasso()
                return
        return super().keyPressEvent(event)
