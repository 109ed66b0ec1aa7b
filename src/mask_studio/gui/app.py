from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from PySide6.QtGui import QColor, QPalette
from PySide6.QtWidgets import QApplication

from ..session import EditingSession
from .widgets import MaskEditorDialog


def _apply_dark_palette(app: QApplication) -> None:
    app.setStyle("Fusion")
    dark_palette = QPalette()
    dark_palette.setColor(QPalette.ColorRole.Window, QColor(53, 53, 53))
    dark_palette.setColor(QPalette.ColorRole.WindowText, QColor(255, 255, 255))
    dark_palette.setColor(QPalette.ColorRole.Base, QColor(35, 35, 35))
    dark_palette.setColor(QPalette.ColorRole.AlternateBase, QColor(53, 53, 53))
    dark_palette.setColor(QPalette.ColorRole.ToolTipBase, QColor(25, 25, 25))
    dark_palette.setColor(QPalette.ColorRole.ToolTipText, QColor(255, 255, 255))
    dark_palette.setColor(QPalette.ColorRole.Text, QColor(255, 255, 255))
    dark_palette.setColor(QPalette.ColorRole.Button, QColor(53, 53, 53))
    dark_palette.setColor(QPalette.ColorRole.ButtonText, QColor(255, 255, 255))
    dark_palette.setColor(QPalette.ColorRole.Highlight, QColor(42, 130, 218))
    dark_palette.setColor(QPalette.ColorRole.HighlightedText, QColor(35, 35, 35))
    app.setPalette(dark_palette)


def run_editor(
    session: EditingSession,
    image_name: Optional[str] = None,
    output_path: Optional[Path] = None,
) -> int:
    """Show the editor for an already loaded session and block until it closes."""
    app = QApplication.instance() or QApplication(sys.argv)
    _apply_dark_palette(app)
    dialog = MaskEditorDialog(session, image_name=image_name, output_path=output_path)
    dialog.exec()
    session.close()
    return 0
