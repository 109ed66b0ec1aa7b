"""GUI widgets for the mask editor."""

from .mask_editor_dialog import MaskEditorDialog

__all__ = ["MaskEditorDialog"]
