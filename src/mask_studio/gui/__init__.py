"""Qt front-end for the mask editor."""

from .app import run_editor

__all__ = ["run_editor"]
