"""
Command-line interface for the mask editor.

Usage:
    mask-studio edit path/to/image.png [--mask mask.png] [--class-map map.png]
    mask-studio select path/to/image.png --class-map map.png --click 120,80 [--output mask.png]
    mask-studio replay path/to/image.png script.yaml [--class-map map.png]
    mask-studio refine path/to/mask.png [--iterations 2]
    mask-studio invert path/to/mask.png
    mask-studio validate-config editor.yaml
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence, Tuple

from .assets import load_image, load_mask
from .config import EditorConfig, load_editor_config, summarize_config
from .core import compositor
from .core.tools import GestureEvent, GestureKind, Tool
from .exporters import export_binary_mask, export_preview, prepare_output_path
from .plugins import create_segmenter, get_registered_segmenters
from .replay import load_script, run_script
from .segmentation import ClassMapSegmenter
from .session import EditingSession

Logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(message)s")


def parse_point(value: str) -> Tuple[float, float]:
    """Parse ``"x,y"`` into a float pair."""
    parts = value.replace(" ", "").split(",")
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"Expected X,Y but got '{value}'")
    try:
        return float(parts[0]), float(parts[1])
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Non-numeric point '{value}'") from exc


def add_shared_output_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Where to write the binary mask PNG (defaults to a timestamped file under MASK_STUDIO_OUTPUT_ROOT).",
    )


def add_shared_session_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("image", type=Path, help="Image to edit.")
    parser.add_argument("--mask", type=Path, help="Existing mask to start from.")
    parser.add_argument(
        "--class-map",
        type=Path,
        help="Pre-computed class map (.png or .npy); overrides the configured segmenter.",
    )


def add_preview_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--preview",
        type=Path,
        default=None,
        help="Also write a tinted preview composite to this path.",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mask-studio",
        description="Refine segmentation masks with click-select, brush and lasso tools.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Editor YAML configuration (defaults to MASK_STUDIO_CONFIG_FILE or built-in defaults).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # edit command
    edit_parser = subparsers.add_parser("edit", help="Launch the interactive mask editor.")
    add_shared_session_arguments(edit_parser)
    add_shared_output_arguments(edit_parser)

    # select command
    select_parser = subparsers.add_parser(
        "select",
        help="Headless click-select: toggle the regions under the given points and export the mask.",
    )
    add_shared_session_arguments(select_parser)
    add_preview_argument(select_parser)
    select_parser.add_argument(
        "--click",
        type=parse_point,
        action="append",
        required=True,
        metavar="X,Y",
        help="Click position in image pixels (repeatable).",
    )
    select_parser.add_argument(
        "--refine",
        type=int,
        default=0,
        help="Apply this many refine iterations after selecting (default: 0).",
    )
    add_shared_output_arguments(select_parser)

    # replay command
    replay_parser = subparsers.add_parser(
        "replay",
        help="Run a YAML gesture script against an image and export the resulting mask.",
    )
    add_shared_session_arguments(replay_parser)
    add_preview_argument(replay_parser)
    replay_parser.add_argument("script", type=Path, help="YAML gesture script.")
    add_shared_output_arguments(replay_parser)

    # refine command
    refine_parser = subparsers.add_parser("refine", help="Smooth an existing mask image.")
    refine_parser.add_argument("mask", type=Path, help="Mask image to refine.")
    refine_parser.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="Closing+opening rounds (defaults to the configured value).",
    )
    add_shared_output_arguments(refine_parser)

    # invert command
    invert_parser = subparsers.add_parser("invert", help="Invert an existing mask image.")
    invert_parser.add_argument("mask", type=Path, help="Mask image to invert.")
    add_shared_output_arguments(invert_parser)

    # validate-config command
    validate_parser = subparsers.add_parser(
        "validate-config",
        help="Validate an editor configuration and print a summary.",
    )
    validate_parser.add_argument("path", type=Path, help="Editor YAML configuration.")

    return parser


def _build_session(args: argparse.Namespace, config: EditorConfig) -> EditingSession:
    if args.class_map is not None:
        session = EditingSession(config, ClassMapSegmenter(args.class_map))
    else:
        session = EditingSession.from_config(config)
    image = load_image(args.image)
    initial = load_mask(args.mask) if args.mask else None
    session.load_image(image, mask=initial)
    return session


def _missing_inputs(args: argparse.Namespace) -> bool:
    for label, path in (("Image", args.image), ("Mask", args.mask), ("Class map", args.class_map)):
        if path is not None and not Path(path).exists():
            Logger.error("%s not found: %s", label, path)
            return True
    return False


def _export_session(session: EditingSession, args: argparse.Namespace) -> Path:
    output = args.output or prepare_output_path(args.image.name)
    export_binary_mask(session.mask, output)
    if args.preview is not None:
        export_preview(
            session.image,
            session.mask,
            args.preview,
            session.config.overlay.color,
            session.config.overlay.alpha,
        )
    return output


def select_command(args: argparse.Namespace) -> int:
    if _missing_inputs(args):
        return 2
    try:
        config = load_editor_config(args.config)
        session = _build_session(args, config)
        session.set_tool(Tool.CLICK)
        for x, y in args.click:
            result = session.handle(GestureEvent(GestureKind.ACTIVATE, x, y))
            if result.committed:
                Logger.info("Click (%g, %g): region toggled", x, y)
            else:
                Logger.warning("Click (%g, %g): no selectable object at this point", x, y)
        if args.refine > 0:
            session.refine(args.refine)
        output = _export_session(session, args)
    except Exception as exc:  # pylint: disable=broad-except
        Logger.error("Select failed: %s", exc)
        if Logger.isEnabledFor(logging.DEBUG):
            Logger.exception("Stack trace")
        return 1

    Logger.info("%d selection(s) applied; mask written to %s", session.selection_count, output)
    return 0


def replay_command(args: argparse.Namespace) -> int:
    if _missing_inputs(args):
        return 2
    if not args.script.exists():
        Logger.error("Gesture script not found: %s", args.script)
        return 2
    try:
        config = load_editor_config(args.config)
        steps = load_script(args.script)
        session = _build_session(args, config)
        effective = run_script(session, steps)
        output = _export_session(session, args)
    except Exception as exc:  # pylint: disable=broad-except
        Logger.error("Replay failed: %s", exc)
        if Logger.isEnabledFor(logging.DEBUG):
            Logger.exception("Stack trace")
        return 1

    Logger.info(
        "Replayed %d step(s), %d effective; %d px selected; mask written to %s",
        len(steps),
        effective,
        session.mask.count(),
        output,
    )
    return 0


def refine_command(args: argparse.Namespace) -> int:
    if not args.mask.exists():
        Logger.error("Mask not found: %s", args.mask)
        return 2
    try:
        config = load_editor_config(args.config)
        iterations = args.iterations if args.iterations is not None else config.refine.iterations
        mask = compositor.refine(load_mask(args.mask), iterations)
        output = export_binary_mask(mask, args.output or prepare_output_path(args.mask.name))
    except Exception as exc:  # pylint: disable=broad-except
        Logger.error("Refine failed: %s", exc)
        if Logger.isEnabledFor(logging.DEBUG):
            Logger.exception("Stack trace")
        return 1

    Logger.info("Refined mask (%d iteration(s)) written to %s", iterations, output)
    return 0


def invert_command(args: argparse.Namespace) -> int:
    if not args.mask.exists():
        Logger.error("Mask not found: %s", args.mask)
        return 2
    try:
        mask = compositor.invert(load_mask(args.mask))
        output = export_binary_mask(mask, args.output or prepare_output_path(args.mask.name))
    except Exception as exc:  # pylint: disable=broad-except
        Logger.error("Invert failed: %s", exc)
        if Logger.isEnabledFor(logging.DEBUG):
            Logger.exception("Stack trace")
        return 1

    Logger.info("Inverted mask written to %s", output)
    return 0


def validate_config_command(args: argparse.Namespace) -> int:
    if not args.path.exists():
        Logger.error("Configuration file not found: %s", args.path)
        return 2
    try:
        config = load_editor_config(args.path)
        create_segmenter(config.segmenter.name, config.segmenter.params)
    except Exception as exc:  # pylint: disable=broad-except
        Logger.error("Validation failed: %s", exc)
        if Logger.isEnabledFor(logging.DEBUG):
            Logger.exception("Stack trace")
        return 1

    print(f"Configuration: {args.path}")
    print(summarize_config(config))
    print(f"  Available segmenters: {', '.join(get_registered_segmenters())}")
    Logger.info("Validation succeeded.")
    return 0


def edit_command(args: argparse.Namespace) -> int:
    if _missing_inputs(args):
        return 2
    try:
        config = load_editor_config(args.config)
        session = _build_session(args, config)
    except Exception as exc:  # pylint: disable=broad-except
        Logger.error("Failed to open editor session: %s", exc)
        if Logger.isEnabledFor(logging.DEBUG):
            Logger.exception("Stack trace")
        return 1

    try:
        from .gui import run_editor  # Local import to avoid Qt initialization unless needed
    except Exception as exc:  # noqa: BLE001
        Logger.error("Mask editor UI is unavailable: %s", exc)
        return 1

    return run_editor(session, image_name=args.image.name, output_path=args.output)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.command == "edit":
        return edit_command(args)
    if args.command == "select":
        return select_command(args)
    if args.command == "replay":
        return replay_command(args)
    if args.command == "refine":
        return refine_command(args)
    if args.command == "invert":
        return invert_command(args)
    if args.command == "validate-config":
        return validate_config_command(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
