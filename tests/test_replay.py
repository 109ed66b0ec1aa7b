import textwrap

import numpy as np
import pytest

from mask_studio.replay import ScriptError, apply_step, load_script, run_script
from mask_studio.segmentation import ClassMapSegmenter
from mask_studio.session import EditingSession


@pytest.fixture
def session(block_class_map, blank_image):
    editing = EditingSession(segmenter=ClassMapSegmenter(block_class_map))
    editing.load_image(blank_image)
    return editing


def test_load_script_reads_steps(tmp_path):
    path = tmp_path / "script.yaml"
    path.write_text(
        textwrap.dedent(
            """
            steps:
              - click: [3, 3]
              - invert
            """
        ),
        encoding="utf-8",
    )

    assert load_script(path) == [{"click": [3, 3]}, "invert"]


def test_load_script_accepts_bare_list(tmp_path):
    path = tmp_path / "script.yaml"
    path.write_text("- undo\n- redo\n", encoding="utf-8")

    assert load_script(path) == ["undo", "redo"]


def test_load_script_without_steps_raises(tmp_path):
    path = tmp_path / "script.yaml"
    path.write_text("name: nothing\n", encoding="utf-8")

    with pytest.raises(ScriptError):
        load_script(path)


def test_run_script_mixes_tools(session):
    steps = [
        {"click": [3, 3]},
        {"tool": "lasso-erase"},
        {"down": [2, 2]},
        {"down": [3, 2]},
        {"down": [3, 3]},
        {"down": [2, 3]},
        "close",
        {"tool": "brush"},
        {"radius": 1},
        {"down": [8, 8]},
        {"up": [8, 8]},
    ]

    effective = run_script(session, steps)

    assert effective == 4
    assert session.mask.count() == 5 + 5  # block remainder plus a radius-1 dot
    assert session.mask.get(4, 4)
    assert not session.mask.get(2, 2)
    assert not session.mask.get(3, 3)
    assert session.mask.get(8, 8)
    assert len(session.history) == 4


def test_undo_and_refine_steps(session):
    run_script(session, [{"click": [3, 3]}, "undo"])
    assert session.mask.is_empty()

    assert apply_step(session, "redo")
    assert apply_step(session, {"refine": 1})
    assert session.mask.count() == 9


def test_unknown_step_raises(session):
    with pytest.raises(ScriptError, match="unknown step"):
        apply_step(session, "explode", 4)


def test_malformed_point_raises(session):
    with pytest.raises(ScriptError, match="Step 2"):
        apply_step(session, {"click": [1]}, 2)


def test_multi_key_step_raises(session):
    with pytest.raises(ScriptError):
        apply_step(session, {"down": [1, 1], "up": [1, 1]})


def test_replay_leaves_buffer_binary(session):
    run_script(session, [{"click": [3, 3]}, "invert"])

    assert set(np.unique(session.binary_buffer())) == {0, 255}


def test_non_finite_points_from_yaml_change_nothing(session, tmp_path):
    path = tmp_path / "script.yaml"
    path.write_text(
        textwrap.dedent(
            """
            steps:
              - tool: brush
              - down: [.inf, 0]
              - move: [.nan, 3]
              - up: [3, 3]
              - click: [-.inf, 3]
            """
        ),
        encoding="utf-8",
    )

    run_script(session, load_script(path))

    assert session.mask.is_empty()
    assert len(session.history) == 2


def test_non_finite_radius_raises(session):
    with pytest.raises(ScriptError, match="invalid radius"):
        apply_step(session, {"radius": float("nan")}, 3)
