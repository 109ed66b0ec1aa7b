import cv2
import numpy as np
import pytest

from mask_studio.assets import load_mask
from mask_studio.cli import build_parser, main
from mask_studio.exporters import export_binary_mask

from mask_helpers import masks_from_points


@pytest.fixture
def inputs(tmp_path, block_class_map):
    image_path = tmp_path / "scene.png"
    cv2.imwrite(str(image_path), np.zeros((10, 10, 3), dtype=np.uint8))
    class_map_path = tmp_path / "scene_classes.npy"
    np.save(class_map_path, block_class_map)
    return image_path, class_map_path


def test_select_exports_clicked_region(tmp_path, inputs):
    image_path, class_map_path = inputs
    output = tmp_path / "mask.png"
    preview = tmp_path / "preview.png"

    code = main(
        [
            "select",
            str(image_path),
            "--class-map",
            str(class_map_path),
            "--click",
            "3,3",
            "--output",
            str(output),
            "--preview",
            str(preview),
        ]
    )

    assert code == 0
    mask = load_mask(output)
    assert mask.count() == 9
    assert mask.get(2, 2) and mask.get(4, 4)
    assert preview.exists()


def test_select_click_twice_toggles_off(tmp_path, inputs):
    image_path, class_map_path = inputs
    output = tmp_path / "mask.png"

    code = main(
        ["select", str(image_path), "--class-map", str(class_map_path), "--click", "3,3", "--click", "2,4", "--output", str(output)]
    )

    assert code == 0
    assert load_mask(output).is_empty()


def test_select_defaults_to_output_root(tmp_path, inputs):
    image_path, class_map_path = inputs

    code = main(["select", str(image_path), "--class-map", str(class_map_path), "--click", "3,3"])

    assert code == 0
    written = list((tmp_path / "outputs").glob("mask_scene_*.png"))
    assert len(written) == 1


def test_select_missing_image_returns_2(tmp_path, inputs):
    _, class_map_path = inputs

    code = main(["select", str(tmp_path / "missing.png"), "--class-map", str(class_map_path), "--click", "1,1"])

    assert code == 2


def test_select_with_mismatched_mask_returns_1(tmp_path, inputs):
    image_path, class_map_path = inputs
    wrong = export_binary_mask(masks_from_points(4, 4, []), tmp_path / "small.png")

    code = main(
        ["select", str(image_path), "--class-map", str(class_map_path), "--mask", str(wrong), "--click", "3,3"]
    )

    assert code == 1


def test_click_must_be_a_pair():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["select", "image.png", "--click", "3"])


def test_preview_flag_is_limited_to_headless_exports(capsys):
    with pytest.raises(SystemExit):
        build_parser().parse_args(["edit", "image.png", "--preview", "out.png"])
    assert "unrecognized arguments: --preview" in capsys.readouterr().err

    args = build_parser().parse_args(["select", "image.png", "--click", "3,3", "--preview", "out.png"])
    assert str(args.preview) == "out.png"
    args = build_parser().parse_args(["replay", "image.png", "steps.yaml", "--preview", "out.png"])
    assert str(args.preview) == "out.png"


def test_replay_runs_script(tmp_path, inputs):
    image_path, class_map_path = inputs
    script = tmp_path / "steps.yaml"
    script.write_text("steps:\n  - click: [3, 3]\n  - invert\n", encoding="utf-8")
    output = tmp_path / "mask.png"

    code = main(["replay", str(image_path), str(script), "--class-map", str(class_map_path), "--output", str(output)])

    assert code == 0
    assert load_mask(output).count() == 100 - 9


def test_replay_bad_script_returns_1(tmp_path, inputs):
    image_path, class_map_path = inputs
    script = tmp_path / "steps.yaml"
    script.write_text("steps:\n  - teleport\n", encoding="utf-8")

    code = main(["replay", str(image_path), str(script), "--class-map", str(class_map_path)])

    assert code == 1


def test_refine_removes_speck(tmp_path):
    source = export_binary_mask(masks_from_points(10, 10, [(5, 5)]), tmp_path / "speck.png")
    output = tmp_path / "refined.png"

    code = main(["refine", str(source), "--iterations", "1", "--output", str(output)])

    assert code == 0
    assert load_mask(output).is_empty()


def test_invert_mask_file(tmp_path):
    source = export_binary_mask(masks_from_points(5, 5, [(0, 0)]), tmp_path / "dot.png")
    output = tmp_path / "inverted.png"

    code = main(["invert", str(source), "--output", str(output)])

    assert code == 0
    assert load_mask(output).count() == 24


def test_validate_config_prints_summary(tmp_path, capsys):
    config = tmp_path / "editor.yaml"
    config.write_text("history:\n  capacity: 7\n", encoding="utf-8")

    code = main(["validate-config", str(config)])

    out = capsys.readouterr().out
    assert code == 0
    assert "History: 7 snapshots" in out
    assert "kmeans" in out


def test_validate_config_rejects_unknown_segmenter(tmp_path):
    config = tmp_path / "editor.yaml"
    config.write_text("segmenter:\n  name: nonexistent\n", encoding="utf-8")

    assert main(["validate-config", str(config)]) == 1


def test_validate_config_missing_file_returns_2(tmp_path):
    assert main(["validate-config", str(tmp_path / "nope.yaml")]) == 2
