import json

import cv2
import numpy as np
import pytest

from posture_monitor.config import OverlayStyle
from posture_monitor.exceptions import InvalidImage
from posture_monitor.models import IssueFlags, KeypointSet, PostureResult, ScoreCategory
from posture_monitor.rule_checker import RuleChecker
from posture_monitor.utils import (
    encode_png,
    export_result_json,
    load_image,
    load_image_file,
    render_overlay,
    score_category,
    score_color,
)

RED = [0, 0, 255]
LIME = [0, 255, 0]
BLACK = [0, 0, 0]


def shoulder_mid(pose):
    a, b = pose.get("left_shoulder"), pose.get("right_shoulder")
    return int(round((a.y + b.y) / 2)), int(round((a.x + b.x) / 2))


def hip_mid(pose):
    a, b = pose.get("left_hip"), pose.get("right_hip")
    return int(round((a.y + b.y) / 2)), int(round((a.x + b.x) / 2))


def test_canvas_matches_source_size(blank_image, make_pose):
    canvas = render_overlay(blank_image, make_pose())

    assert canvas.shape == blank_image.shape
    assert canvas is not blank_image
    assert not blank_image.any()


def test_background_is_source_image():
    image = np.full((480, 320, 3), 40, dtype=np.uint8)

    canvas = render_overlay(image, KeypointSet())

    assert np.array_equal(canvas, image)


def test_marker_confidence_threshold_is_strict(blank_image):
    pose = KeypointSet.from_mapping({
        "nose": (50.0, 50.0, 0.5),
        "left_eye": (250.0, 50.0, 0.51),
    })

    canvas = render_overlay(blank_image, pose)

    assert canvas[50, 50].tolist() == BLACK
    assert canvas[50, 250].tolist() == RED


def test_connectors_neutral_without_issues(blank_image, make_pose):
    pose = make_pose()

    canvas = render_overlay(blank_image, pose)

    assert canvas[shoulder_mid(pose)].tolist() == LIME
    assert canvas[hip_mid(pose)].tolist() == LIME


@pytest.mark.parametrize("shoulders, hips", [(True, False), (False, True), (True, True)])
def test_connector_colors_follow_evaluation(blank_image, make_pose, shoulders, hips):
    pose = make_pose(shoulders_uneven=shoulders, hips_uneven=hips)
    result = RuleChecker.evaluate(pose)

    canvas = render_overlay(blank_image, pose, result.issues)

    assert canvas[shoulder_mid(pose)].tolist() == (RED if result.issues.shoulders else LIME)
    assert canvas[hip_mid(pose)].tolist() == (RED if result.issues.hips else LIME)


def test_connectors_ignore_confidence(blank_image, make_pose):
    pose = make_pose(confidence=0.1)

    canvas = render_overlay(blank_image, pose, IssueFlags(shoulders=True))

    assert canvas[shoulder_mid(pose)].tolist() == RED
    # no markers at low confidence
    assert canvas[150, 150].tolist() == BLACK


def test_no_connector_for_missing_endpoint(blank_image, make_pose):
    pose = make_pose(omit=("right_hip",))

    canvas = render_overlay(blank_image, pose)

    assert canvas[hip_mid(make_pose())].tolist() == BLACK


def test_custom_style(blank_image):
    pose = KeypointSet.from_mapping({"nose": (100.0, 100.0, 0.3)})
    style = OverlayStyle(marker_confidence=0.2, marker_color=(255, 0, 0))

    canvas = render_overlay(blank_image, pose, style=style)

    assert canvas[100, 100].tolist() == [255, 0, 0]


def test_far_off_canvas_marker_is_harmless():
    image = np.zeros((50, 50, 3), dtype=np.uint8)
    pose = KeypointSet.from_mapping({"nose": (1e20, 10.0, 0.9), "left_eye": (10.0, -1e20, 0.9)})

    canvas = render_overlay(image, pose)

    assert not canvas.any()


def test_connector_with_far_endpoint_is_clamped(blank_image):
    pose = KeypointSet.from_mapping({
        "left_shoulder": (100.0, 200.0, 1.0),
        "right_shoulder": (1e20, 200.0, 1.0),
    })

    canvas = render_overlay(blank_image, pose)

    assert canvas[200, 150].tolist() == LIME
    assert canvas[200, 319].tolist() == LIME


def test_render_rejects_non_image():
    with pytest.raises(InvalidImage):
        render_overlay(np.zeros((10, 10), dtype=np.uint8), KeypointSet())


@pytest.mark.parametrize("score, category, color", [
    (100, ScoreCategory.GOOD, "green"),
    (85, ScoreCategory.GOOD, "green"),
    (84, ScoreCategory.CAUTION, "orange"),
    (70, ScoreCategory.CAUTION, "orange"),
    (69, ScoreCategory.POOR, "red"),
    (40, ScoreCategory.POOR, "red"),
])
def test_score_bands(score, category, color):
    assert score_category(score) == category
    assert score_color(score) == color


def test_load_image_decodes_png(blank_image):
    data = encode_png(blank_image)

    image = load_image(data)

    assert image.shape == blank_image.shape


@pytest.mark.parametrize("data", [b"", b"definitely not an image"])
def test_load_image_rejects_garbage(data):
    with pytest.raises(InvalidImage):
        load_image(data)


def test_load_image_file(tmp_path, blank_image):
    good = tmp_path / "pose.png"
    cv2.imwrite(str(good), blank_image)
    bad = tmp_path / "broken.jpg"
    bad.write_bytes(b"\x00\x01\x02")

    assert load_image_file(str(good)).shape == blank_image.shape
    with pytest.raises(InvalidImage):
        load_image_file(str(bad))


def test_export_result_json(tmp_path, make_pose):
    result = RuleChecker.evaluate(make_pose(head_forward=True))
    path = tmp_path / "result.json"

    export_result_json(result, str(path))

    data = json.loads(path.read_text())
    assert data["score"] == 70
    assert data["issues"] == {"shoulders": False, "head": True, "hips": False}
    assert data["messages"][0]["issue"] == "head"
    assert data["messages"][0]["severity"] == "warning"
    assert PostureResult.model_validate(data) == result
