import json
from typing import Optional, Tuple

import cv2
import numpy as np

from .config import OverlayStyle
from .exceptions import InvalidImage
from .models import IssueFlags, KeypointName, KeypointSet, PostureResult, ScoreCategory

# Connector pairs and the issue flag that colors each of them
CONNECTORS = [
    (KeypointName.LEFT_SHOULDER, KeypointName.RIGHT_SHOULDER, "shoulders"),
    (KeypointName.LEFT_HIP, KeypointName.RIGHT_HIP, "hips"),
]

SCORE_COLORS = {
    ScoreCategory.GOOD: "green",
    ScoreCategory.CAUTION: "orange",
    ScoreCategory.POOR: "red",
}


def ensure_image(image) -> np.ndarray:
    """Check that `image` is a non-empty H x W x 3 array."""
    if not isinstance(image, np.ndarray) or image.ndim != 3 or image.shape[2] != 3 or image.size == 0:
        shape = getattr(image, "shape", None)
        raise InvalidImage(f"Expected a non-empty HxWx3 image, got {type(image).__name__} with shape {shape}")
    return image


def load_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes (PNG, JPEG, ...) into a BGR array."""
    if not data:
        raise InvalidImage("Empty image data")
    buf = np.frombuffer(data, dtype=np.uint8)
    try:
        image = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise InvalidImage(f"Could not decode image: {e}") from e
    if image is None:
        raise InvalidImage("Could not decode image")
    return image


def load_image_file(path: str) -> np.ndarray:
    image = cv2.imread(path, cv2.IMREAD_COLOR)
    if image is None:
        raise InvalidImage(f"Could not read image: {path}")
    return image


# OpenCV drawing takes int32 coordinates; anything further out is off-canvas anyway
COORD_LIMIT = 1 << 15


def _point(kp) -> Tuple[int, int]:
    x = min(max(kp.x, -COORD_LIMIT), COORD_LIMIT)
    y = min(max(kp.y, -COORD_LIMIT), COORD_LIMIT)
    return int(round(x)), int(round(y))


def render_overlay(image: np.ndarray, pose: KeypointSet, issues: Optional[IssueFlags] = None,
                   style: Optional[OverlayStyle] = None) -> np.ndarray:
    """
    Draw keypoint markers and the shoulder/hip connectors on a copy of `image`.

    Markers are drawn only for keypoints above the style's confidence
    threshold. Connectors are drawn whenever both endpoints exist, in the
    alert color if the matching issue is flagged. `issues=None` renders a
    neutral skeleton.
    """
    image = ensure_image(image)
    issues = issues or IssueFlags()
    style = style or OverlayStyle()

    canvas = image.copy()

    for kp in pose:
        if kp.confidence > style.marker_confidence:
            cv2.circle(canvas, _point(kp), style.marker_radius, style.marker_color, thickness=-1)

    for first, second, flag in CONNECTORS:
        a = pose.get(first)
        b = pose.get(second)
        if a is None or b is None:
            continue
        color = style.alert_color if getattr(issues, flag) else style.normal_color
        cv2.line(canvas, _point(a), _point(b), color, style.line_thickness)

    return canvas


def score_category(score: int) -> ScoreCategory:
    """Severity band of a posture score, for display only."""
    if score >= 85:
        return ScoreCategory.GOOD
    if score >= 70:
        return ScoreCategory.CAUTION
    return ScoreCategory.POOR


def score_color(score: int) -> str:
    return SCORE_COLORS[score_category(score)]


def encode_png(canvas: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", canvas)
    if not ok:
        raise InvalidImage("Could not encode overlay as PNG")
    return buf.tobytes()


def export_result_json(result: PostureResult, path: str) -> None:
    """Export PostureResult information to a JSON file."""
    with open(path, "w") as f:
        json.dump(result.as_dict(), f, indent=2)
