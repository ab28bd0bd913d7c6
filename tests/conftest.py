import numpy as np
import pytest

from posture_monitor.models import KeypointSet


def build_pose(shoulders_uneven=False, head_forward=False, hips_uneven=False,
               confidence=1.0, omit=()):
    """Front-facing pose whose keypoints trip exactly the requested checks."""
    landmarks = {
        "nose": (150.0, 100.0 if head_forward else 150.0, confidence),
        "left_shoulder": (100.0, 200.0, confidence),
        "right_shoulder": (200.0, 240.0 if shoulders_uneven else 200.0, confidence),
        "left_hip": (110.0, 400.0, confidence),
        "right_hip": (190.0, 440.0 if hips_uneven else 400.0, confidence),
    }
    for name in omit:
        landmarks.pop(name)
    return KeypointSet.from_mapping(landmarks)


@pytest.fixture
def make_pose():
    return build_pose


@pytest.fixture
def blank_image():
    return np.zeros((480, 320, 3), dtype=np.uint8)


class FakeEstimator:
    """Returns canned poses and records every frame it was given."""

    def __init__(self, poses=None, error=None):
        self.poses = poses if poses is not None else []
        self.error = error
        self.calls = []

    def estimate(self, image):
        self.calls.append(image)
        if self.error is not None:
            raise self.error
        return list(self.poses)


@pytest.fixture
def fake_estimator():
    return FakeEstimator
