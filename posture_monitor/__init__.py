"""
Posture Monitor
---------------
Scores sitting posture from a single image using detected body keypoints.
"""

from .config import AppConfig, EstimatorSettings, OverlayStyle, PostureThresholds, load_config
from .exceptions import EstimatorUnavailable, InvalidImage, PostureMonitorError
from .models import (
    FeedbackMessage,
    IssueFlags,
    IssueKind,
    Keypoint,
    KeypointName,
    KeypointSet,
    PostureResult,
    ScoreCategory,
    Severity,
)
from .pipeline import AnalysisOutcome, AnalysisStatus, PostureSession
from .pose_estimation import PoseEstimator
from .rule_checker import RuleChecker, evaluate_posture
from .utils import (
    encode_png,
    export_result_json,
    load_image,
    load_image_file,
    render_overlay,
    score_category,
    score_color,
)

__version__ = "0.1.0"
