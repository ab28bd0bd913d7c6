import json
import os
from pathlib import Path
from typing import Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

CONFIG_ENV_VAR = "POSTURE_MONITOR_CONFIG"
MODEL_DIR_ENV_VAR = "POSTURE_MONITOR_MODEL_DIR"

# BGR, as consumed by OpenCV drawing calls
RED = (0, 0, 255)
LIME = (0, 255, 0)

Color = Tuple[int, int, int]


class PostureThresholds(BaseModel):
    """Pixel thresholds and point deductions for the posture checks."""
    model_config = ConfigDict(frozen=True)

    shoulder_diff_px: float = Field(30.0, ge=0.0)
    head_offset_px: float = Field(80.0, ge=0.0)
    hip_diff_px: float = Field(30.0, ge=0.0)

    shoulder_deduction: int = Field(20, ge=0)
    head_deduction: int = Field(30, ge=0)
    hip_deduction: int = Field(20, ge=0)

    base_score: int = Field(100, ge=0, le=100)
    min_score: int = Field(40, ge=0, le=100)

    @model_validator(mode="after")
    def _check_score_range(self):
        if self.min_score > self.base_score:
            raise ValueError(f"min_score ({self.min_score}) exceeds base_score ({self.base_score})")
        return self


class OverlayStyle(BaseModel):
    model_config = ConfigDict(frozen=True)

    marker_confidence: float = Field(0.5, ge=0.0, le=1.0)
    marker_radius: int = Field(5, ge=0)
    marker_color: Color = RED
    line_thickness: int = Field(3, ge=1, le=50)
    alert_color: Color = RED
    normal_color: Color = LIME


def _default_model_dir() -> str:
    return os.environ.get(MODEL_DIR_ENV_VAR) or os.path.join(os.path.dirname(__file__), 'models')


class EstimatorSettings(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_dir: str = Field(default_factory=_default_model_dir)
    download: bool = True
    input_size: int = 368
    # Heatmap maxima at or below this are treated as "not detected"
    detection_threshold: float = Field(0.1, ge=0.0, le=1.0)


class AppConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    thresholds: PostureThresholds = Field(default_factory=PostureThresholds)
    overlay: OverlayStyle = Field(default_factory=OverlayStyle)
    estimator: EstimatorSettings = Field(default_factory=EstimatorSettings)


def load_config(path: Optional[Union[str, Path]] = None) -> AppConfig:
    """
    Load configuration from a JSON file.

    The path defaults to $POSTURE_MONITOR_CONFIG. Missing sections fall back to
    defaults, and no file at all yields the default configuration.
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path or not os.path.exists(path):
        return AppConfig()
    with open(path, "r") as f:
        return AppConfig.model_validate(json.load(f))
