from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class KeypointName(str, Enum):
    NOSE = "nose"
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    LEFT_EAR = "left_ear"
    RIGHT_EAR = "right_ear"
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    LEFT_ELBOW = "left_elbow"
    RIGHT_ELBOW = "right_elbow"
    LEFT_WRIST = "left_wrist"
    RIGHT_WRIST = "right_wrist"
    LEFT_HIP = "left_hip"
    RIGHT_HIP = "right_hip"
    LEFT_KNEE = "left_knee"
    RIGHT_KNEE = "right_knee"
    LEFT_ANKLE = "left_ankle"
    RIGHT_ANKLE = "right_ankle"


class Keypoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: KeypointName
    x: float = Field(allow_inf_nan=False)  # pixels
    y: float = Field(allow_inf_nan=False)  # pixels
    confidence: float = Field(ge=0.0, le=1.0, allow_inf_nan=False)


class KeypointSet(BaseModel):
    """All keypoints of one detected person, in pixel coordinates. May be empty."""
    model_config = ConfigDict(frozen=True)

    keypoints: Tuple[Keypoint, ...] = ()

    @field_validator("keypoints")
    @classmethod
    def _unique_names(cls, keypoints):
        seen = set()
        for kp in keypoints:
            if kp.name in seen:
                raise ValueError(f"Duplicate keypoint: {kp.name.value}")
            seen.add(kp.name)
        return keypoints

    @classmethod
    def from_mapping(cls, landmarks: Mapping[str, Tuple[float, float, float]]) -> "KeypointSet":
        """Build from {'left_hip': (x, y, confidence), ...}."""
        return cls(keypoints=tuple(
            Keypoint(name=name, x=x, y=y, confidence=conf)
            for name, (x, y, conf) in landmarks.items()
        ))

    def get(self, name) -> Optional[Keypoint]:
        name = KeypointName(name)
        for kp in self.keypoints:
            if kp.name == name:
                return kp
        return None

    def has(self, *names) -> bool:
        return all(self.get(n) is not None for n in names)

    @property
    def is_empty(self) -> bool:
        return not self.keypoints

    def __iter__(self) -> Iterator[Keypoint]:
        return iter(self.keypoints)

    def __len__(self) -> int:
        return len(self.keypoints)


class IssueKind(str, Enum):
    SHOULDERS = "shoulders"
    HEAD = "head"
    HIPS = "hips"


class Severity(str, Enum):
    WARNING = "warning"
    INFO = "info"


class IssueFlags(BaseModel):
    model_config = ConfigDict(frozen=True)

    shoulders: bool = False
    head: bool = False
    hips: bool = False

    def any(self) -> bool:
        return self.shoulders or self.head or self.hips


class FeedbackMessage(BaseModel):
    """
    Plain-text feedback. Fields are kept separate so the presentation layer
    decides how to format them.

    Messages about a detected issue always carry `severity=WARNING` and a
    non-null `issue`. The "No person detected." and "Posture looks good"
    messages carry `severity=INFO` and `issue=None`, so filtering on WARNING
    (or on `issue is not None`) yields exactly the issue messages.
    """
    model_config = ConfigDict(frozen=True)

    issue: Optional[IssueKind] = None
    severity: Severity = Severity.WARNING
    title: str
    description: str = ""
    correction: Optional[str] = None


class PostureResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    person_detected: bool
    score: Optional[int] = None
    issues: IssueFlags = Field(default_factory=IssueFlags)
    messages: Tuple[FeedbackMessage, ...] = ()

    @model_validator(mode="after")
    def _check_score(self):
        if self.person_detected:
            if self.score is None:
                raise ValueError("score is required when a person is detected")
            if not 0 <= self.score <= 100:
                raise ValueError(f"score out of range: {self.score}")
            if not self.messages:
                raise ValueError("at least one message is required when a person is detected")
        elif self.score is not None:
            raise ValueError("score must be empty when no person is detected")
        return self

    def issue_messages(self) -> List[FeedbackMessage]:
        return [m for m in self.messages if m.issue is not None]

    def as_dict(self) -> Dict:
        return self.model_dump(mode="json")


class ScoreCategory(str, Enum):
    GOOD = "good"
    CAUTION = "caution"
    POOR = "poor"
