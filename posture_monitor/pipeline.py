import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

import numpy as np

from .config import OverlayStyle, PostureThresholds
from .exceptions import EstimatorUnavailable, InvalidImage, PostureMonitorError
from .models import KeypointSet, PostureResult, ScoreCategory
from .rule_checker import evaluate_posture
from .utils import ensure_image, load_image, render_overlay, score_category

logger = logging.getLogger(__name__)

ImageInput = Union[bytes, np.ndarray]


class AnalysisStatus(str, Enum):
    OK = "ok"
    STALE = "stale"
    FAILED = "failed"


ERROR_KINDS = [
    (EstimatorUnavailable, "estimator_unavailable"),
    (InvalidImage, "invalid_image"),
]


def error_kind(error: Exception) -> str:
    for cls, kind in ERROR_KINDS:
        if isinstance(error, cls):
            return kind
    return "error"


@dataclass(frozen=True)
class AnalysisOutcome:
    request_id: int
    status: AnalysisStatus
    result: Optional[PostureResult] = None
    overlay: Optional[np.ndarray] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == AnalysisStatus.OK

    @property
    def category(self) -> Optional[ScoreCategory]:
        if self.result is None or self.result.score is None:
            return None
        return score_category(self.result.score)


class PostureSession:
    """
    Runs image analyses and owns the single "current outcome" slot.

    Every submission gets a new request id. A completion is committed only if
    its id is still the latest one, so a slow estimator call for an older
    image can never overwrite the outcome of a newer one.

    `estimator` is any object with `estimate(image) -> List[KeypointSet]`.
    """

    def __init__(self, estimator, thresholds: Optional[PostureThresholds] = None,
                 style: Optional[OverlayStyle] = None):
        self.estimator = estimator
        self.thresholds = thresholds or PostureThresholds()
        self.style = style or OverlayStyle()
        self._latest_request = 0
        self._current: Optional[AnalysisOutcome] = None

    @property
    def current(self) -> Optional[AnalysisOutcome]:
        return self._current

    @property
    def latest_request(self) -> int:
        return self._latest_request

    def begin(self) -> int:
        self._latest_request += 1
        return self._latest_request

    def is_current(self, request_id: int) -> bool:
        return request_id == self._latest_request

    def _stale(self, request_id: int) -> AnalysisOutcome:
        logger.info("Discarding stale result for request %d (latest is %d)",
                    request_id, self._latest_request)
        return AnalysisOutcome(request_id=request_id, status=AnalysisStatus.STALE)

    def _commit(self, outcome: AnalysisOutcome) -> AnalysisOutcome:
        if not self.is_current(outcome.request_id):
            return self._stale(outcome.request_id)
        self._current = outcome
        return outcome

    def complete(self, request_id: int, image: np.ndarray, poses: List[KeypointSet]) -> AnalysisOutcome:
        """Evaluate and render estimator output, committing it if still current."""
        if not self.is_current(request_id):
            return self._stale(request_id)

        result = evaluate_posture(poses, self.thresholds)
        pose = poses[0] if poses else KeypointSet()
        overlay = render_overlay(image, pose, result.issues, self.style)
        return self._commit(AnalysisOutcome(
            request_id=request_id,
            status=AnalysisStatus.OK,
            result=result,
            overlay=overlay,
        ))

    def fail(self, request_id: int, error: PostureMonitorError) -> AnalysisOutcome:
        kind = error_kind(error)
        logger.warning("Analysis %d failed (%s): %s", request_id, kind, error)
        return self._commit(AnalysisOutcome(
            request_id=request_id,
            status=AnalysisStatus.FAILED,
            error=str(error),
            error_kind=kind,
        ))

    @staticmethod
    def _decode(image: ImageInput) -> np.ndarray:
        if isinstance(image, (bytes, bytearray)):
            return load_image(bytes(image))
        return ensure_image(image)

    def _estimate(self, frame: np.ndarray) -> List[KeypointSet]:
        try:
            return self.estimator.estimate(frame)
        except PostureMonitorError:
            raise
        except Exception as e:
            raise EstimatorUnavailable(f"Pose estimator raised {type(e).__name__}: {e}") from e

    def analyze(self, image: ImageInput) -> AnalysisOutcome:
        """Sequential pass: decode, estimate, evaluate, render."""
        request_id = self.begin()
        try:
            frame = self._decode(image)
            poses = self._estimate(frame)
        except PostureMonitorError as e:
            return self.fail(request_id, e)
        return self.complete(request_id, frame, poses)

    async def analyze_async(self, image: ImageInput) -> AnalysisOutcome:
        """
        Like `analyze`, but the estimator call runs in a worker thread. It is
        the only suspension point; staleness is checked once it returns.
        """
        request_id = self.begin()
        try:
            frame = self._decode(image)
            poses = await asyncio.to_thread(self._estimate, frame)
        except PostureMonitorError as e:
            return self.fail(request_id, e)
        return self.complete(request_id, frame, poses)
