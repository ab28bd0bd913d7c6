import logging
from typing import List, Optional, Tuple

from .config import PostureThresholds
from .models import (
    FeedbackMessage,
    IssueFlags,
    IssueKind,
    KeypointName,
    KeypointSet,
    PostureResult,
    Severity,
)

logger = logging.getLogger(__name__)

NO_PERSON_MESSAGE = FeedbackMessage(severity=Severity.INFO, title="No person detected.")
GOOD_POSTURE_MESSAGE = FeedbackMessage(severity=Severity.INFO, title="Posture looks good - keep it up!")

SHOULDERS_MESSAGE = FeedbackMessage(
    issue=IssueKind.SHOULDERS,
    title="Uneven shoulders",
    description="May cause muscle imbalance.",
    correction="Adjust chair or desk height.",
)
HEAD_MESSAGE = FeedbackMessage(
    issue=IssueKind.HEAD,
    title="Forward head posture",
    description="Increases cervical spine stress.",
    correction="Raise monitor to eye level.",
)
HIPS_MESSAGE = FeedbackMessage(
    issue=IssueKind.HIPS,
    title="Uneven hips",
    description="Possible pelvic tilt.",
    correction="Sit evenly, keep both feet flat.",
)

# (triggered, deduction, message) for a single check
CheckOutcome = Tuple[bool, int, FeedbackMessage]


class RuleChecker:
    """
    Geometric posture rules over a single detected pose.

    Every check is gated on the keypoints it needs: a missing keypoint skips
    the check instead of flagging it. Keypoint confidence is not consulted;
    only the overlay filters by confidence.
    """

    @staticmethod
    def check_shoulders(pose: KeypointSet, thresholds: PostureThresholds) -> Optional[CheckOutcome]:
        """Shoulder levelness: |left.y - right.y| above the threshold."""
        left = pose.get(KeypointName.LEFT_SHOULDER)
        right = pose.get(KeypointName.RIGHT_SHOULDER)
        if left is None or right is None:
            return None
        diff = abs(left.y - right.y)
        triggered = diff > thresholds.shoulder_diff_px
        if triggered:
            logger.debug("Uneven shoulders: diff=%.1fpx", diff)
        return triggered, thresholds.shoulder_deduction, SHOULDERS_MESSAGE

    @staticmethod
    def check_head(pose: KeypointSet, thresholds: PostureThresholds) -> Optional[CheckOutcome]:
        """
        Forward head posture: the nose sits more than `head_offset_px` above
        the shoulder midline (image y grows downwards).
        """
        nose = pose.get(KeypointName.NOSE)
        left = pose.get(KeypointName.LEFT_SHOULDER)
        right = pose.get(KeypointName.RIGHT_SHOULDER)
        if nose is None or left is None or right is None:
            return None
        avg_shoulder_y = (left.y + right.y) / 2
        triggered = nose.y < avg_shoulder_y - thresholds.head_offset_px
        if triggered:
            logger.debug("Forward head: nose.y=%.1f, shoulder midline=%.1f", nose.y, avg_shoulder_y)
        return triggered, thresholds.head_deduction, HEAD_MESSAGE

    @staticmethod
    def check_hips(pose: KeypointSet, thresholds: PostureThresholds) -> Optional[CheckOutcome]:
        left = pose.get(KeypointName.LEFT_HIP)
        right = pose.get(KeypointName.RIGHT_HIP)
        if left is None or right is None:
            return None
        diff = abs(left.y - right.y)
        triggered = diff > thresholds.hip_diff_px
        if triggered:
            logger.debug("Uneven hips: diff=%.1fpx", diff)
        return triggered, thresholds.hip_deduction, HIPS_MESSAGE

    @staticmethod
    def evaluate(pose: KeypointSet, thresholds: Optional[PostureThresholds] = None) -> PostureResult:
        """Main entry point: score a single pose and collect feedback."""
        thresholds = thresholds or PostureThresholds()

        if pose.is_empty:
            return PostureResult(person_detected=False, messages=(NO_PERSON_MESSAGE,))

        checks = [
            ("shoulders", RuleChecker.check_shoulders(pose, thresholds)),
            ("head", RuleChecker.check_head(pose, thresholds)),
            ("hips", RuleChecker.check_hips(pose, thresholds)),
        ]

        flags = {}
        messages: List[FeedbackMessage] = []
        deductions = 0
        for key, outcome in checks:
            if outcome is None:
                continue
            triggered, deduction, message = outcome
            if triggered:
                flags[key] = True
                deductions += deduction
                messages.append(message)

        if not messages:
            messages.append(GOOD_POSTURE_MESSAGE)

        score = max(thresholds.base_score - deductions, thresholds.min_score)
        return PostureResult(
            person_detected=True,
            score=score,
            issues=IssueFlags(**flags),
            messages=tuple(messages),
        )


def evaluate_posture(poses: List[KeypointSet], thresholds: Optional[PostureThresholds] = None) -> PostureResult:
    """Evaluate the first pose candidate; no candidates means no person."""
    pose = poses[0] if poses else KeypointSet()
    return RuleChecker.evaluate(pose, thresholds)
