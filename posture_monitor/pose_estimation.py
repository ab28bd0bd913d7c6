import logging
import os
import urllib.request
from typing import List, Optional

import cv2
import numpy as np

from .config import EstimatorSettings
from .exceptions import EstimatorUnavailable
from .models import Keypoint, KeypointName, KeypointSet
from .utils import ensure_image

logger = logging.getLogger(__name__)

PROTOTXT_URL = 'https://raw.githubusercontent.com/CMU-Perceptual-Computing-Lab/openpose/master/models/pose/coco/pose_deploy_linevec.prototxt'
WEIGHTS_URL = 'http://posefs1.perception.cs.cmu.edu/OpenPose/models/pose/coco/pose_iter_440000.caffemodel'

# Heatmap channel of each keypoint in the OpenPose COCO output. Channel 1
# (neck) has no counterpart in the keypoint vocabulary and is skipped.
COCO_INDICES = {
    KeypointName.NOSE: 0,
    KeypointName.RIGHT_SHOULDER: 2,
    KeypointName.RIGHT_ELBOW: 3,
    KeypointName.RIGHT_WRIST: 4,
    KeypointName.LEFT_SHOULDER: 5,
    KeypointName.LEFT_ELBOW: 6,
    KeypointName.LEFT_WRIST: 7,
    KeypointName.RIGHT_HIP: 8,
    KeypointName.RIGHT_KNEE: 9,
    KeypointName.RIGHT_ANKLE: 10,
    KeypointName.LEFT_HIP: 11,
    KeypointName.LEFT_KNEE: 12,
    KeypointName.LEFT_ANKLE: 13,
    KeypointName.RIGHT_EYE: 14,
    KeypointName.LEFT_EYE: 15,
    KeypointName.RIGHT_EAR: 16,
    KeypointName.LEFT_EAR: 17,
}


class PoseEstimator:
    """
    Single-person keypoint detector backed by the OpenPose COCO Caffe model.

    Construct once and pass the instance to whatever runs the analysis.
    Construction fails with EstimatorUnavailable if the model cannot be
    fetched or loaded, so a broken detector is never used.
    """

    def __init__(self, settings: Optional[EstimatorSettings] = None):
        self.settings = settings or EstimatorSettings()
        self.model_folder = self.settings.model_dir
        self.prototxt_path = os.path.join(self.model_folder, 'pose_deploy_linevec.prototxt')
        self.weights_path = os.path.join(self.model_folder, 'pose_iter_440000.caffemodel')

        self._ensure_file(self.prototxt_path, PROTOTXT_URL)
        self._ensure_file(self.weights_path, WEIGHTS_URL)

        try:
            self.net = cv2.dnn.readNetFromCaffe(self.prototxt_path, self.weights_path)
        except Exception as e:
            # Includes AttributeError on OpenCV builds without the Caffe importer
            raise EstimatorUnavailable(f"Failed to load pose model: {e}") from e
        logger.info("Pose model loaded from %s", self.model_folder)

    def _ensure_file(self, path: str, url: str) -> None:
        if os.path.exists(path):
            return
        if not self.settings.download:
            raise EstimatorUnavailable(f"Model file missing and download disabled: {path}")
        try:
            os.makedirs(self.model_folder, exist_ok=True)
            logger.info("Downloading %s", url)
            urllib.request.urlretrieve(url, path)
        except OSError as e:
            # Leave no partial file behind for the next attempt
            if os.path.exists(path):
                os.remove(path)
            raise EstimatorUnavailable(f"Failed to download {url}: {e}") from e

    def estimate(self, image: np.ndarray) -> List[KeypointSet]:
        """
        Detect keypoints in a BGR image.

        Returns a list of pose candidates in pixel coordinates: one candidate,
        or an empty list when no keypoint clears the detection threshold.
        """
        image = ensure_image(image)
        frame_height, frame_width = image.shape[:2]
        size = self.settings.input_size

        try:
            blob = cv2.dnn.blobFromImage(image, 1.0 / 255, (size, size), (0, 0, 0), swapRB=False, crop=False)
            self.net.setInput(blob)
            output = self.net.forward()
        except cv2.error as e:
            raise EstimatorUnavailable(f"Pose inference failed: {e}") from e

        pose = self.keypoints_from_heatmaps(
            output, frame_width, frame_height, self.settings.detection_threshold
        )
        logger.debug("Detected %d keypoints", len(pose))
        if pose.is_empty:
            return []
        return [pose]

    @staticmethod
    def keypoints_from_heatmaps(output: np.ndarray, frame_width: int, frame_height: int,
                                threshold: float = 0.1) -> KeypointSet:
        """Take the global maximum of each keypoint heatmap, scaled to the frame."""
        H = output.shape[2]
        W = output.shape[3]

        keypoints = []
        for name, idx in COCO_INDICES.items():
            prob_map = np.ascontiguousarray(output[0, idx, :, :], dtype=np.float32)
            _, prob, _, point = cv2.minMaxLoc(prob_map)

            if prob > threshold:
                keypoints.append(Keypoint(
                    name=name,
                    x=(frame_width * point[0]) / W,
                    y=(frame_height * point[1]) / H,
                    confidence=float(min(max(prob, 0.0), 1.0)),
                ))

        return KeypointSet(keypoints=tuple(keypoints))
