import logging

import cv2
import streamlit as st

from posture_monitor.config import load_config
from posture_monitor.exceptions import EstimatorUnavailable
from posture_monitor.models import Severity
from posture_monitor.pipeline import AnalysisStatus, PostureSession
from posture_monitor.pose_estimation import PoseEstimator
from posture_monitor.utils import encode_png, score_color

logger = logging.getLogger(__name__)


@st.cache_resource
def load_estimator(_settings):
    """Build the pose estimator once per server process."""
    return PoseEstimator(_settings)


def get_session(config):
    """Return this browser session's PostureSession, or None if the model failed to load."""
    if "posture_session" in st.session_state:
        return st.session_state.posture_session

    with st.spinner("Loading model..."):
        try:
            estimator = load_estimator(config.estimator)
        except EstimatorUnavailable as e:
            logger.error("Model failed to load: %s", e)
            st.session_state.model_error = str(e)
            return None

    session = PostureSession(estimator, config.thresholds, config.overlay)
    st.session_state.posture_session = session
    return session


def analyze_upload(session, state, file_id, data):
    """
    Analyze an upload once. Streamlit reruns the script on every widget
    interaction, so the outcome is kept in `state` keyed by the upload id.
    """
    cached = state.get("last_upload")
    if cached is not None and cached[0] == file_id:
        return cached[1]
    outcome = session.analyze(data)
    state["last_upload"] = (file_id, outcome)
    return outcome


def show_feedback(result):
    for msg in result.messages:
        if msg.severity == Severity.WARNING:
            st.warning(f"{msg.title}: {msg.description}")
        else:
            st.success(msg.title)
        if msg.correction:
            st.text(f"Correction: {msg.correction}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    st.set_page_config(page_title="Posture Monitor", layout="wide")

    st.title("Posture Monitor")
    st.markdown("""
    Upload a photo of yourself sitting at your desk. The app detects your body keypoints,
    checks shoulder, head and hip alignment, and suggests corrections.
    """)

    config = load_config()
    session = get_session(config)

    if session is None:
        st.sidebar.error(f"Model failed: {st.session_state.get('model_error', 'unknown error')}")
        return
    st.sidebar.success("Model ready")

    uploaded_file = st.file_uploader(
        "Upload an image (JPG, PNG)",
        type=["jpg", "jpeg", "png"],
        help="A single person, facing the camera, upper body visible"
    )

    if uploaded_file:
        with st.spinner("Analyzing posture..."):
            outcome = analyze_upload(session, st.session_state, uploaded_file.file_id,
                                     uploaded_file.getvalue())

        if outcome.status == AnalysisStatus.STALE:
            st.info("A newer image is being analyzed.")
            return
        if outcome.status == AnalysisStatus.FAILED:
            if outcome.error_kind == "invalid_image":
                st.error(f"Could not read image: {outcome.error}")
            else:
                st.error(f"Pose detection failed: {outcome.error}")
            return

        result = outcome.result
        col1, col2 = st.columns([2, 1])

        with col1:
            st.image(cv2.cvtColor(outcome.overlay, cv2.COLOR_BGR2RGB), caption="Detected keypoints")
            st.download_button(
                label="Download annotated image",
                data=encode_png(outcome.overlay),
                file_name="posture_overlay.png",
                mime="image/png",
            )

        with col2:
            if result.score is not None:
                st.subheader(f":{score_color(result.score)}[Posture Score: {result.score}/100]")
            show_feedback(result)
            st.download_button(
                label="Download result (JSON)",
                data=result.model_dump_json(indent=2),
                file_name="posture_result.json",
                mime="application/json",
            )

    with st.expander("How to Use"):
        st.markdown("""
        1. Upload a photo taken from the front
        2. Wait for the keypoints to be detected
        3. Review the score and the suggested corrections

        **Tips for Best Results:**
        - Face the camera with shoulders and hips in frame
        - Ensure good lighting
        - Only one person in the picture
        """)

    with st.expander("About"):
        st.markdown("""
        **Technologies Used:**
        - OpenPose (COCO) through OpenCV DNN for keypoint detection
        - OpenCV for the overlay
        - Streamlit for the web interface

        **Limitations:**
        - Thresholds are in pixels and do not account for camera distance or angle
        - Only the first detected person is analyzed
        """)


if __name__ == "__main__":
    main()
