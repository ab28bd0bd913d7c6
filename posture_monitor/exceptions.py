class PostureMonitorError(Exception):
    """Base class for errors surfaced to callers of the analysis pipeline."""


class EstimatorUnavailable(PostureMonitorError):
    """The pose model could not be loaded, or failed during inference."""


class InvalidImage(PostureMonitorError):
    """The supplied image could not be decoded into a 3-channel raster."""
