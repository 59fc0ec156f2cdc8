from .tracker import BuildTracker, TrackingHandle, TrackingOutcome, TrackingResult

__all__ = [
    "BuildTracker",
    "TrackingHandle",
    "TrackingOutcome",
    "TrackingResult",
]
