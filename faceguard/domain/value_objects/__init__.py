"""Value objects package."""
from .recognition import UNKNOWN_LABEL, DetectionResult, MatchResult, RecognitionLog

__all__ = ["UNKNOWN_LABEL", "DetectionResult", "MatchResult", "RecognitionLog"]
