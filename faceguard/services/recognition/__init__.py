"""Vision engine implementations."""
from .insight_face import InsightFaceEngine

__all__ = ["InsightFaceEngine"]
