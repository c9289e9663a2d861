"""Service interfaces package."""
from .models import ModelSource
from .recognition import FaceDetector

__all__ = ["FaceDetector", "ModelSource"]
