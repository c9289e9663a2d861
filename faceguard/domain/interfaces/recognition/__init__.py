from .face_recognition import FaceDetector

__all__ = ["FaceDetector"]
