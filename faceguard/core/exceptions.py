"""Custom exceptions for the face identification service."""
from typing import Optional


class FaceGuardError(Exception):
    """Base exception for face identification operations."""

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize face identification error.

        Args:
            message: Error description
            details: Additional error context
        """
        super().__init__(message)
        self.details = details or {}


class ModelAcquisitionFailure(FaceGuardError):
    """Raised when every model source failed for the critical tier."""
    pass


class OptionalFeatureUnavailable(FaceGuardError):
    """Raised when the optional (demographics) model tier cannot be loaded."""
    pass


class FrameClassificationError(FaceGuardError):
    """Raised when a single frame cannot be processed."""
    pass


class InvalidSampleOperation(FaceGuardError):
    """Raised when a descriptor store mutation is rejected."""
    pass


class ProfileNotFoundError(FaceGuardError):
    """Raised when a profile id is not present in the descriptor store."""
    pass


class InvalidImageError(FaceGuardError):
    """Raised when the provided image is invalid or cannot be processed."""
    pass


class ServiceNotInitializedError(FaceGuardError):
    """Raised when a service is requested before the container is initialized."""
    pass
