"""Domain entities package."""
from .face import BoundingBox, Face
from .profile import IdentityProfile

__all__ = ["BoundingBox", "Face", "IdentityProfile"]
