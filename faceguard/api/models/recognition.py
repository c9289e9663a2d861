"""API specific recognition and profile models."""
from typing import List, Optional

from pydantic import BaseModel, Field

from faceguard.domain.entities.profile import IdentityProfile
from faceguard.domain.value_objects.recognition import DetectionResult, RecognitionLog

# Box used when a client classifies descriptors without detection boxes
EMPTY_BOX = [0.0, 0.0, 0.0, 0.0]


class FaceDescriptorInput(BaseModel):
    """One face of a client-side detection: its descriptor and optional box."""
    descriptor: List[float] = Field(..., description="Face descriptor", min_length=1)
    box: Optional[List[float]] = Field(
        None,
        description="[ymin, xmin, ymax, xmax] on a 0-1000 scale",
        min_length=4, max_length=4,
    )


class ClassifyRequest(BaseModel):
    """Request model for the /recognition/classify endpoint."""
    faces: List[FaceDescriptorInput] = Field(..., description="Faces of one frame")
    threshold: Optional[float] = Field(
        None, description="Matching threshold override", gt=0
    )


class FrameRequest(BaseModel):
    """Request model for the /recognition/frame endpoint."""
    image: str = Field(..., description="Frame as a data URL or base64 string", min_length=1)
    threshold: Optional[float] = Field(
        None, description="Matching threshold override", gt=0
    )


class DetectionsResponse(BaseModel):
    """Identification results of one frame."""
    detections: List[DetectionResult] = Field(..., description="One result per face")
    logged: List[RecognitionLog] = Field(
        default_factory=list, description="Log entries admitted for this frame"
    )


class ThresholdRequest(BaseModel):
    threshold: float = Field(..., description="Maximum accepted distance", gt=0)


class StatusResponse(BaseModel):
    """Model and matcher status."""
    state: str = Field(..., description="Loader state")
    ready: bool = Field(..., description="Whether the critical models are loaded")
    demographics: bool = Field(..., description="Whether the optional models are loaded")
    active_source: Optional[str] = Field(None, description="Source the models came from")
    profiles: int = Field(..., description="Number of registered profiles")
    descriptors: int = Field(..., description="Total number of descriptors")
    threshold: float = Field(..., description="Default matching threshold")


class ProfileCreateRequest(BaseModel):
    """Request model for registering a profile."""
    name: str = Field(..., description="Display name", min_length=1, max_length=200)
    image: Optional[str] = Field(None, description="Sample image as a data URL")
    descriptor: Optional[List[float]] = Field(None, description="Precomputed descriptor")


class SampleRequest(BaseModel):
    """Request model for adding a sample to a profile."""
    image: Optional[str] = Field(None, description="Sample image as a data URL")
    descriptor: Optional[List[float]] = Field(None, description="Precomputed descriptor")


class ProfileSummary(BaseModel):
    """API view of a profile, without its raw descriptors."""
    id: str
    name: str
    created_at: int = Field(..., description="Creation time in epoch milliseconds")
    descriptor_count: int
    image_count: int

    @classmethod
    def from_profile(cls, profile: IdentityProfile) -> "ProfileSummary":
        return cls(
            id=profile.id,
            name=profile.name,
            created_at=profile.created_at,
            descriptor_count=profile.descriptor_count,
            image_count=len(profile.images),
        )
