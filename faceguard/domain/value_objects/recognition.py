"""Face identification value objects."""
import time
import uuid
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

UNKNOWN_LABEL = "Unknown"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class MatchResult(BaseModel):
    """Outcome of classifying a single descriptor."""
    identified: bool = Field(..., description="Whether the nearest identity is within the threshold")
    name: str = Field(..., description="Matched identity label or 'Unknown'")
    confidence: int = Field(..., description="Match confidence", ge=0, le=100)


class DetectionResult(BaseModel):
    """Identification result for one face in one frame."""
    identified: bool = Field(..., description="Whether the face matched a known identity")
    name: str = Field(..., description="Matched identity label or 'Unknown'")
    confidence: int = Field(..., description="Match confidence", ge=0, le=100)
    box: List[float] = Field(..., description="[ymin, xmin, ymax, xmax] on a 0-1000 scale",
                             min_length=4, max_length=4)
    age: Optional[int] = Field(None, description="Estimated age, when demographics are available")
    gender: Optional[str] = Field(None, description="Estimated gender, when demographics are available")
    expressions: Optional[Dict[str, float]] = Field(None, description="Expression scores, when available")


class RecognitionLog(BaseModel):
    """Entry of the recognition event history."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Log entry identifier")
    timestamp: int = Field(default_factory=now_ms, description="Event time in epoch milliseconds")
    person_name: str = Field(..., description="Identity label or 'Unknown'")
    confidence: int = Field(..., description="Match confidence", ge=0, le=100)
    is_unknown: bool = Field(..., description="True when the face was not identified")
