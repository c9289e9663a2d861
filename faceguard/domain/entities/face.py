"""Core face domain entities."""
from typing import Dict, List, Optional, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Boxes are reported on a 0-1000 scale independent of the frame resolution
BOX_SCALE = 1000.0
FALLBACK_FRAME_SIZE = (640, 480)


class BoundingBox(BaseModel):
    """Face bounding box on a 0-1000 normalized scale."""
    ymin: float = Field(..., description="Top edge of the bounding box")
    xmin: float = Field(..., description="Left edge of the bounding box")
    ymax: float = Field(..., description="Bottom edge of the bounding box")
    xmax: float = Field(..., description="Right edge of the bounding box")

    @classmethod
    def from_pixels(
        cls,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        frame_width: Optional[int],
        frame_height: Optional[int],
    ) -> "BoundingBox":
        """Normalize a pixel-space xyxy box to the 0-1000 scale.

        Frames with unknown dimensions are assumed to be 640x480.
        """
        width = frame_width or FALLBACK_FRAME_SIZE[0]
        height = frame_height or FALLBACK_FRAME_SIZE[1]
        scale_x = BOX_SCALE / width
        scale_y = BOX_SCALE / height
        return cls(
            ymin=float(y1 * scale_y),
            xmin=float(x1 * scale_x),
            ymax=float(y2 * scale_y),
            xmax=float(x2 * scale_x),
        )

    def as_list(self) -> List[float]:
        """Return the box as ``[ymin, xmin, ymax, xmax]``."""
        return [self.ymin, self.xmin, self.ymax, self.xmax]


class Face(BaseModel):
    """Face found by a detector, with its descriptor and optional attributes."""
    confidence: float = Field(..., description="Confidence score of the detection (0-1)")
    bounding_box: BoundingBox = Field(..., description="Bounding box coordinates")
    embedding: Optional[np.ndarray] = Field(None, description="Face descriptor vector")
    age: Optional[int] = Field(None, description="Estimated age")
    gender: Optional[str] = Field(None, description="Estimated gender")
    expressions: Optional[Dict[str, float]] = Field(None, description="Expression scores")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator('embedding', mode='before')
    @classmethod
    def validate_embedding(cls, v: Optional[Union[np.ndarray, list]]) -> Optional[np.ndarray]:
        """Validate and convert embedding to a flat float32 array."""
        if v is None:
            return None
        return np.asarray(v, dtype=np.float32).reshape(-1)
