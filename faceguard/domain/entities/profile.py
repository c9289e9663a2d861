"""Identity profile entity."""
from typing import Any, Dict, List

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator


class IdentityProfile(BaseModel):
    """A registered person and the descriptors learned for them.

    Descriptors are kept in insertion order. ``images`` holds the encoded
    sample images (data URLs) paired by index with the descriptors; a profile
    registered without a usable face may carry an image but no descriptor.
    """
    id: str = Field(..., description="Opaque profile identifier")
    name: str = Field(..., description="Display name used as the match label")
    images: List[str] = Field(default_factory=list, description="Encoded sample images")
    created_at: int = Field(..., alias="createdAt", description="Creation time in epoch milliseconds")
    descriptors: List[np.ndarray] = Field(default_factory=list, description="Feature vectors")

    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    @field_validator('descriptors', mode='before')
    @classmethod
    def validate_descriptors(cls, v: Any) -> List[np.ndarray]:
        """Convert descriptor lists to flat float32 arrays."""
        if v is None:
            return []
        return [np.asarray(d, dtype=np.float32).reshape(-1) for d in v]

    @property
    def descriptor_count(self) -> int:
        return len(self.descriptors)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "IdentityProfile":
        """Create a profile from its persisted record shape."""
        return cls.model_validate(record)

    def to_record(self) -> Dict[str, Any]:
        """Return the persisted record shape of this profile.

        Returns:
            Dict with ``id``, ``name``, ``images``, ``createdAt`` (epoch ms)
            and ``descriptors`` (lists of floats).
        """
        return {
            "id": self.id,
            "name": self.name,
            "images": list(self.images),
            "createdAt": int(self.created_at),
            "descriptors": [d.astype(float).tolist() for d in self.descriptors],
        }
