"""In-memory descriptor store holding the registered identity profiles."""
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
from pydantic import ValidationError

from faceguard.core.config import settings
from faceguard.core.exceptions import InvalidSampleOperation, ProfileNotFoundError
from faceguard.core.logging import get_logger
from faceguard.domain.entities.profile import IdentityProfile
from faceguard.domain.value_objects.recognition import now_ms

logger = get_logger(__name__)

Vector = Union[np.ndarray, Sequence[float]]


class DescriptorStore:
    """Caller-owned collection of identity profiles.

    Mutations only append to or remove from a profile's ordered descriptor
    list. Every accepted mutation changes the total descriptor count, which is
    the signal the matcher cache watches. Rejected operations raise and leave
    the store untouched.

    Example:
        ```python
        store = DescriptorStore(dimension=128)
        profile_id = store.create_identity("Alice", initial_vector=vector)
        store.append_sample(profile_id, another_vector)
        store.remove_sample(profile_id, 0)
        ```
    """

    def __init__(self, dimension: Optional[int] = None) -> None:
        """Initialize an empty store.

        Args:
            dimension: Required length of every descriptor
                (defaults to ``settings.DESCRIPTOR_DIM``)
        """
        self.dimension = int(dimension or settings.DESCRIPTOR_DIM)
        self._profiles: Dict[str, IdentityProfile] = {}

    @property
    def profiles(self) -> List[IdentityProfile]:
        """Profiles in registration order."""
        return list(self._profiles.values())

    @property
    def total_descriptors(self) -> int:
        return sum(len(p.descriptors) for p in self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)

    def get(self, profile_id: str) -> IdentityProfile:
        """Return the profile with the given id.

        Raises:
            ProfileNotFoundError: If no such profile exists
        """
        profile = self._profiles.get(profile_id)
        if profile is None:
            raise ProfileNotFoundError(
                f"Profile not found: {profile_id}", details={"profile_id": profile_id}
            )
        return profile

    def find_by_name(self, name: str) -> Optional[IdentityProfile]:
        """Return the first profile registered under ``name``, if any."""
        for profile in self._profiles.values():
            if profile.name == name:
                return profile
        return None

    def validate_vector(self, vector: Vector) -> np.ndarray:
        """Check a descriptor against the store's dimensionality.

        Returns:
            The descriptor as a flat float32 array

        Raises:
            InvalidSampleOperation: If the vector has the wrong length or non-finite values
        """
        try:
            arr = np.asarray(vector, dtype=np.float32).reshape(-1)
        except (TypeError, ValueError) as e:
            raise InvalidSampleOperation(f"Descriptor is not numeric: {e}") from e
        if arr.shape[0] != self.dimension:
            raise InvalidSampleOperation(
                f"Descriptor has {arr.shape[0]} values, expected {self.dimension}",
                details={"length": int(arr.shape[0]), "expected": self.dimension},
            )
        if not np.all(np.isfinite(arr)):
            raise InvalidSampleOperation("Descriptor contains non-finite values")
        return arr

    def create_identity(
        self,
        name: str,
        initial_vector: Optional[Vector] = None,
        image: Optional[str] = None,
    ) -> str:
        """Register a new identity.

        Args:
            name: Display name, used as the match label
            initial_vector: Optional first descriptor
            image: Optional encoded sample image

        Returns:
            The new profile id
        """
        if not name or not name.strip():
            raise InvalidSampleOperation("Profile name must not be empty")
        descriptors = [] if initial_vector is None else [self.validate_vector(initial_vector)]
        profile = IdentityProfile(
            id=str(uuid.uuid4()),
            name=name.strip(),
            images=[image] if image else [],
            created_at=now_ms(),
            descriptors=descriptors,
        )
        self._profiles[profile.id] = profile
        logger.info(
            "Registered identity",
            profile_id=profile.id,
            name=profile.name,
            descriptors=len(descriptors),
        )
        return profile.id

    def append_sample(self, profile_id: str, vector: Vector, image: Optional[str] = None) -> int:
        """Append a descriptor (and its image) to a profile.

        Returns:
            The profile's descriptor count after the append
        """
        profile = self.get(profile_id)
        arr = self.validate_vector(vector)
        profile.descriptors.append(arr)
        if image:
            profile.images.append(image)
        logger.debug(
            "Appended sample",
            profile_id=profile_id,
            descriptors=len(profile.descriptors),
        )
        return len(profile.descriptors)

    def remove_sample(self, profile_id: str, index: int) -> None:
        """Remove the descriptor at ``index`` and the image paired with it.

        Negative indexes are out of range; there is no wrap-around.

        Raises:
            InvalidSampleOperation: If ``index`` is outside ``[0, descriptor_count)``
        """
        profile = self.get(profile_id)
        count = len(profile.descriptors)
        if not isinstance(index, int) or isinstance(index, bool) or index < 0 or index >= count:
            raise InvalidSampleOperation(
                f"Sample index {index} out of range for profile with {count} descriptors",
                details={"profile_id": profile_id, "index": index, "count": count},
            )
        del profile.descriptors[index]
        if index < len(profile.images):
            del profile.images[index]
        logger.debug(
            "Removed sample",
            profile_id=profile_id,
            index=index,
            descriptors=len(profile.descriptors),
        )

    def delete_identity(self, profile_id: str) -> None:
        """Delete a profile and all of its descriptors."""
        profile = self.get(profile_id)
        del self._profiles[profile_id]
        logger.info("Deleted identity", profile_id=profile_id, name=profile.name)

    def load_records(self, records: Iterable[Dict[str, Any]]) -> int:
        """Replace the store contents with persisted profile records.

        Every record is validated before anything is replaced.

        Returns:
            Number of profiles loaded
        """
        loaded: Dict[str, IdentityProfile] = {}
        for record in records:
            try:
                profile = IdentityProfile.from_record(record)
            except ValidationError as e:
                raise InvalidSampleOperation(f"Malformed profile record: {e}") from e
            profile.descriptors = [self.validate_vector(d) for d in profile.descriptors]
            loaded[profile.id] = profile
        self._profiles = loaded
        logger.info(
            "Loaded profile records",
            profiles=len(loaded),
            descriptors=self.total_descriptors,
        )
        return len(loaded)

    def to_records(self) -> List[Dict[str, Any]]:
        """Export every profile in its persisted record shape."""
        return [profile.to_record() for profile in self._profiles.values()]
