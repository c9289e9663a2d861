"""Cached nearest-neighbor index derived from the descriptor store."""
from dataclasses import dataclass, field
from typing import Hashable, List, Optional, Sequence

import numpy as np

from faceguard.core.config import settings
from faceguard.core.logging import get_logger
from faceguard.domain.entities.profile import IdentityProfile

logger = get_logger(__name__)

STALENESS_COUNT = "count"
STALENESS_PROFILES = "profiles"


@dataclass
class MatcherHandle:
    """Flattened, labeled descriptor matrix used for nearest-neighbor search.

    Row ``i`` of ``matrix`` belongs to ``labels[owners[i]]``. Rows follow the
    profile order of the build, then each profile's descriptor order.
    """
    labels: List[str]
    matrix: np.ndarray  # (N, D) float32
    owners: np.ndarray  # (N,) int32, row -> label index
    built_threshold: float
    descriptor_count: int = field(init=False)

    def __post_init__(self) -> None:
        self.descriptor_count = int(self.matrix.shape[0])

    @property
    def dimension(self) -> int:
        return int(self.matrix.shape[1])


class MatcherCache:
    """Memoizes a ``MatcherHandle`` over the current profile collection.

    With the default ``"count"`` staleness key the handle is rebuilt only when
    the total number of descriptors differs from the last build. Edits that
    keep the total unchanged (e.g. deleting one identity's two descriptors and
    adding two to another) reuse the previous handle until the count moves or
    ``invalidate()`` is called. The ``"profiles"`` key also tracks each
    profile's id, name and descriptor count.

    The threshold is not part of the key; it is recorded on the handle only
    for diagnostics.
    """

    def __init__(self, staleness: Optional[str] = None) -> None:
        self.staleness = staleness or settings.MATCHER_STALENESS
        if self.staleness not in (STALENESS_COUNT, STALENESS_PROFILES):
            raise ValueError(f"Unknown matcher staleness key: {self.staleness}")
        self._handle: Optional[MatcherHandle] = None
        self._key: Optional[Hashable] = None
        self._built = False
        self.build_count = 0

    @property
    def handle(self) -> Optional[MatcherHandle]:
        return self._handle

    def invalidate(self) -> None:
        """Force the next ``get_or_build`` call to rebuild."""
        self._built = False
        self._key = None

    def _staleness_key(self, profiles: Sequence[IdentityProfile]) -> Hashable:
        total = sum(len(p.descriptors) for p in profiles)
        if self.staleness == STALENESS_COUNT:
            return total
        return (total, tuple((p.id, p.name, len(p.descriptors)) for p in profiles))

    def get_or_build(
        self,
        profiles: Sequence[IdentityProfile],
        threshold: float,
    ) -> Optional[MatcherHandle]:
        """Return the cached handle, rebuilding it if the store changed.

        Args:
            profiles: Current profile collection (read only)
            threshold: Matching threshold in effect for this call

        Returns:
            The matcher handle, or None when no profile has a descriptor
        """
        key = self._staleness_key(profiles)
        if self._built and key == self._key:
            return self._handle

        self._handle = self._build(profiles, threshold)
        self._key = key
        self._built = True
        self.build_count += 1
        logger.debug(
            "Rebuilt matcher",
            identities=len(self._handle.labels) if self._handle else 0,
            descriptors=self._handle.descriptor_count if self._handle else 0,
            builds=self.build_count,
        )
        return self._handle

    def _build(
        self,
        profiles: Sequence[IdentityProfile],
        threshold: float,
    ) -> Optional[MatcherHandle]:
        labels: List[str] = []
        mats: List[np.ndarray] = []
        owners: List[np.ndarray] = []

        for profile in profiles:
            if not profile.descriptors:
                continue
            mat = np.stack(
                [np.asarray(d, dtype=np.float32).reshape(-1) for d in profile.descriptors],
                axis=0,
            )
            labels.append(profile.name)
            mats.append(mat)
            owners.append(np.full((mat.shape[0],), len(labels) - 1, dtype=np.int32))

        if not mats:
            return None

        return MatcherHandle(
            labels=labels,
            matrix=np.ascontiguousarray(np.concatenate(mats, axis=0)),
            owners=np.concatenate(owners, axis=0),
            built_threshold=float(threshold),
        )
