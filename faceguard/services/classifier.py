"""Nearest-neighbor classification of face descriptors."""
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from faceguard.domain.value_objects.recognition import UNKNOWN_LABEL, MatchResult
from faceguard.services.matcher_cache import MatcherHandle


def accepted_confidence(distance: float, threshold: float) -> int:
    """Confidence of an accepted match, relative to the threshold."""
    score = max(0.0, 1.0 - distance / threshold)
    return _clip(math.floor(score * 100))


def rejected_confidence(distance: float) -> int:
    """Confidence of a rejected match, from the raw distance clipped at 1."""
    score = max(0.0, 1.0 - min(1.0, distance))
    return _clip(math.floor(score * 100))


def _clip(value: int) -> int:
    return int(min(100, max(0, value)))


class Classifier:
    """Euclidean nearest-neighbor lookup against a ``MatcherHandle``.

    The two confidence formulas intentionally use different scales: an
    accepted match reports its distance relative to the threshold, a rejected
    one reports how close the raw distance came to zero.
    """

    def nearest(self, vector: np.ndarray, handle: MatcherHandle) -> Tuple[str, float]:
        """Return ``(label, distance)`` of the closest row.

        Ties resolve to the earliest row in flatten order.
        """
        q = np.asarray(vector, dtype=np.float32).reshape(-1)
        if q.shape[0] != handle.dimension:
            raise ValueError(
                f"Descriptor has {q.shape[0]} values, matcher expects {handle.dimension}"
            )
        diffs = handle.matrix.astype(np.float64) - q.astype(np.float64)
        distances = np.sqrt(np.einsum("ij,ij->i", diffs, diffs))
        best_row = int(np.argmin(distances))
        return handle.labels[int(handle.owners[best_row])], float(distances[best_row])

    def classify(
        self,
        vector: np.ndarray,
        handle: Optional[MatcherHandle],
        threshold: float,
    ) -> MatchResult:
        """Classify one descriptor.

        Args:
            vector: Probe descriptor
            handle: Matcher handle, or None when no identity has a descriptor
            threshold: Maximum accepted distance (must be > 0)

        Returns:
            MatchResult with identity label and confidence in [0, 100]
        """
        if threshold <= 0:
            raise ValueError(f"Threshold must be positive, got {threshold}")
        if handle is None:
            return MatchResult(identified=False, name=UNKNOWN_LABEL, confidence=0)

        label, distance = self.nearest(vector, handle)
        if distance < threshold:
            return MatchResult(
                identified=True,
                name=label,
                confidence=accepted_confidence(distance, threshold),
            )
        return MatchResult(
            identified=False,
            name=UNKNOWN_LABEL,
            confidence=rejected_confidence(distance),
        )

    def classify_batch(
        self,
        vectors: Sequence[np.ndarray],
        handle: Optional[MatcherHandle],
        threshold: float,
    ) -> List[MatchResult]:
        """Classify every descriptor of a frame independently against one handle."""
        return [self.classify(v, handle, threshold) for v in vectors]
