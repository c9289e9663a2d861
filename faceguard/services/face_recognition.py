"""Frame-level face identification service."""
from typing import List, Optional, Sequence

import numpy as np

from faceguard.core.config import settings
from faceguard.core.exceptions import FrameClassificationError
from faceguard.core.logging import get_logger
from faceguard.domain.entities.face import Face
from faceguard.domain.entities.profile import IdentityProfile
from faceguard.domain.interfaces.recognition.face_recognition import FaceDetector
from faceguard.domain.value_objects.recognition import DetectionResult
from faceguard.services.classifier import Classifier
from faceguard.services.matcher_cache import MatcherCache
from faceguard.services.model_loader import ModelLoader

logger = get_logger(__name__)


class RecognitionService:
    """Identifies the faces of a frame against the registered profiles.

    This service:
    1. Detects faces and their descriptors through a ``FaceDetector``
    2. Reuses (or rebuilds) the matcher through the ``MatcherCache``
    3. Classifies every face independently with the ``Classifier``
    4. Attaches demographics only when the optional model tier is loaded

    Example:
        ```python
        service = RecognitionService(engine, loader, MatcherCache(), Classifier())
        detections = await service.recognize_frame(frame, store.profiles)
        ```
    """

    def __init__(
        self,
        detector: FaceDetector,
        loader: ModelLoader,
        matcher_cache: MatcherCache,
        classifier: Classifier,
        threshold: Optional[float] = None,
    ) -> None:
        """
        Args:
            detector: Capability that turns a frame into faces with descriptors
            loader: Model loader gating detector use
            matcher_cache: Cache of the nearest-neighbor index
            classifier: Nearest-neighbor classifier
            threshold: Default matching threshold (defaults to ``settings.MATCH_THRESHOLD``)
        """
        self.detector = detector
        self.loader = loader
        self.matcher_cache = matcher_cache
        self.classifier = classifier
        self._threshold = settings.MATCH_THRESHOLD
        if threshold is not None:
            self.threshold = threshold

    @property
    def threshold(self) -> float:
        return self._threshold

    @threshold.setter
    def threshold(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"Threshold must be positive, got {value}")
        self._threshold = float(value)

    def classify_faces(
        self,
        faces: Sequence[Face],
        profiles: Sequence[IdentityProfile],
        threshold: Optional[float] = None,
    ) -> List[DetectionResult]:
        """Classify already-extracted faces against the profiles.

        Args:
            faces: Faces carrying descriptors and normalized boxes
            profiles: Current profile collection (read only)
            threshold: Matching threshold override for this call

        Returns:
            One DetectionResult per face, in input order
        """
        thr = self._threshold if threshold is None else float(threshold)
        handle = self.matcher_cache.get_or_build(profiles, thr)
        with_demographics = self.loader.optional_available

        results: List[DetectionResult] = []
        for face in faces:
            if face.embedding is None:
                raise ValueError("Face has no descriptor")
            match = self.classifier.classify(face.embedding, handle, thr)
            demographics = {}
            if with_demographics and face.age is not None:
                demographics = {
                    "age": int(round(face.age)),
                    "gender": face.gender,
                    "expressions": face.expressions,
                }
            results.append(
                DetectionResult(
                    identified=match.identified,
                    name=match.name,
                    confidence=match.confidence,
                    box=face.bounding_box.as_list(),
                    **demographics,
                )
            )
        return results

    async def recognize_frame(
        self,
        frame: np.ndarray,
        profiles: Sequence[IdentityProfile],
        threshold: Optional[float] = None,
    ) -> List[DetectionResult]:
        """Detect and identify every face in a frame.

        Failures are contained: a frame that cannot be processed yields an
        empty result and the caller's loop continues.

        Returns:
            Detection results, or an empty list when models are not ready,
            no face is found, or the frame failed
        """
        if not self.loader.is_ready or frame is None:
            return []
        try:
            return await self._process_frame(frame, profiles, threshold)
        except FrameClassificationError as e:
            logger.warning("Frame dropped", error=str(e), **e.details)
            return []

    async def _process_frame(
        self,
        frame: np.ndarray,
        profiles: Sequence[IdentityProfile],
        threshold: Optional[float],
    ) -> List[DetectionResult]:
        try:
            faces = await self.detector.detect_all(frame)
        except Exception as e:
            raise FrameClassificationError(
                f"Face detection failed: {e}", details={"stage": "detection"}
            ) from e
        if not faces:
            return []
        try:
            return self.classify_faces(faces, profiles, threshold)
        except Exception as e:
            raise FrameClassificationError(
                f"Face classification failed: {e}", details={"stage": "classification"}
            ) from e

    async def extract_descriptor(self, image: np.ndarray) -> Optional[np.ndarray]:
        """Extract the descriptor of the first face found in an image.

        Raises:
            ModelAcquisitionFailure: If the models cannot be loaded

        Returns:
            The descriptor, or None when no face is found
        """
        await self.loader.require_ready()
        faces = await self.detector.detect_all(image)
        if not faces:
            logger.info("No face found for descriptor extraction")
            return None
        return faces[0].embedding
