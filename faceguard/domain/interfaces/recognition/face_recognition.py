"""Face detection capability interface."""
from abc import ABC, abstractmethod
from typing import List

import numpy as np

from ...entities.face import Face


class FaceDetector(ABC):
    """Interface for turning a frame into descriptor-bearing faces."""

    @abstractmethod
    async def detect_all(self, frame: np.ndarray) -> List[Face]:
        """
        Detect every face in the frame and extract its descriptor.

        Args:
            frame: BGR image as a numpy array

        Returns:
            List of domain Face objects with normalized boxes and embeddings.
            Returns an empty list when no face is found.

        Raises:
            Any error raised by the underlying engine; callers on the per-frame
            path are expected to contain it.
        """
        pass
