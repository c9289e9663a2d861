"""Shared fixtures: a deterministic vision engine and pre-wired services."""
import asyncio
from collections import Counter
from typing import Dict, List, Optional, Set

import numpy as np
import pytest

from faceguard.core.exceptions import OptionalFeatureUnavailable
from faceguard.domain.entities.face import BoundingBox, Face
from faceguard.domain.interfaces.models.model_source import ModelSource
from faceguard.domain.interfaces.recognition.face_recognition import FaceDetector
from faceguard.services.classifier import Classifier
from faceguard.services.debouncer import EventDebouncer
from faceguard.services.descriptor_store import DescriptorStore
from faceguard.services.face_recognition import RecognitionService
from faceguard.services.matcher_cache import MatcherCache
from faceguard.services.model_loader import ModelLoader
from faceguard.services.monitor import RecognitionMonitor

DIM = 128


def unit(index: int, dim: int = DIM, scale: float = 1.0) -> np.ndarray:
    """Descriptor with a single non-zero component."""
    v = np.zeros(dim, dtype=np.float32)
    v[index] = scale
    return v


def make_face(embedding: np.ndarray, age: Optional[int] = None, gender: Optional[str] = None) -> Face:
    return Face(
        confidence=0.99,
        bounding_box=BoundingBox(ymin=100.0, xmin=200.0, ymax=400.0, xmax=500.0),
        embedding=embedding,
        age=age,
        gender=gender,
    )


class StubEngine(FaceDetector, ModelSource):
    """Deterministic engine: scripted source outcomes and scripted faces."""

    def __init__(
        self,
        failing: Optional[Set[str]] = None,
        delays: Optional[Dict[str, float]] = None,
        optional_fails: bool = False,
    ) -> None:
        self.failing = set(failing or ())
        self.delays = dict(delays or {})
        self.optional_fails = optional_fails
        self.critical_calls: Counter = Counter()
        self.optional_calls: Counter = Counter()
        self.faces: List[Face] = []
        self.detect_error: Optional[Exception] = None
        self.detect_delay = 0.0
        self.detect_calls = 0

    async def load_critical(self, address: str) -> None:
        self.critical_calls[address] += 1
        delay = self.delays.get(address, 0.0)
        if delay:
            await asyncio.sleep(delay)
        if address in self.failing:
            raise ConnectionError(f"source {address} unreachable")

    async def load_optional(self, address: str) -> None:
        self.optional_calls[address] += 1
        if self.optional_fails:
            raise OptionalFeatureUnavailable("no attribute model")

    async def detect_all(self, frame: np.ndarray) -> List[Face]:
        self.detect_calls += 1
        if self.detect_delay:
            await asyncio.sleep(self.detect_delay)
        if self.detect_error is not None:
            raise self.detect_error
        return list(self.faces)


@pytest.fixture
def engine() -> StubEngine:
    return StubEngine()


@pytest.fixture
def store() -> DescriptorStore:
    return DescriptorStore(dimension=DIM)


@pytest.fixture
def frame() -> np.ndarray:
    return np.zeros((480, 640, 3), dtype=np.uint8)


@pytest.fixture
def loader(engine: StubEngine) -> ModelLoader:
    return ModelLoader(engine, urls=["https://primary/models"], timeout_ms=1000)


@pytest.fixture
def recognition(engine: StubEngine, loader: ModelLoader) -> RecognitionService:
    return RecognitionService(
        detector=engine,
        loader=loader,
        matcher_cache=MatcherCache(staleness="count"),
        classifier=Classifier(),
        threshold=0.55,
    )


@pytest.fixture
def monitor(recognition: RecognitionService, store: DescriptorStore, frame: np.ndarray) -> RecognitionMonitor:
    return RecognitionMonitor(
        recognition=recognition,
        store=store,
        debouncer=EventDebouncer(window_ms=1500, history_limit=200),
        frame_source=lambda: frame,
        interval_ms=10,
        min_log_confidence=50,
    )
