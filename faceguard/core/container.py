"""Service container for dependency injection."""
import asyncio
from typing import Optional

from faceguard.core.config import settings
from faceguard.core.logging import get_logger
from faceguard.services.classifier import Classifier
from faceguard.services.debouncer import EventDebouncer
from faceguard.services.descriptor_store import DescriptorStore
from faceguard.services.face_recognition import RecognitionService
from faceguard.services.matcher_cache import MatcherCache
from faceguard.services.model_loader import ModelLoader
from faceguard.services.monitor import RecognitionMonitor
from faceguard.services.recognition.insight_face import InsightFaceEngine

logger = get_logger(__name__)


class ServiceContainer:
    """Container for application services.

    This container owns the lifecycle of every service: the vision engine, the
    model loader and its readiness flags, the descriptor store, the matcher
    cache and the event history. Nothing of this state lives at module level
    in the services themselves.

    Example:
        ```python
        container = ServiceContainer()
        await container.initialize()

        detections = await container.recognition_service.recognize_frame(
            frame, container.descriptor_store.profiles
        )
        ```
    """

    def __init__(self, engine: Optional[InsightFaceEngine] = None) -> None:
        """Initialize empty container.

        Args:
            engine: Vision engine to use instead of the default InsightFace one.
                Anything implementing both ``FaceDetector`` and ``ModelSource`` works.
        """
        self._engine_override = engine
        self.engine = None
        self.model_loader: Optional[ModelLoader] = None
        self.descriptor_store: Optional[DescriptorStore] = None
        self.matcher_cache: Optional[MatcherCache] = None
        self.classifier: Optional[Classifier] = None
        self.debouncer: Optional[EventDebouncer] = None
        self.recognition_service: Optional[RecognitionService] = None
        self.monitor: Optional[RecognitionMonitor] = None
        self._load_task: Optional[asyncio.Task] = None

    @property
    def initialized(self) -> bool:
        return self.recognition_service is not None

    async def initialize(self, preload: bool = True) -> None:
        """Initialize all services in the correct order.

        Args:
            preload: Start acquiring the models in the background
        """
        self.engine = self._engine_override or InsightFaceEngine()
        self.model_loader = ModelLoader(self.engine)
        self.descriptor_store = DescriptorStore()
        self.matcher_cache = MatcherCache()
        self.classifier = Classifier()
        self.debouncer = EventDebouncer()
        self.recognition_service = RecognitionService(
            detector=self.engine,
            loader=self.model_loader,
            matcher_cache=self.matcher_cache,
            classifier=self.classifier,
        )
        self.monitor = RecognitionMonitor(
            recognition=self.recognition_service,
            store=self.descriptor_store,
            debouncer=self.debouncer,
        )
        if preload:
            self._load_task = asyncio.ensure_future(self.model_loader.ensure_loaded())
        logger.info(
            "Initialized services",
            sources=len(self.model_loader.urls),
            threshold=settings.MATCH_THRESHOLD,
            preload=preload,
        )

    async def cleanup(self) -> None:
        """Cleanup all services in reverse order of initialization."""
        self.monitor = None
        self.recognition_service = None
        self.debouncer = None
        self.classifier = None
        self.matcher_cache = None
        self.descriptor_store = None

        if self.model_loader:
            await self.model_loader.close()
            self.model_loader = None
        if self._load_task is not None:
            if not self._load_task.done():
                self._load_task.cancel()
            await asyncio.gather(self._load_task, return_exceptions=True)
            self._load_task = None
        self.engine = None


# Global container instance
container = ServiceContainer()
