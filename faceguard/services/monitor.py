"""Frame-paced recognition loop with load shedding."""
import asyncio
from typing import Callable, List, Optional, Set

import numpy as np

from faceguard.core.config import settings
from faceguard.core.logging import get_logger
from faceguard.domain.value_objects.recognition import DetectionResult, RecognitionLog, now_ms
from faceguard.services.debouncer import EventDebouncer
from faceguard.services.descriptor_store import DescriptorStore
from faceguard.services.face_recognition import RecognitionService

logger = get_logger(__name__)

FrameSource = Callable[[], Optional[np.ndarray]]


class RecognitionMonitor:
    """Drives recognition from a frame source at a bounded cadence.

    ``poll()`` is the single entry point of a tick. It is guarded against
    re-entry: a tick that arrives while the previous one is still running is
    dropped, not queued, so under load the monitor skips frames instead of
    building a backlog.
    """

    def __init__(
        self,
        recognition: RecognitionService,
        store: DescriptorStore,
        debouncer: EventDebouncer,
        frame_source: Optional[FrameSource] = None,
        interval_ms: Optional[int] = None,
        min_log_confidence: Optional[int] = None,
    ) -> None:
        self.recognition = recognition
        self.store = store
        self.debouncer = debouncer
        self.frame_source = frame_source
        self.interval_ms = int(interval_ms or settings.POLL_INTERVAL_MS)
        self.min_log_confidence = int(
            min_log_confidence if min_log_confidence is not None else settings.LOG_MIN_CONFIDENCE
        )

        self.latest: List[DetectionResult] = []
        self.processed_ticks = 0
        self.dropped_ticks = 0
        self._processing = False
        self._stopped = False
        self._tasks: Set[asyncio.Task] = set()

    @property
    def is_processing(self) -> bool:
        return self._processing

    def record(
        self,
        results: List[DetectionResult],
        timestamp: Optional[int] = None,
    ) -> List[RecognitionLog]:
        """Offer log entries for a frame's results to the debouncer.

        Only identified faces, or unknown faces seen with confidence above
        ``min_log_confidence``, produce an entry.

        Returns:
            Entries admitted to the history
        """
        ts = now_ms() if timestamp is None else int(timestamp)
        admitted: List[RecognitionLog] = []
        for det in results:
            if not (det.identified or det.confidence > self.min_log_confidence):
                continue
            entry = RecognitionLog(
                timestamp=ts,
                person_name=det.name,
                confidence=det.confidence,
                is_unknown=not det.identified,
            )
            if self.debouncer.admit(entry):
                admitted.append(entry)
        return admitted

    def _read_frame(self) -> Optional[np.ndarray]:
        if self.frame_source is None:
            return None
        try:
            return self.frame_source()
        except Exception as e:
            logger.warning("Frame capture failed", error=str(e))
            return None

    async def poll(self) -> Optional[List[DetectionResult]]:
        """Run one recognition tick.

        Returns:
            The frame's detections, or None when the tick was dropped because
            the previous one is still in flight
        """
        if self._processing:
            self.dropped_ticks += 1
            return None

        self._processing = True
        try:
            frame = self._read_frame()
            if frame is None:
                return []
            results = await self.recognition.recognize_frame(frame, self.store.profiles)
            if self._stopped:
                return results
            self.latest = results
            self.record(results)
            return results
        finally:
            self.processed_ticks += 1
            self._processing = False

    async def run(self, stop_event: asyncio.Event) -> bool:
        """Tick every ``interval_ms`` until ``stop_event`` is set.

        Models are loaded first; the loop does not start when every model
        source fails.

        Returns:
            False if the models could not be loaded, True after a clean stop
        """
        if not await self.recognition.loader.ensure_loaded():
            logger.error("Monitor not started: models unavailable")
            return False

        self._stopped = False
        interval = self.interval_ms / 1000.0
        logger.info("Monitor started", interval_ms=self.interval_ms)
        while not stop_event.is_set():
            task = asyncio.ensure_future(self.poll())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        # In-flight ticks finish, their results are discarded
        self._stopped = True
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info(
            "Monitor stopped",
            processed=self.processed_ticks,
            dropped=self.dropped_ticks,
        )
        return True
