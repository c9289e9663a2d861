"""Face identification API endpoints."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from faceguard.api.models.recognition import (
    EMPTY_BOX,
    ClassifyRequest,
    DetectionsResponse,
    FrameRequest,
    StatusResponse,
    ThresholdRequest,
)
from faceguard.core.exceptions import (
    InvalidImageError,
    InvalidSampleOperation,
    ModelAcquisitionFailure,
)
from faceguard.core.logging import get_logger
from faceguard.core.utils.image import data_url_to_numpy_array
from faceguard.domain.entities.face import BoundingBox, Face
from faceguard.domain.value_objects.recognition import RecognitionLog
from faceguard.infrastructure.dependencies import (
    get_debouncer,
    get_descriptor_store,
    get_model_loader,
    get_monitor,
    get_recognition_service,
)
from faceguard.services.debouncer import EventDebouncer
from faceguard.services.descriptor_store import DescriptorStore
from faceguard.services.face_recognition import RecognitionService
from faceguard.services.model_loader import ModelLoader
from faceguard.services.monitor import RecognitionMonitor

logger = get_logger(__name__)
router = APIRouter(
    responses={
        422: {"description": "Invalid descriptor or parameters"},
        500: {"description": "Internal server error"}
    }
)


@router.get(
    "/status",
    response_model=StatusResponse,
    summary="Model and matcher status",
)
async def get_status(
    loader: ModelLoader = Depends(get_model_loader),
    store: DescriptorStore = Depends(get_descriptor_store),
    service: RecognitionService = Depends(get_recognition_service),
) -> StatusResponse:
    """Report loader readiness and the size of the registered collection."""
    return StatusResponse(
        state=loader.state.value,
        ready=loader.is_ready,
        demographics=loader.optional_available,
        active_source=loader.active_source,
        profiles=len(store),
        descriptors=store.total_descriptors,
        threshold=service.threshold,
    )


@router.post(
    "/classify",
    response_model=DetectionsResponse,
    summary="Classify face descriptors of one frame",
    description="Matches descriptors extracted by the client against the registered profiles.",
)
async def classify_descriptors(
    request: ClassifyRequest,
    service: RecognitionService = Depends(get_recognition_service),
    store: DescriptorStore = Depends(get_descriptor_store),
    monitor: RecognitionMonitor = Depends(get_monitor),
) -> DetectionsResponse:
    """Classify every descriptor independently and record the log entries.

    Raises:
        HTTPException: 422 if a descriptor does not fit the store
    """
    try:
        faces = [
            Face(
                confidence=1.0,
                bounding_box=_box(face.box),
                embedding=store.validate_vector(face.descriptor),
            )
            for face in request.faces
        ]
    except InvalidSampleOperation as e:
        logger.warning("Rejected descriptor", error=str(e))
        raise HTTPException(status_code=422, detail=str(e))

    detections = service.classify_faces(faces, store.profiles, request.threshold)
    logged = monitor.record(detections)
    return DetectionsResponse(detections=detections, logged=logged)


def _box(values: Optional[List[float]]) -> BoundingBox:
    ymin, xmin, ymax, xmax = values or EMPTY_BOX
    return BoundingBox(ymin=ymin, xmin=xmin, ymax=ymax, xmax=xmax)


@router.post(
    "/frame",
    response_model=DetectionsResponse,
    summary="Identify faces in a frame",
    responses={
        400: {"description": "Image payload cannot be decoded"},
        503: {"description": "Models unavailable"},
    },
)
async def recognize_frame(
    request: FrameRequest,
    service: RecognitionService = Depends(get_recognition_service),
    store: DescriptorStore = Depends(get_descriptor_store),
    monitor: RecognitionMonitor = Depends(get_monitor),
) -> DetectionsResponse:
    """Detect and identify every face of an encoded frame.

    Raises:
        HTTPException: 400 for an undecodable image, 503 when no model source works
    """
    try:
        frame = data_url_to_numpy_array(request.image)
        await service.loader.require_ready()
    except InvalidImageError as e:
        logger.error("Invalid frame payload", error=str(e))
        raise HTTPException(status_code=400, detail=str(e))
    except ModelAcquisitionFailure as e:
        logger.error("Models unavailable", error=str(e), **e.details)
        raise HTTPException(status_code=503, detail="Face models are unavailable")

    detections = await service.recognize_frame(frame, store.profiles, request.threshold)
    logged = monitor.record(detections)
    return DetectionsResponse(detections=detections, logged=logged)


@router.put(
    "/threshold",
    response_model=StatusResponse,
    summary="Set the default matching threshold",
)
async def set_threshold(
    request: ThresholdRequest,
    loader: ModelLoader = Depends(get_model_loader),
    store: DescriptorStore = Depends(get_descriptor_store),
    service: RecognitionService = Depends(get_recognition_service),
) -> StatusResponse:
    service.threshold = request.threshold
    logger.info("Matching threshold updated", threshold=service.threshold)
    return await get_status(loader=loader, store=store, service=service)


@router.get(
    "/logs",
    response_model=List[RecognitionLog],
    summary="Recognition history, newest first",
)
async def get_logs(
    debouncer: EventDebouncer = Depends(get_debouncer),
) -> List[RecognitionLog]:
    return debouncer.history
