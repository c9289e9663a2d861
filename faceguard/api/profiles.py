"""Identity profile API endpoints."""
from typing import List, Optional

import numpy as np
from fastapi import APIRouter, Depends, HTTPException, Response

from faceguard.api.models.recognition import (
    ProfileCreateRequest,
    ProfileSummary,
    SampleRequest,
)
from faceguard.core.exceptions import (
    InvalidImageError,
    InvalidSampleOperation,
    ModelAcquisitionFailure,
    ProfileNotFoundError,
)
from faceguard.core.logging import get_logger
from faceguard.core.utils.image import data_url_to_numpy_array
from faceguard.infrastructure.dependencies import (
    get_descriptor_store,
    get_recognition_service,
)
from faceguard.services.descriptor_store import DescriptorStore
from faceguard.services.face_recognition import RecognitionService

logger = get_logger(__name__)
router = APIRouter(
    responses={
        404: {"description": "Profile not found"},
        422: {"description": "Invalid sample operation"},
    }
)


async def _descriptor_from_image(service: RecognitionService, image: str) -> Optional[np.ndarray]:
    """Extract the descriptor of the first face of an encoded image.

    Raises:
        HTTPException: 400 for an undecodable image, 503 when no model source works
    """
    try:
        frame = data_url_to_numpy_array(image)
        return await service.extract_descriptor(frame)
    except InvalidImageError as e:
        logger.error("Invalid sample image", error=str(e))
        raise HTTPException(status_code=400, detail=str(e))
    except ModelAcquisitionFailure as e:
        logger.error("Models unavailable", error=str(e), **e.details)
        raise HTTPException(status_code=503, detail="Face models are unavailable")


@router.get("", response_model=List[ProfileSummary], summary="List registered profiles")
async def list_profiles(
    store: DescriptorStore = Depends(get_descriptor_store),
) -> List[ProfileSummary]:
    return [ProfileSummary.from_profile(p) for p in store.profiles]


@router.post(
    "",
    response_model=ProfileSummary,
    status_code=201,
    summary="Register a profile",
    description=(
        "Registers a person. When only an image is given its descriptor is "
        "extracted; an image without a detectable face still registers the "
        "profile, without a descriptor."
    ),
)
async def create_profile(
    request: ProfileCreateRequest,
    store: DescriptorStore = Depends(get_descriptor_store),
    service: RecognitionService = Depends(get_recognition_service),
) -> ProfileSummary:
    vector = request.descriptor
    if vector is None and request.image:
        vector = await _descriptor_from_image(service, request.image)
        if vector is None:
            logger.warning("No face in registration image", name=request.name)

    try:
        profile_id = store.create_identity(request.name, initial_vector=vector, image=request.image)
    except InvalidSampleOperation as e:
        raise HTTPException(status_code=422, detail=str(e))
    return ProfileSummary.from_profile(store.get(profile_id))


@router.delete("/{profile_id}", status_code=204, summary="Delete a profile")
async def delete_profile(
    profile_id: str,
    store: DescriptorStore = Depends(get_descriptor_store),
) -> Response:
    try:
        store.delete_identity(profile_id)
    except ProfileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return Response(status_code=204)


@router.post(
    "/{profile_id}/samples",
    response_model=ProfileSummary,
    status_code=201,
    summary="Add a training sample to a profile",
)
async def add_sample(
    profile_id: str,
    request: SampleRequest,
    store: DescriptorStore = Depends(get_descriptor_store),
    service: RecognitionService = Depends(get_recognition_service),
) -> ProfileSummary:
    """Append a descriptor, given directly or extracted from an image.

    Raises:
        HTTPException: 404 for an unknown profile, 422 when no usable descriptor is available
    """
    try:
        store.get(profile_id)
    except ProfileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    vector = request.descriptor
    if vector is None:
        if not request.image:
            raise HTTPException(status_code=422, detail="Either descriptor or image is required")
        vector = await _descriptor_from_image(service, request.image)
        if vector is None:
            raise HTTPException(status_code=422, detail="No face found in sample image")

    try:
        store.append_sample(profile_id, vector, image=request.image)
    except InvalidSampleOperation as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ProfileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ProfileSummary.from_profile(store.get(profile_id))


@router.delete(
    "/{profile_id}/samples/{index}",
    response_model=ProfileSummary,
    summary="Remove a training sample from a profile",
)
async def remove_sample(
    profile_id: str,
    index: int,
    store: DescriptorStore = Depends(get_descriptor_store),
) -> ProfileSummary:
    try:
        store.remove_sample(profile_id, index)
    except ProfileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidSampleOperation as e:
        raise HTTPException(status_code=422, detail=str(e))
    return ProfileSummary.from_profile(store.get(profile_id))
