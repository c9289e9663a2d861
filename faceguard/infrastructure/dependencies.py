"""FastAPI dependency providers."""
from typing import AsyncGenerator

from fastapi import Depends

from faceguard.core.container import ServiceContainer, container
from faceguard.core.exceptions import ServiceNotInitializedError
from faceguard.services.debouncer import EventDebouncer
from faceguard.services.descriptor_store import DescriptorStore
from faceguard.services.face_recognition import RecognitionService
from faceguard.services.model_loader import ModelLoader
from faceguard.services.monitor import RecognitionMonitor


async def get_container() -> ServiceContainer:
    """Dependency provider for the global ServiceContainer instance."""
    if not container.initialized:
        # Outside the app lifespan (e.g. scripts), initialize lazily
        try:
            await container.initialize()
        except Exception as e:
            raise ServiceNotInitializedError(
                f"Service container could not be initialized: {e}"
            ) from e
    return container


async def get_recognition_service(
    cont: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[RecognitionService, None]:
    """Provide the recognition service.

    Raises:
        ServiceNotInitializedError: If service is not initialized
    """
    if cont.recognition_service is None:
        raise ServiceNotInitializedError("Recognition service not initialized")
    yield cont.recognition_service


async def get_descriptor_store(
    cont: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[DescriptorStore, None]:
    """Provide the descriptor store holding the registered profiles."""
    if cont.descriptor_store is None:
        raise ServiceNotInitializedError("Descriptor store not initialized")
    yield cont.descriptor_store


async def get_model_loader(
    cont: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[ModelLoader, None]:
    if cont.model_loader is None:
        raise ServiceNotInitializedError("Model loader not initialized")
    yield cont.model_loader


async def get_debouncer(
    cont: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[EventDebouncer, None]:
    if cont.debouncer is None:
        raise ServiceNotInitializedError("Event debouncer not initialized")
    yield cont.debouncer


async def get_monitor(
    cont: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[RecognitionMonitor, None]:
    """Provide the recognition monitor used to record log entries."""
    if cont.monitor is None:
        raise ServiceNotInitializedError("Recognition monitor not initialized")
    yield cont.monitor
