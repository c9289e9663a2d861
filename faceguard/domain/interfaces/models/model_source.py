"""Model source capability interface."""
from abc import ABC, abstractmethod


class ModelSource(ABC):
    """Interface for acquiring vision models from a source address."""

    @abstractmethod
    async def load_critical(self, address: str) -> None:
        """
        Load the models required for detection and recognition.

        Args:
            address: Source address (remote base URL or local directory)

        Raises:
            Any error when the source cannot provide the models. The loader
            treats every failure as "try the next source".
        """
        pass

    @abstractmethod
    async def load_optional(self, address: str) -> None:
        """
        Load the optional demographics models from the same source.

        Args:
            address: Source address that served the critical tier

        Raises:
            OptionalFeatureUnavailable: If the optional models cannot be loaded
        """
        pass
