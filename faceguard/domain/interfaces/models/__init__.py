from .model_source import ModelSource

__all__ = ["ModelSource"]
