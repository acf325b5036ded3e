"""Prodshot - product photography generation with logo overlays."""

__version__ = "0.1.0"

from prodshot.core.config import ProdshotConfig
from prodshot.core.service import GenerationService

__all__ = [
    "GenerationService",
    "ProdshotConfig",
]
