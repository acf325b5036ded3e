"""Pydantic response models for the Prodshot API.

The request model for ``POST /api/generate`` is the domain
:class:`~prodshot.core.models.GenerationRequest`, validated by FastAPI
directly.  This module defines what goes back over the wire.

Models
------
GenerateResponse
    Result of ``POST /api/generate`` - success flag, images, and the prompt
    and settings actually used.
UploadLogoResponse
    Result of ``POST /api/upload-logo``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from prodshot.core.models import GeneratedImage, GenerationSettings


class _CamelResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationMetadata(_CamelResponse):
    """Prompt and settings used for a generation.

    Attributes:
        prompt: Exact prompt text sent to the synthesis service.  Empty when
            the request failed before a prompt was built.
        settings: Batch settings after defaults were applied.
    """

    prompt: str = ""
    settings: GenerationSettings = Field(default_factory=GenerationSettings)


class GenerateResponse(_CamelResponse):
    """Response body for ``POST /api/generate``.

    ``images`` is empty exactly when ``success`` is ``False``.
    """

    success: bool
    images: list[GeneratedImage] = Field(default_factory=list)
    metadata: GenerationMetadata = Field(default_factory=GenerationMetadata)
    processing_time: int = Field(default=0, description="Milliseconds spent handling the request.")
    error: str | None = None


class UploadLogoResponse(_CamelResponse):
    """Response body for ``POST /api/upload-logo``."""

    success: bool
    filename: str | None = None
    url: str | None = None
    error: str | None = None
