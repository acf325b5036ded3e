"""Core functionality for product image generation.

Architecture Overview
---------------------
The core module follows a layered architecture, leaves first:

1. **Configuration** (config.py): Pydantic Settings, ``PRODSHOT_`` prefix.
2. **Domain** (models.py, errors.py, prompt_builder.py): request/result
   types, exception taxonomy, prompt optimisation.
3. **Leaf services**:
   - compositor.py: logo and text-watermark overlay (Pillow)
   - synthesis.py: HuggingFace inference client (httpx)
   - storage.py: filesystem blob storage
4. **Queue layer** (queue.py, limiter.py): durable Redis FIFO with per-job
   event channels and a sliding-window start limiter.
5. **Orchestration**:
   - worker.py: the single consumer
   - bridge.py: submit-and-wait over the queue
   - service.py: lifecycle owner wiring everything together

See Also
--------
- GenerationService: entry point for running a pipeline
- ProdshotConfig: configuration options and environment variables
"""

from prodshot.core.config import ProdshotConfig
from prodshot.core.models import GenerationRequest, JobResult
from prodshot.core.service import GenerationService

__all__ = [
    "GenerationRequest",
    "GenerationService",
    "JobResult",
    "ProdshotConfig",
]
