"""Client for the external image-synthesis endpoint.

:class:`SynthesisClient` wraps the HuggingFace inference router: one POST per
image, raw image bytes back on success.  It is the only place that knows the
wire format of the service.

Request Payload
---------------
::

    {
        "inputs": "<prompt>",
        "parameters": {
            "negative_prompt": "<negative prompt>",
            "guidance_scale": 7.5,
            "num_inference_steps": 30
        }
    }

Response Handling
-----------------
- **200** - body is the encoded image.
- **503** - the model is warming up.  The JSON body carries
  ``estimated_time`` (seconds).  The client sleeps for that long and resends
  the identical request, up to ``synthesis_max_attempts`` attempts in total.
- **anything else** - :class:`~prodshot.core.errors.SynthesisError`
  immediately, using the body's ``error`` field as the message when present.

Calls are never issued concurrently by the worker, so the client keeps no
connection-level concurrency controls of its own.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable

import httpx

from prodshot.core.config import ProdshotConfig
from prodshot.core.errors import ModelLoadingError, SynthesisError

logger = logging.getLogger(__name__)

_MODEL_LOADING_STATUS = 503


class SynthesisClient:
    """Async client for the HuggingFace text-to-image inference endpoint.

    Attributes:
        _config (ProdshotConfig):
            Token, model URL, generation parameters and retry policy.
        _client (httpx.AsyncClient):
            Underlying HTTP client.  Closed by :meth:`aclose`.
        _sleep:
            Awaitable used to wait between warming-up retries.
    """

    def __init__(
        self,
        config: ProdshotConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialise the client.

        Args:
            config: Application configuration.
            transport: Optional httpx transport (tests pass a
                :class:`httpx.MockTransport`).
            sleep: Coroutine function used for retry delays.
        """
        self._config = config
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            timeout=config.synthesis_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def generate(self, prompt: str, negative_prompt: str) -> bytes:
        """Generate one image, retrying while the model warms up.

        Args:
            prompt: Positive prompt.
            negative_prompt: Negative prompt.

        Returns:
            Encoded image bytes as returned by the service.

        Raises:
            ModelLoadingError: The model was still loading after the last
                allowed attempt.
            SynthesisError: Any other failure; never retried.
        """
        max_attempts = self._config.synthesis_max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                return await self._call(prompt, negative_prompt)
            except ModelLoadingError as exc:
                if attempt >= max_attempts:
                    logger.error(
                        "Model still loading after %d attempt(s); giving up.", attempt
                    )
                    raise
                logger.warning(
                    "Model loading (attempt %d/%d); retrying in %.1fs.",
                    attempt,
                    max_attempts,
                    exc.estimated_time,
                )
                await self._sleep(exc.estimated_time)

        # Unreachable: the loop either returns or raises.
        raise SynthesisError("Synthesis retry loop exhausted")

    async def _call(self, prompt: str, negative_prompt: str) -> bytes:
        """Issue a single synthesis request."""
        token = self._config.hf_api_token
        if token is None or not token.get_secret_value():
            raise SynthesisError(
                "PRODSHOT_HF_API_TOKEN is not set. "
                "Get a token at https://huggingface.co/settings/tokens"
            )

        payload = {
            "inputs": prompt,
            "parameters": {
                "negative_prompt": negative_prompt,
                "guidance_scale": self._config.guidance_scale,
                "num_inference_steps": self._config.num_inference_steps,
            },
        }
        headers = {"Authorization": f"Bearer {token.get_secret_value()}"}

        try:
            response = await self._client.post(
                self._config.hf_api_url, json=payload, headers=headers
            )
        except httpx.HTTPError as exc:
            raise SynthesisError(f"Synthesis request failed: {exc}") from exc

        if response.status_code == 200:
            return response.content

        if response.status_code == _MODEL_LOADING_STATUS:
            wait = self._estimated_time(response)
            raise ModelLoadingError(
                f"Model is loading. Please wait {math.ceil(wait)} seconds and try again.",
                estimated_time=wait,
            )

        message = f"HuggingFace API error: {response.status_code}"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            message = str(body["error"])
        raise SynthesisError(message, status_code=response.status_code)

    def _estimated_time(self, response: httpx.Response) -> float:
        """Suggested wait from a 503 body, falling back to the configured delay."""
        fallback = self._config.model_loading_retry_seconds
        try:
            body = response.json()
        except ValueError:
            return fallback
        if not isinstance(body, dict):
            return fallback
        try:
            return float(body.get("estimated_time") or fallback)
        except (TypeError, ValueError):
            return fallback
