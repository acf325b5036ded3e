"""Exception taxonomy for the generation pipeline.

Only two situations are fatal to a job: the first image of a batch failing
to synthesise, or the job being unprocessable as a whole.  Everything else
(storage hiccups on later images, compositing problems) is absorbed by the
worker with best-effort degradation, so most of these exceptions never leave
:mod:`prodshot.core.worker`.
"""

from __future__ import annotations


class ProdshotError(Exception):
    """Base class for every error raised by Prodshot."""


class RequestValidationFailed(ProdshotError):
    """A generation or upload request is malformed or out of range.

    Surfaced to HTTP callers as a 400; never retried.
    """


class SynthesisError(ProdshotError):
    """The external image-synthesis service failed.

    Attributes:
        status_code: HTTP status returned by the service, or ``None`` for
            transport-level failures.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ModelLoadingError(SynthesisError):
    """The model is still warming up; retrying later may succeed.

    Attributes:
        estimated_time: Seconds the service suggested waiting.
    """

    def __init__(self, message: str, estimated_time: float) -> None:
        super().__init__(message, status_code=503)
        self.estimated_time = estimated_time


class StorageError(ProdshotError):
    """A write, read or delete against blob storage failed."""


class CompositingError(ProdshotError):
    """A logo or watermark could not be applied."""


class UnsupportedLogoTypeError(CompositingError):
    """The overlay settings name a logo type the compositor does not know."""


class MissingLogoAssetError(CompositingError):
    """The logo file is missing, or a text watermark has no text."""


class JobFailedError(ProdshotError):
    """The worker reported a terminal failure for a submitted job.

    Attributes:
        job_id: Identifier of the failed job.
    """

    def __init__(self, job_id: str, reason: str) -> None:
        super().__init__(reason)
        self.job_id = job_id


class JobTimeoutError(ProdshotError, TimeoutError):
    """The caller stopped waiting; the job itself keeps running."""

    def __init__(self, job_id: str, timeout: float) -> None:
        super().__init__(f"Job {job_id} did not finish within {timeout:g} seconds")
        self.job_id = job_id
        self.timeout = timeout
