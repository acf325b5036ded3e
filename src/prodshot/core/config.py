"""Configuration management for the Prodshot product image generator.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the PRODSHOT_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PRODSHOT_* prefix)
2. .env file in the project root
3. Default values defined in ProdshotConfig

Example .env file:
    PRODSHOT_REDIS_URL=redis://localhost:6379/0
    PRODSHOT_HF_API_TOKEN=hf_xxx
    PRODSHOT_RATE_LIMIT_MAX=5
    PRODSHOT_GENERATED_DIR=public/generated

Global Configuration Instance
------------------------------
A global `config` instance is created at module import time for the CLI entry
points (``prodshot`` and ``prodshot-worker``).  Library code never reads it
directly: :class:`~prodshot.core.service.GenerationService` and everything it
builds receive their configuration explicitly, so tests can run several
isolated pipelines in one process.

Queue Constraints
-----------------
The downstream inference API is quota-limited, so the worker honours:
- exactly one active job at a time (not configurable)
- at most ``rate_limit_max`` job starts per ``rate_limit_window_seconds``

Directory Management
--------------------
The configuration automatically creates required directories on initialization:
- generated_dir: For generated product images
- logos_dir: For uploaded logo files
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProdshotConfig(BaseSettings):
    """Main configuration for the Prodshot product image generator.

    Values are loaded from environment variables with the PRODSHOT_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    Queue Settings:
        redis_url : str
            Connection URL of the Redis server holding the job queue
        queue_name : str
            Key namespace for the queue, limiter and event channels
        rate_limit_max : int
            Maximum job starts per rate-limit window
        rate_limit_window_seconds : float
            Length of the sliding rate-limit window
        job_retention_seconds : int
            How long terminal job records are kept for waiters
        job_wait_timeout_seconds : float
            Default timeout for the blocking submit-and-wait bridge
        dequeue_timeout_seconds : int
            Blocking-pop timeout used by the worker loop
        embedded_worker : bool
            Run the worker inside the API process

    Synthesis Settings:
        hf_api_token : SecretStr | None
            HuggingFace inference token
        hf_model_id : str
            Model served by the inference endpoint
        hf_api_base_url : str
            Base URL of the inference router
        guidance_scale : float
            Classifier-free guidance scale sent with every request
        num_inference_steps : int
            Diffusion step count sent with every request
        synthesis_max_attempts : int
            Attempts per image while the model is warming up
        model_loading_retry_seconds : float
            Fallback wait when the service omits an estimated time
        synthesis_timeout_seconds : float
            HTTP timeout for a single synthesis call

    Storage Settings:
        generated_dir / generated_url_prefix
            Where generated images live and the URL prefix they are served under
        logos_dir / logos_url_prefix
            Where uploaded logos live and the URL prefix they are served under
        logo_max_file_bytes : int
            Upload size cap for logo files

    Server Settings:
        server_host, server_port, keep_alive_url, keep_alive_interval_seconds, log_level
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PRODSHOT_",
        case_sensitive=False,
    )

    # Queue settings
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the durable job queue",
    )
    queue_name: str = Field(
        default="image-generation",
        description="Key namespace for queue, limiter and event channels",
    )
    rate_limit_max: int = Field(
        default=5,
        description="Maximum job starts per rate-limit window",
        ge=1,
    )
    rate_limit_window_seconds: float = Field(
        default=60.0,
        description="Length of the sliding rate-limit window in seconds",
        gt=0,
    )
    job_retention_seconds: int = Field(
        default=3600,
        description="Seconds a terminal job record is retained",
        ge=1,
    )
    job_wait_timeout_seconds: float = Field(
        default=300.0,
        description="Default submit-and-wait timeout in seconds",
        gt=0,
    )
    dequeue_timeout_seconds: int = Field(
        default=5,
        description="Blocking-pop timeout for the worker loop",
        ge=1,
    )
    embedded_worker: bool = Field(
        default=True,
        description="Run the single worker inside the API process",
    )

    # Synthesis settings
    hf_api_token: SecretStr | None = Field(
        default=None,
        description="HuggingFace inference API token",
    )
    hf_model_id: str = Field(
        default="stabilityai/stable-diffusion-xl-base-1.0",
        description="Model served by the inference endpoint",
    )
    hf_api_base_url: str = Field(
        default="https://router.huggingface.co/hf-inference/models",
        description="Base URL of the HuggingFace inference router",
    )
    guidance_scale: float = Field(default=7.5, ge=0.0)
    num_inference_steps: int = Field(default=30, ge=1, le=150)
    synthesis_max_attempts: int = Field(
        default=3,
        description="Attempts per image while the model reports it is loading",
        ge=1,
    )
    model_loading_retry_seconds: float = Field(
        default=20.0,
        description="Wait used when a loading response carries no estimated time",
        ge=0,
    )
    synthesis_timeout_seconds: float = Field(default=300.0, gt=0)

    # Storage settings
    generated_dir: Path = Field(
        default=Path("public/generated"),
        description="Directory to save generated images",
    )
    generated_url_prefix: str = Field(default="/generated")
    logos_dir: Path = Field(
        default=Path("public/logos"),
        description="Directory for uploaded logo files",
    )
    logos_url_prefix: str = Field(default="/logos")
    logo_max_file_bytes: int = Field(default=2 * 1024 * 1024, ge=1)

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=3000,
        description="Server port",
        ge=1,
        le=65535,
    )
    keep_alive_url: str | None = Field(
        default=None,
        description="Public base URL to self-ping so free-tier hosts stay awake",
    )
    keep_alive_interval_seconds: float = Field(default=240.0, gt=0)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    def __init__(self, **kwargs):
        """Initialize configuration and create required directories.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.generated_dir.mkdir(parents=True, exist_ok=True)
        self.logos_dir.mkdir(parents=True, exist_ok=True)

    @property
    def hf_api_url(self) -> str:
        """Full inference URL for the configured model."""
        return f"{self.hf_api_base_url.rstrip('/')}/{self.hf_model_id}"


# Global configuration instance used by the CLI entry points.
config = ProdshotConfig()
