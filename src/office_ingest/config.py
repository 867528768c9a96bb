"""
Configuration management (SSOT).

This module defines ALL configuration for the office ingestion pipeline.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- Secrets (API keys) may come from the environment and override the YAML file
- Pipeline knobs (batch size, delays, deadlines) live in one section
- Fine-tuning thresholds are per deployment, not per office
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class OpenAIConfig:
    """Assistant API (OpenAI Assistants v2) configuration.

    - base_url: API root, overridable for proxies and tests
    - default_model: used when an office has no model configuration
    - run_timeout_seconds: how long one extraction run may be polled
    """

    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    default_model: str = "gpt-4o"
    # HTTP request timeout (seconds)
    timeout_seconds: int = 60
    # Maximum time to wait for a run to reach a terminal status
    run_timeout_seconds: int = 90
    # Delay between run status polls
    poll_interval_seconds: float = 0.5


@dataclass
class OCRConfig:
    """OCR service configuration (PDF to text)."""

    endpoint: str = "http://localhost:8000/ocr"
    # OCR of large PDFs is slow
    timeout_seconds: int = 900
    max_retries: int = 3


@dataclass
class PipelineConfig:
    """Chunk dispatch settings."""

    # Chunks dispatched concurrently per batch
    batch_size: int = 5
    # Pause between batches (not after the last one)
    batch_delay_seconds: float = 0.1
    # Per-chunk deadline; None waits for the collaborator indefinitely
    chunk_timeout_seconds: float | None = None
    # Emit the text after the last page marker as a final chunk
    keep_trailing_page: bool = False
    # Upload size limit
    max_file_bytes: int = 10 * 1024 * 1024
    # Assistant lookups are cached per office
    assistant_cache_ttl_seconds: int = 1800


@dataclass
class FineTuningConfig:
    """Fine-tuning trigger and submission settings."""

    # Submit a job every time this many validated records accumulate
    threshold: int = 50
    base_model: str = "gpt-4.1-mini-2025-04-14"
    n_epochs: int = 3
    # Above this many validated records, history is pruned before export
    max_examples: int = 5000
    # Records kept after pruning (corrected records first)
    keep_examples: int = 4000
    # Job monitor poll interval
    monitor_interval_seconds: int = 60
    # Retries for a failed eligibility check
    queue_max_retries: int = 3


@dataclass
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    ocr: OCRConfig = field(default_factory=OCRConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    fine_tuning: FineTuningConfig = field(default_factory=FineTuningConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/state.db"))

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if not self.openai.api_key:
            errors.append("openai.api_key is required")
        if not self.openai.base_url:
            errors.append("openai.base_url is required")

        if self.pipeline.batch_size < 1:
            errors.append("pipeline.batch_size must be >= 1")
        if self.pipeline.batch_delay_seconds < 0:
            errors.append("pipeline.batch_delay_seconds must be >= 0")
        if (
            self.pipeline.chunk_timeout_seconds is not None
            and self.pipeline.chunk_timeout_seconds <= 0
        ):
            errors.append("pipeline.chunk_timeout_seconds must be positive when set")

        if self.fine_tuning.threshold < 1:
            errors.append("fine_tuning.threshold must be >= 1")
        if self.fine_tuning.keep_examples > self.fine_tuning.max_examples:
            errors.append("fine_tuning.keep_examples must be <= max_examples")

        return errors


def _optional_float(value) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - OPENAI_API_KEY
    - OPENAI_BASE_URL
    - OPENAI_MODEL (default model name)
    - OCR_ENDPOINT
    - INGEST_BATCH_SIZE
    - INGEST_CHUNK_TIMEOUT (seconds)
    - INGEST_STATE_DB
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # OpenAI config
    openai_data = data.get("openai", {})
    openai = OpenAIConfig(
        api_key=os.environ.get("OPENAI_API_KEY", openai_data.get("api_key", "")),
        base_url=os.environ.get(
            "OPENAI_BASE_URL", openai_data.get("base_url", "https://api.openai.com/v1")
        ),
        default_model=os.environ.get(
            "OPENAI_MODEL", openai_data.get("default_model", "gpt-4o")
        ),
        timeout_seconds=openai_data.get("timeout_seconds", 60),
        run_timeout_seconds=openai_data.get("run_timeout_seconds", 90),
        poll_interval_seconds=openai_data.get("poll_interval_seconds", 0.5),
    )

    # OCR config
    ocr_data = data.get("ocr", {})
    ocr = OCRConfig(
        endpoint=os.environ.get(
            "OCR_ENDPOINT", ocr_data.get("endpoint", "http://localhost:8000/ocr")
        ),
        timeout_seconds=ocr_data.get("timeout_seconds", 900),
        max_retries=ocr_data.get("max_retries", 3),
    )

    # Pipeline config
    pipeline_data = data.get("pipeline", {})
    batch_size = pipeline_data.get("batch_size", 5)
    batch_size_env = os.environ.get("INGEST_BATCH_SIZE", "")
    if batch_size_env:
        try:
            batch_size = int(batch_size_env)
        except ValueError:
            pass  # Keep configured value

    chunk_timeout = pipeline_data.get("chunk_timeout_seconds")
    chunk_timeout_env = os.environ.get("INGEST_CHUNK_TIMEOUT", "")
    if chunk_timeout_env:
        chunk_timeout = chunk_timeout_env

    pipeline = PipelineConfig(
        batch_size=batch_size,
        batch_delay_seconds=pipeline_data.get("batch_delay_seconds", 0.1),
        chunk_timeout_seconds=_optional_float(chunk_timeout),
        keep_trailing_page=pipeline_data.get("keep_trailing_page", False),
        max_file_bytes=pipeline_data.get("max_file_bytes", 10 * 1024 * 1024),
        assistant_cache_ttl_seconds=pipeline_data.get("assistant_cache_ttl_seconds", 1800),
    )

    # Fine-tuning config
    ft_data = data.get("fine_tuning", {})
    fine_tuning = FineTuningConfig(
        threshold=ft_data.get("threshold", 50),
        base_model=ft_data.get("base_model", "gpt-4.1-mini-2025-04-14"),
        n_epochs=ft_data.get("n_epochs", 3),
        max_examples=ft_data.get("max_examples", 5000),
        keep_examples=ft_data.get("keep_examples", 4000),
        monitor_interval_seconds=ft_data.get("monitor_interval_seconds", 60),
        queue_max_retries=ft_data.get("queue_max_retries", 3),
    )

    # State DB
    state_db = os.environ.get("INGEST_STATE_DB", data.get("state_db_path", "data/state.db"))

    return Config(
        openai=openai,
        ocr=ocr,
        pipeline=pipeline,
        fine_tuning=fine_tuning,
        state_db_path=Path(state_db),
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# Office document ingestion configuration
#
# Secrets can be supplied through the environment instead:
# OPENAI_API_KEY, OPENAI_BASE_URL, OCR_ENDPOINT

openai:
  api_key: "YOUR_OPENAI_API_KEY"
  base_url: "https://api.openai.com/v1"
  default_model: "gpt-4o"                  # Used when an office has no model config
  timeout_seconds: 60                      # HTTP request timeout
  run_timeout_seconds: 90                  # Max wait for one extraction run
  poll_interval_seconds: 0.5               # Run status poll interval

# OCR service used for PDF files
ocr:
  endpoint: "http://localhost:8000/ocr"
  timeout_seconds: 900
  max_retries: 3

# Chunk dispatch
pipeline:
  batch_size: 5                            # Chunks processed concurrently
  batch_delay_seconds: 0.1                 # Pause between batches
  chunk_timeout_seconds: null              # Per-chunk deadline (null = none)
  keep_trailing_page: false                # Keep text after the last page marker
  max_file_bytes: 10485760                 # 10 MiB upload limit
  assistant_cache_ttl_seconds: 1800        # Cache office assistants for 30 minutes

# Fine-tuning
fine_tuning:
  threshold: 50                            # Submit every N validated extractions
  base_model: "gpt-4.1-mini-2025-04-14"
  n_epochs: 3
  max_examples: 5000                       # Prune history above this size
  keep_examples: 4000                      # Records kept after pruning
  monitor_interval_seconds: 60
  queue_max_retries: 3

# State database path
state_db_path: "data/state.db"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
