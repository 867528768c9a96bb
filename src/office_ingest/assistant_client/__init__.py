"""
Async client for the OpenAI Assistants v2 API.

Covers the calls the pipeline needs: threads, messages, runs, assistants,
vector stores, files and fine-tuning jobs.
"""

from .client import (
    AssistantAPIError,
    AssistantClient,
    AssistantConnectionError,
    AssistantError,
    AssistantRunError,
    build_chunk_message,
)
from .models import AssistantInfo, FileStatus, FineTuningJobStatus, RunStatus

__all__ = [
    "AssistantClient",
    "AssistantError",
    "AssistantAPIError",
    "AssistantConnectionError",
    "AssistantRunError",
    "AssistantInfo",
    "FileStatus",
    "FineTuningJobStatus",
    "RunStatus",
    "build_chunk_message",
]
