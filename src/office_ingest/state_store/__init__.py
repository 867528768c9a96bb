"""
State Store (SQLite-based).

Lightweight persistent DB for tracking:
- Office assistants, prompts and model configuration
- Extraction history awaiting human validation
- Fine-tuning jobs and pending eligibility checks
"""

from .sqlite_store import (
    AssistantRecord,
    FineTuningJobRecord,
    FineTuningJobState,
    OfficeModelConfig,
    PromptRecord,
    StateStore,
    ValidationRecord,
    ValidationStatus,
    content_hash,
)

__all__ = [
    "StateStore",
    "AssistantRecord",
    "PromptRecord",
    "OfficeModelConfig",
    "ValidationRecord",
    "ValidationStatus",
    "FineTuningJobRecord",
    "FineTuningJobState",
    "content_hash",
]
