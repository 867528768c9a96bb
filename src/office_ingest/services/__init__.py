"""Services for assistant provisioning, extraction history and fine-tuning."""

from .assistants import AssistantProvisioner
from .cache import TTLCache
from .fine_tuning import FineTuningError, FineTuningService
from .fine_tuning_queue import FineTuningQueueService
from .history import HistoryRecorder
from .prompts import DEFAULT_EXTRACTION_PROMPT, PromptService

__all__ = [
    "AssistantProvisioner",
    "TTLCache",
    "FineTuningError",
    "FineTuningService",
    "FineTuningQueueService",
    "HistoryRecorder",
    "PromptService",
    "DEFAULT_EXTRACTION_PROMPT",
]
