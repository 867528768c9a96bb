"""
Typed views of Assistants API responses.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class RunStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    EXPIRED = "expired"


# Runs in these states will never complete
FAILED_RUN_STATUSES = {RunStatus.FAILED.value, RunStatus.CANCELLED.value, RunStatus.EXPIRED.value}


class FileStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSED = "processed"
    ERROR = "error"


@dataclass
class AssistantInfo:
    """Assistant details as stored by the API."""

    id: str
    name: str
    model: str
    instructions: str
    created_at: int

    @classmethod
    def from_api_response(cls, data: dict) -> "AssistantInfo":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            model=data.get("model") or "",
            instructions=data.get("instructions") or "",
            created_at=data.get("created_at") or 0,
        )


@dataclass
class FineTuningJobStatus:
    """State of a fine-tuning job."""

    id: str
    status: str
    model: str
    fine_tuned_model: Optional[str] = None
    training_file: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[int] = None
    finished_at: Optional[int] = None

    @classmethod
    def from_api_response(cls, data: dict) -> "FineTuningJobStatus":
        error = data.get("error") or {}
        return cls(
            id=data["id"],
            status=data.get("status") or "",
            model=data.get("model") or "",
            fine_tuned_model=data.get("fine_tuned_model"),
            training_file=data.get("training_file"),
            error_message=error.get("message") if isinstance(error, dict) else None,
            created_at=data.get("created_at"),
            finished_at=data.get("finished_at"),
        )
