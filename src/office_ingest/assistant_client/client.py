"""
Assistants API client implementation (httpx, async).
"""

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from typing import Any, Optional

import httpx

from ..schemas import ExtractionCallResult
from .models import (
    FAILED_RUN_STATUSES,
    AssistantInfo,
    FileStatus,
    FineTuningJobStatus,
    RunStatus,
)

logger = logging.getLogger(__name__)

CHUNK_INSTRUCTION = "Procesa el siguiente contenido:"
GENERIC_INSTRUCTION = (
    "Procesa el siguiente contenido y extrae los datos relevantes en formato JSON:"
)


class AssistantError(Exception):
    """Base exception for Assistants API client errors."""
    pass


class AssistantAPIError(AssistantError):
    """API returned an error response."""
    def __init__(self, status_code: int, message: str, response_body: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"OpenAI API error {status_code}: {message}")


class AssistantConnectionError(AssistantError):
    """Failed to reach the API, or the request timed out."""
    pass


class AssistantRunError(AssistantError):
    """A run ended without a usable answer."""
    def __init__(self, message: str, run_id: Optional[str] = None, status: Optional[str] = None):
        self.run_id = run_id
        self.status = status
        super().__init__(message)


def build_chunk_message(chunk_text: str, prompt_text: Optional[str]) -> str:
    """User message sent to the assistant for one chunk."""
    if prompt_text:
        return f"{prompt_text}\n\n{CHUNK_INSTRUCTION}\n{chunk_text}"
    return f"{GENERIC_INSTRUCTION}\n{chunk_text}"


def _first_assistant_text(messages: list[dict]) -> Optional[str]:
    """First text content of the first assistant message (API lists newest first)."""
    for message in messages:
        if message.get("role") != "assistant":
            continue
        for content in message.get("content") or []:
            if content.get("type") == "text":
                return (content.get("text") or {}).get("value")
        return None
    return None


class AssistantClient:
    """
    Async client for the OpenAI Assistants v2 API.

    Features:
    - One fresh thread per extraction
    - Run polling with a bounded number of polls
    - Assistant, vector store, file and fine-tuning job management

    Use as an async context manager, or call aclose().
    """

    DEFAULT_BASE_URL = "https://api.openai.com/v1"
    FILE_POLL_INTERVAL = 1.0

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        run_timeout: float = 90.0,
        poll_interval: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the client.

        Args:
            api_key: OpenAI API key
            base_url: API root
            timeout: Read timeout per HTTP request (seconds)
            run_timeout: Maximum time a run is polled (seconds)
            poll_interval: Delay between run status polls (seconds)
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Awaitable sleep used between polls
        """
        if not api_key:
            raise AssistantError("OpenAI API key is not configured")
        self.base_url = base_url.rstrip("/")
        self.run_timeout = run_timeout
        self.poll_interval = poll_interval
        self._sleep = sleep

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "OpenAI-Beta": "assistants=v2",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(connect=10.0, read=float(timeout), write=30.0, pool=10.0),
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[dict] = None,
        params: Optional[dict] = None,
        files: Optional[dict] = None,
        data: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make an API request and return the decoded JSON body."""
        try:
            response = await self._client.request(
                method,
                endpoint,
                json=json_data,
                params=params,
                files=files,
                data=data,
            )
        except httpx.TimeoutException as e:
            raise AssistantConnectionError(f"Request to OpenAI timed out: {e}") from e
        except httpx.RequestError as e:
            raise AssistantConnectionError(f"Failed to connect to OpenAI at {self.base_url}: {e}") from e

        if response.is_error:
            logger.error("OpenAI API error %s on %s %s", response.status_code, method, endpoint)
            raise AssistantAPIError(
                status_code=response.status_code,
                message=response.reason_phrase,
                response_body=response.text,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise AssistantError(f"Invalid JSON from {endpoint}: {e}") from e

    # Threads and runs

    async def create_thread(self) -> str:
        data = await self._request("POST", "/threads", json_data={})
        return data["id"]

    async def add_message(self, thread_id: str, content: str) -> str:
        data = await self._request(
            "POST",
            f"/threads/{thread_id}/messages",
            json_data={"role": "user", "content": content},
        )
        return data.get("id", "")

    async def create_run(self, thread_id: str, assistant_id: str) -> str:
        data = await self._request(
            "POST", f"/threads/{thread_id}/runs", json_data={"assistant_id": assistant_id}
        )
        return data["id"]

    async def get_run(self, thread_id: str, run_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/threads/{thread_id}/runs/{run_id}")

    async def wait_for_run(self, thread_id: str, run_id: str) -> dict[str, Any]:
        """
        Poll a run until it completes.

        Raises:
            AssistantRunError: If the run fails, is cancelled, expires, or is
                still running after run_timeout
        """
        max_polls = max(1, math.ceil(self.run_timeout / self.poll_interval))
        for _ in range(max_polls):
            run = await self.get_run(thread_id, run_id)
            status = run.get("status")
            if status == RunStatus.COMPLETED.value:
                return run
            if status in FAILED_RUN_STATUSES:
                error = (run.get("last_error") or {}).get("message")
                detail = f": {error}" if error else ""
                raise AssistantRunError(
                    f"Run ended with status {status}{detail}", run_id=run_id, status=status
                )
            await self._sleep(self.poll_interval)

        raise AssistantRunError(
            f"Run did not complete within {self.run_timeout:g}s", run_id=run_id, status="timeout"
        )

    async def list_messages(self, thread_id: str) -> list[dict]:
        data = await self._request("GET", f"/threads/{thread_id}/messages")
        return data.get("data") or []

    async def process_chunk(
        self, assistant_id: str, chunk_text: str, prompt_text: str
    ) -> ExtractionCallResult:
        """
        Run the assistant over one chunk in a new thread.

        Raises:
            AssistantError: On any API failure, a failed run, or a run that
                produced no assistant text
        """
        thread_id = await self.create_thread()
        await self.add_message(thread_id, build_chunk_message(chunk_text, prompt_text))
        run_id = await self.create_run(thread_id, assistant_id)
        logger.debug("Started run %s on thread %s", run_id, thread_id)

        await self.wait_for_run(thread_id, run_id)

        text = _first_assistant_text(await self.list_messages(thread_id))
        if text is None:
            raise AssistantRunError("No assistant response found", run_id=run_id)

        logger.debug("Run %s returned %d chars", run_id, len(text))
        return ExtractionCallResult(response_text=text, run_id=run_id, thread_id=thread_id)

    # Assistants and vector stores

    async def create_vector_store(self, name: str) -> str:
        data = await self._request("POST", "/vector_stores", json_data={"name": name})
        return data["id"]

    async def create_assistant(
        self,
        name: str,
        instructions: str,
        model: str,
        vector_store_id: Optional[str] = None,
    ) -> str:
        """Create an assistant with code interpreter and file search tools."""
        payload: dict[str, Any] = {
            "name": name,
            "instructions": instructions,
            "model": model,
            "tools": [{"type": "code_interpreter"}, {"type": "file_search"}],
        }
        if vector_store_id:
            payload["tool_resources"] = {
                "file_search": {"vector_store_ids": [vector_store_id]}
            }
        data = await self._request("POST", "/assistants", json_data=payload)
        return data["id"]

    async def get_assistant(self, assistant_id: str) -> AssistantInfo:
        data = await self._request("GET", f"/assistants/{assistant_id}")
        return AssistantInfo.from_api_response(data)

    async def delete_assistant(self, assistant_id: str) -> bool:
        """Delete an assistant; a 404 counts as already deleted."""
        try:
            data = await self._request("DELETE", f"/assistants/{assistant_id}")
        except AssistantAPIError as e:
            if e.status_code == 404:
                return False
            raise
        return bool(data.get("deleted", True))

    # Files and fine-tuning

    async def upload_file(self, file_name: str, content: bytes, purpose: str = "fine-tune") -> str:
        data = await self._request(
            "POST",
            "/files",
            files={"file": (file_name, content, "application/jsonl")},
            data={"purpose": purpose},
        )
        return data["id"]

    async def wait_for_file(self, file_id: str, timeout: float = 300.0) -> None:
        """
        Wait until an uploaded file is processed.

        Raises:
            AssistantError: If processing fails or takes longer than timeout
        """
        max_polls = max(1, math.ceil(timeout / self.FILE_POLL_INTERVAL))
        for _ in range(max_polls):
            data = await self._request("GET", f"/files/{file_id}")
            status = data.get("status")
            if status == FileStatus.PROCESSED.value:
                return
            if status == FileStatus.ERROR.value:
                raise AssistantError(f"File {file_id} failed processing")
            await self._sleep(self.FILE_POLL_INTERVAL)
        raise AssistantError(f"File {file_id} not processed within {timeout:g}s")

    async def create_fine_tuning_job(
        self,
        training_file: str,
        model: str,
        n_epochs: int,
        suffix: str,
    ) -> str:
        data = await self._request(
            "POST",
            "/fine_tuning/jobs",
            json_data={
                "training_file": training_file,
                "model": model,
                "hyperparameters": {"n_epochs": n_epochs},
                "suffix": suffix,
            },
        )
        return data["id"]

    async def get_fine_tuning_job(self, job_id: str) -> FineTuningJobStatus:
        data = await self._request("GET", f"/fine_tuning/jobs/{job_id}")
        return FineTuningJobStatus.from_api_response(data)

    async def test_connection(self) -> bool:
        """Check that the API key is accepted."""
        try:
            await self._request("GET", "/models")
            return True
        except AssistantError:
            return False

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "AssistantClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
