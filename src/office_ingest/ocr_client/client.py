"""
OCR service API client implementation.
"""

import logging
import time
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)


class OCRError(Exception):
    """Base exception for OCR client errors."""
    pass


class OCRAPIError(OCRError):
    """OCR service returned an error response."""
    def __init__(self, status_code: int, message: str, response_body: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"OCR service error {status_code}: {message}")


class OCRConnectionError(OCRError):
    """Failed to reach the OCR service."""
    pass


class OCRClient:
    """
    Client for the PDF OCR service.

    Features:
    - Multipart PDF upload
    - Automatic retry with backoff on 429/5xx
    - Long timeout for large documents
    """

    DEFAULT_TIMEOUT = 900

    def __init__(
        self,
        endpoint: str,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = 3,
        backoff_factor: float = 1.0,
    ):
        """
        Initialize OCR client.

        Args:
            endpoint: Full URL of the OCR upload endpoint
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts for transient failures
            backoff_factor: Backoff factor for retries
        """
        if not endpoint:
            raise OCRError("OCR endpoint is not configured")
        self.endpoint = endpoint
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})

        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["POST"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def extract_text(self, file_name: str, pdf_bytes: bytes) -> str:
        """
        Send a PDF to the OCR service.

        Returns:
            The service's reconstructed_text

        Raises:
            OCRConnectionError: On network failure or timeout
            OCRAPIError: On a non-2xx response
            OCRError: If the response lacks reconstructed_text
        """
        logger.info("Sending %s to OCR (%d bytes)", file_name, len(pdf_bytes))
        started = time.monotonic()

        try:
            response = self.session.post(
                self.endpoint,
                files={"file": (file_name, pdf_bytes, "application/pdf")},
                timeout=self.timeout,
            )
        except requests.exceptions.ConnectionError as e:
            raise OCRConnectionError(f"Failed to connect to OCR service at {self.endpoint}: {e}")
        except requests.exceptions.Timeout as e:
            raise OCRConnectionError(f"Request to OCR service timed out: {e}")
        except requests.exceptions.RequestException as e:
            raise OCRError(f"OCR request failed: {e}")

        logger.info(
            "OCR request completed in %dms - status %d",
            int((time.monotonic() - started) * 1000),
            response.status_code,
        )

        if not response.ok:
            raise OCRAPIError(
                status_code=response.status_code,
                message=response.reason,
                response_body=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise OCRError(f"OCR service returned invalid JSON: {e}")

        text = data.get("reconstructed_text") if isinstance(data, dict) else None
        if text is None:
            raise OCRError("OCR response does not contain 'reconstructed_text'")
        if not isinstance(text, str):
            raise OCRError(
                f"OCR 'reconstructed_text' is {type(text).__name__}, expected a string"
            )
        return text

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "OCRClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()
