"""Test fixtures and utilities."""

import json
from pathlib import Path

import pytest

from office_ingest.schemas import ExtractionCallResult
from office_ingest.state_store import StateStore

MARKER_LINE = "------------------------- FIN PÁGINA {n} -------------------------"

# Two OCR'd pages of an explanation-of-benefits report
SAMPLE_DOCUMENT_TEXT = "\n".join(
    [
        "EXPLANATION OF BENEFITS",
        "Check # 100234   Aetna   Amount 150.00",
        "Patient: John Doe   DOS 2024-01-15   Code 99213   Paid 100.00",
        "Patient: Mary Roe   DOS 2024-01-16   Code 99214   Paid 50.00",
        MARKER_LINE.format(n=1),
        "Check # 100235   Cigna   Amount 80.00",
        "Patient: Ann Poe   DOS 2024-02-01   Code 99212   Paid 80.00",
        MARKER_LINE.format(n=2),
    ]
)

SAMPLE_TRANSACTIONS = [
    {
        "patient_id": "P-1",
        "patient_name": "John Doe",
        "insurance_company": "Aetna",
        "check_amount": 150.0,
        "posted_amount": 100.0,
        "check_number": "100234",
        "service_date": "2024-01-15",
        "code": "99213",
        "other_amount": None,
    },
    {
        "patient_id": "P-2",
        "patient_name": "Mary Roe",
        "insurance_company": "Aetna",
        "check_amount": 150.0,
        "posted_amount": "50.00",
        "check_number": "100234",
        "service_date": "2024-01-16",
        "code": "99214",
        "other_amount": None,
    },
]


def fenced(transactions: list) -> str:
    """Assistant-style answer: prose around a ```json fence."""
    return "Aquí están las transacciones:\n```json\n" + json.dumps(transactions) + "\n```\n"


class FakeExtractionClient:
    """Records calls; answers from a per-chunk-text mapping or a default."""

    def __init__(self, responses: dict | None = None, default: str = "[]", failures: dict | None = None):
        self.responses = responses or {}
        self.default = default
        self.failures = failures or {}
        self.calls: list[tuple[str, str, str]] = []

    async def process_chunk(self, assistant_id: str, chunk_text: str, prompt_text: str):
        self.calls.append((assistant_id, chunk_text, prompt_text))
        if chunk_text in self.failures:
            raise self.failures[chunk_text]
        text = self.responses.get(chunk_text, self.default)
        n = len(self.calls)
        return ExtractionCallResult(response_text=text, run_id=f"run_{n}", thread_id=f"thread_{n}")


class FakeRecorder:
    """In-memory history recorder."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.records: list[dict] = []

    async def record_extraction(self, **kwargs) -> int:
        if self.fail:
            raise RuntimeError("database is locked")
        self.records.append(kwargs)
        return len(self.records)


@pytest.fixture
def sample_document_text() -> str:
    """Two-page document with page markers."""
    return SAMPLE_DOCUMENT_TEXT


@pytest.fixture
def sample_transactions() -> list[dict]:
    """Two transactions sharing one check number."""
    return [dict(t) for t in SAMPLE_TRANSACTIONS]


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"


@pytest.fixture
def store(temp_db) -> StateStore:
    """Fresh state store with migrations applied."""
    return StateStore(temp_db)


def add_validated(store: StateStore, office_id: int, count: int, status=None, corrected=None) -> list[int]:
    """Insert `count` history records and mark them validated."""
    from office_ingest.state_store import ValidationStatus

    status = status or ValidationStatus.CORRECT
    ids = []
    for i in range(count):
        record_id = store.save_validation(
            office_id=office_id,
            file_name=f"doc_{i}.pdf",
            input_text=f"page {i}",
            openai_response=f'[{{"check_number": "{i}"}}]',
            prompt_used="extract",
            assistant_id="asst_1",
            thread_id=f"thread_{i}",
            run_id=f"run_{i}",
        )
        store.mark_validated(record_id, status, "tester", corrected, None)
        ids.append(record_id)
    return ids
