"""End-to-end tests for DocumentService with in-memory collaborators."""

import asyncio
import sqlite3

import responses

from office_ingest.config import Config
from office_ingest.pipeline.service import build_document_service
from office_ingest.pipeline.splitter import split_chunks

from .conftest import SAMPLE_DOCUMENT_TEXT, SAMPLE_TRANSACTIONS, FakeExtractionClient, fenced


class FakeAssistantBackend(FakeExtractionClient):
    """Extraction client that can also provision assistants."""

    def __init__(self, *args, fail_provisioning: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_provisioning = fail_provisioning
        self.assistants_created = 0

    async def create_vector_store(self, name: str) -> str:
        return "vs_1"

    async def create_assistant(self, name, instructions, model, vector_store_id) -> str:
        if self.fail_provisioning:
            raise RuntimeError("invalid model")
        self.assistants_created += 1
        return f"asst_{self.assistants_created}"

    async def delete_assistant(self, assistant_id: str) -> bool:
        return True


def make_config(tmp_path, **pipeline) -> Config:
    config = Config(state_db_path=tmp_path / "state.db")
    config.ocr.endpoint = ""
    config.pipeline.batch_delay_seconds = 0
    for key, value in pipeline.items():
        setattr(config.pipeline, key, value)
    return config


def process(service, content: bytes, file_name="eob.txt", office_id=1):
    return asyncio.run(service.process_document(content, file_name, office_id, user_id=42))


class TestProcessDocument:
    """Tests for DocumentService.process_document()."""

    def test_success(self, tmp_path, store):
        client = FakeAssistantBackend(default=fenced(SAMPLE_TRANSACTIONS))
        service = build_document_service(make_config(tmp_path), store, client)

        result = process(service, SAMPLE_DOCUMENT_TEXT.encode("utf-8"))
        payload = result.to_dict()

        assert payload["success"] is True
        assert payload["error"] is None
        assert payload["totalSeconds"] >= 0
        assert payload["result"]["assistantId"] == "asst_1"
        assert payload["result"]["chunksProcessed"] == 2
        # Each chunk yields one header followed by its two details
        assert payload["result"]["totalTransactions"] == 6
        rows = payload["result"]["flattenedTransactions"]
        assert rows[0]["checkNumber"] == "100234"
        assert rows[0]["amount"] == "150.00"
        assert rows[0]["orderInList"] == 1
        assert len(payload["chunkTimings"]) == 2
        assert set(payload["timings"]) == {
            "find_assistant",
            "extract_text",
            "split_chunks",
            "get_prompt",
            "process_chunks",
            "total",
        }

    def test_history_recorded_and_check_queued(self, tmp_path, store):
        client = FakeAssistantBackend(default="[]")
        service = build_document_service(make_config(tmp_path), store, client)

        process(service, SAMPLE_DOCUMENT_TEXT.encode("utf-8"), office_id=3)

        records = store.list_validations(3)
        assert len(records) == 2
        assert {r.assistant_id for r in records} == {"asst_1"}
        assert store.get_latest_prompt(3) is not None
        assert store.get_queue_stats()["pending"] == 1

    def test_assistant_reused_across_documents(self, tmp_path, store):
        client = FakeAssistantBackend()
        service = build_document_service(make_config(tmp_path), store, client)

        process(service, b"first document")
        process(service, b"second document")

        assert client.assistants_created == 1

    def test_chunk_failure(self, tmp_path, store):
        second_page = split_chunks(SAMPLE_DOCUMENT_TEXT)[1].text
        client = FakeAssistantBackend(
            default=fenced(SAMPLE_TRANSACTIONS),
            failures={second_page: RuntimeError("upstream 500")},
        )
        service = build_document_service(make_config(tmp_path), store, client)

        payload = process(service, SAMPLE_DOCUMENT_TEXT.encode("utf-8")).to_dict()

        assert payload["success"] is False
        assert payload["error"] == "Error procesando chunk 2: upstream 500"
        assert payload["totalSeconds"] == -1
        assert payload["result"] is None
        assert len(payload["chunkTimings"]) == 2

    def test_provisioning_failure(self, tmp_path, store):
        client = FakeAssistantBackend(fail_provisioning=True)
        service = build_document_service(make_config(tmp_path), store, client)

        payload = process(service, b"text").to_dict()

        assert payload["success"] is False
        assert payload["error"] == "Error al crear asistente: invalid model"
        assert client.calls == []

    def test_file_too_large(self, tmp_path, store):
        client = FakeAssistantBackend()
        service = build_document_service(make_config(tmp_path, max_file_bytes=10), store, client)

        payload = process(service, b"x" * 11).to_dict()

        assert payload["success"] is False
        assert payload["error"] == "El archivo excede el tamaño máximo permitido (10 bytes)"
        assert client.assistants_created == 0

    def test_unsupported_file(self, tmp_path, store):
        client = FakeAssistantBackend()
        service = build_document_service(make_config(tmp_path), store, client)

        payload = process(service, b"\x00\x01\x02\x03\x04\x05", file_name="blob.bin").to_dict()

        assert payload["success"] is False
        assert payload["error"].startswith("Error al extraer texto:")

    def test_pdf_without_ocr(self, tmp_path, store):
        service = build_document_service(make_config(tmp_path), store, FakeAssistantBackend())

        payload = process(service, b"%PDF-1.4 ...", file_name="eob.pdf").to_dict()

        assert payload["success"] is False
        assert payload["error"].startswith("Error al extraer texto:")

    def test_empty_document(self, tmp_path, store):
        client = FakeAssistantBackend()
        service = build_document_service(make_config(tmp_path), store, client)

        payload = process(service, b"   ").to_dict()

        assert payload["success"] is True
        assert payload["result"]["chunksProcessed"] == 0
        assert payload["result"]["flattenedTransactions"] == []

    def test_prompt_store_error(self, tmp_path, store, monkeypatch):
        service = build_document_service(make_config(tmp_path), store, FakeAssistantBackend())

        def locked(office_id):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(service.prompts, "get_or_create", locked)

        payload = process(service, SAMPLE_DOCUMENT_TEXT.encode("utf-8")).to_dict()

        assert payload["success"] is False
        assert payload["error"] == "Error al obtener el prompt: database is locked"
        assert payload["totalSeconds"] == -1
        assert "get_prompt" in payload["timings"]

    @responses.activate
    def test_malformed_ocr_body(self, tmp_path, store):
        responses.add(
            responses.POST, "http://ocr.test/ocr", json={"reconstructed_text": 42}, status=200
        )
        config = make_config(tmp_path)
        config.ocr.endpoint = "http://ocr.test/ocr"
        service = build_document_service(config, store, FakeAssistantBackend())

        payload = process(service, b"%PDF-1.4 ...", file_name="eob.pdf").to_dict()

        assert payload["success"] is False
        assert payload["error"].startswith("Error al extraer texto: OCR failed")
