"""Prompt templates for assistant-based extraction.

The extraction prompt is stored per office and versioned in the state
store; DEFAULT_EXTRACTION_PROMPT seeds it for offices that have none.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..state_store import PromptRecord, StateStore

logger = logging.getLogger(__name__)

# v1.0: Medical billing extraction fields
PROMPT_VERSION = "v1.0"

DEFAULT_EXTRACTION_PROMPT = (
    "You are a medical billing data extraction specialist. Extract transaction data "
    "from financial documents and return valid JSON with these exact fields: "
    "patient_id, patient_name, insurance_company, check_amount, posted_amount, "
    "check_number, service_date, code, other_amount. Use null for missing values. "
    "Return array of objects for multiple transactions."
)


@dataclass
class AssistantInstructions:
    """Instructions given to an office's assistant at creation time.

    Attributes:
        version: Prompt version, for auditing.
        template: Instructions with office and source system placeholders.
    """

    version: str = PROMPT_VERSION

    template: str = (
        "Eres un sistema experto en la extracción de datos de documentos de la oficina "
        "{office_name}. Los archivos que vas a procesar provienen del software "
        "{source_system}. Debes devolver siempre un JSON estructurado, con un objeto "
        "por registro."
    )

    def format(self, office_name: str, source_system: str) -> str:
        return self.template.format(office_name=office_name, source_system=source_system)


class PromptService:
    """Resolves and versions the extraction prompt of each office."""

    def __init__(self, state_store: StateStore):
        self.store = state_store

    def get_or_create(self, office_id: int) -> PromptRecord:
        """Latest prompt of the office, seeding the default if it has none."""
        prompt = self.store.get_latest_prompt(office_id)
        if prompt is not None:
            return prompt

        prompt = self.store.save_prompt(
            office_id=office_id,
            name=f"Default prompt - office {office_id}",
            description="Default prompt created automatically for medical data extraction",
            content=DEFAULT_EXTRACTION_PROMPT,
        )
        logger.info("Created default prompt for office %d", office_id)
        return prompt

    def update(self, office_id: int, content: str, name: str | None = None) -> PromptRecord:
        """Store a new prompt version; unchanged content is not duplicated."""
        content = content.strip()
        if not content:
            raise ValueError("Prompt content must not be empty")

        current = self.store.get_latest_prompt(office_id)
        if current is not None and current.content == content:
            return current

        return self.store.save_prompt(
            office_id=office_id,
            name=name or f"Prompt - office {office_id}",
            content=content,
        )
