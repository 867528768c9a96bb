"""
Assistant provisioning.

Every office has one active assistant. Provisioning makes sure it exists
and runs the office's current model against the office's vector store:

1. Resolve the model (fine-tuned model if enabled, else the base model)
2. Resolve the vector store, creating one if the office has none
3. Reuse the active assistant if model and vector store match
4. Otherwise delete it and create a new one

Resolved assistants are cached per office. Provisioning of one office is
serialized with a per-office lock so concurrent documents do not create
duplicate assistants.
"""

import asyncio
import logging
from typing import Optional

from ..assistant_client import AssistantClient
from ..pipeline.errors import AssistantProvisioningError
from ..state_store import AssistantRecord, StateStore
from .cache import TTLCache
from .prompts import AssistantInstructions

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_SYSTEM = "Sistema_General"


def office_display_name(office_id: int) -> str:
    return f"Oficina_{office_id}"


class AssistantProvisioner:
    """Ensures each office has a usable assistant."""

    def __init__(
        self,
        state_store: StateStore,
        client: AssistantClient,
        default_model: str = "gpt-4o",
        cache: Optional[TTLCache[AssistantRecord]] = None,
        cache_ttl: float = 1800,
    ):
        self.store = state_store
        self.client = client
        self.default_model = default_model
        self.cache: TTLCache[AssistantRecord] = cache or TTLCache(ttl=cache_ttl)
        self._instructions = AssistantInstructions()
        self._locks: dict[int, asyncio.Lock] = {}

    def _lock_for(self, office_id: int) -> asyncio.Lock:
        lock = self._locks.get(office_id)
        if lock is None:
            lock = self._locks[office_id] = asyncio.Lock()
        return lock

    def resolve_model(self, office_id: int) -> str:
        config = self.store.get_office_model_config(office_id)
        if config is None:
            return self.default_model
        return config.model_to_use()

    async def ensure_assistant(
        self,
        office_id: int,
        office_name: Optional[str] = None,
        source_system: str = DEFAULT_SOURCE_SYSTEM,
    ) -> AssistantRecord:
        """
        Return the office's assistant, creating or replacing it if needed.

        Raises:
            AssistantProvisioningError: If the assistant cannot be resolved
                or created
        """
        cached = self.cache.get(office_id)
        if cached is not None:
            return cached

        async with self._lock_for(office_id):
            cached = self.cache.get(office_id)
            if cached is not None:
                return cached
            try:
                record = await self._provision(
                    office_id, office_name or office_display_name(office_id), source_system
                )
            except AssistantProvisioningError:
                raise
            except Exception as e:
                logger.error("Assistant provisioning failed for office %d: %s", office_id, e)
                raise AssistantProvisioningError(f"Error al crear asistente: {e}") from e

            self.cache.set(office_id, record)
            return record

    async def _provision(
        self, office_id: int, office_name: str, source_system: str
    ) -> AssistantRecord:
        model = await asyncio.to_thread(self.resolve_model, office_id)

        vector_store_id = await asyncio.to_thread(self.store.get_vector_store_id, office_id)
        if not vector_store_id:
            vector_store_id = await self.client.create_vector_store(
                f"VectorStore_Oficina_{office_id}_{office_name}"
            )
            logger.info("Created vector store %s for office %d", vector_store_id, office_id)

        existing = await asyncio.to_thread(self.store.get_active_assistant, office_id)
        if existing is not None:
            if existing.model_id == model and existing.vector_store_id == vector_store_id:
                return existing
            logger.info(
                "Replacing assistant %s for office %d (model %s -> %s)",
                existing.assistant_id,
                office_id,
                existing.model_id,
                model,
            )
            await self.client.delete_assistant(existing.assistant_id)
            await asyncio.to_thread(self.store.deactivate_assistant, existing.assistant_id)

        assistant_id = await self.client.create_assistant(
            name=f"Asistente {office_name}",
            instructions=self._instructions.format(office_name, source_system),
            model=model,
            vector_store_id=vector_store_id,
        )
        logger.info("Created assistant %s for office %d using %s", assistant_id, office_id, model)

        return await asyncio.to_thread(
            self.store.save_assistant,
            office_id,
            office_name,
            source_system,
            assistant_id,
            vector_store_id,
            model,
        )

    def invalidate(self, office_id: int) -> None:
        """Forget the cached assistant so the next document re-provisions."""
        self.cache.invalidate(office_id)
