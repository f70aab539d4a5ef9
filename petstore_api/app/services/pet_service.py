"""
Business logic for pets.

Pets live in the ``pets`` collection, indexed by ``status`` and by tag
name.  The service converts API models into plain records and hands
them to the document store.  Store calls block on Redis, so they run
in FastAPI's threadpool rather than on the event loop.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from petstore_api.app.core.kv import get_document_store, get_query_evaluator
from petstore_api.app.schemas.pet import Pet

COLLECTION = "pets"

logger = logging.getLogger(__name__)


class PetService:
    """Service class for pets."""

    @classmethod
    async def create_pet(cls, data: Pet) -> Dict[str, Any]:
        """Insert a pet and return the stored record.

        A pet with the same id is replaced.  Raises ``ValidationError``
        if ``id`` or ``status`` is missing or a tag has no ``name``.
        """
        record = data.to_record()
        logger.info("Creating pet %s", record.get("id"))
        store = get_document_store()
        await run_in_threadpool(store.insert, COLLECTION, record)
        return record

    @classmethod
    async def update_pet(cls, data: Pet) -> Optional[Dict[str, Any]]:
        """Replace an existing pet.  Returns ``None`` if it does not exist."""
        record = data.to_record()
        logger.info("Updating pet %s", record.get("id"))
        store = get_document_store()
        if not await run_in_threadpool(store.update, COLLECTION, record):
            return None
        return record

    @classmethod
    async def delete_pet(cls, pet_id: str) -> bool:
        logger.info("Deleting pet %s", pet_id)
        store = get_document_store()
        return await run_in_threadpool(store.delete, COLLECTION, pet_id)

    @classmethod
    async def get_pet(cls, pet_id: str) -> Optional[Dict[str, Any]]:
        store = get_document_store()
        return await run_in_threadpool(store.find_one, COLLECTION, pet_id)

    @classmethod
    async def list_pets(cls) -> List[Dict[str, Any]]:
        store = get_document_store()
        return await run_in_threadpool(store.find_all, COLLECTION)

    @classmethod
    async def find_by_status(cls, statuses: List[str]) -> List[Dict[str, Any]]:
        """Return pets whose status is any of ``statuses``."""
        logger.info("Finding pets by status %s", statuses)
        evaluator = get_query_evaluator()
        return await run_in_threadpool(evaluator.find, COLLECTION, "status", statuses)

    @classmethod
    async def find_by_tags(cls, tags: List[str]) -> List[Dict[str, Any]]:
        """Return pets carrying any of ``tags``."""
        logger.info("Finding pets by tags %s", tags)
        evaluator = get_query_evaluator()
        return await run_in_threadpool(evaluator.find, COLLECTION, "tags", tags)
