"""Document-style persistence backed by Supabase."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from supabase import Client, create_client

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

CUSTOMERS_COLLECTION = "customers"
CALLS_COLLECTION = "calls"
SCHEDULED_EVENTS_COLLECTION = "scheduled_events"


class DocumentStore(ABC):
    """Collection-style store: equality queries plus get/set/update/delete by id."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return documents whose fields equal every value in ``filters``."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return one document by id, or None."""

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or replace a document."""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Merge ``data`` into an existing document."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document by id."""


class SupabaseDocumentStore(DocumentStore):
    """DocumentStore over Supabase tables, one table per collection.

    The supabase client is synchronous, so every request runs in a worker
    thread to keep the event loop free.
    """

    def __init__(self, client: Optional[Client] = None, settings: Optional[Settings] = None):
        if client is None:
            settings = settings or get_settings()
            if not settings.supabase_url or not settings.supabase_key:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY must be configured")
            client = create_client(settings.supabase_url, settings.supabase_key)
            logger.info("Connected to Supabase")
        self.supabase = client

    async def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        def _run() -> List[Dict[str, Any]]:
            request = self.supabase.table(collection).select("*")
            for field, value in (filters or {}).items():
                request = request.eq(field, value)
            if order_by:
                request = request.order(order_by, desc=descending)
            if limit:
                request = request.limit(limit)
            response = request.execute()
            return response.data or []

        return await asyncio.to_thread(_run)

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        rows = await self.query(collection, {"id": doc_id}, limit=1)
        return rows[0] if rows else None

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        payload = {**data, "id": doc_id}
        await asyncio.to_thread(
            lambda: self.supabase.table(collection).upsert(payload).execute()
        )

    async def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        await asyncio.to_thread(
            lambda: self.supabase.table(collection).update(data).eq("id", doc_id).execute()
        )

    async def delete(self, collection: str, doc_id: str) -> None:
        await asyncio.to_thread(
            lambda: self.supabase.table(collection).delete().eq("id", doc_id).execute()
        )


# Global store instance
_store_instance: Optional[DocumentStore] = None


def get_document_store() -> DocumentStore:
    """Get or create the shared document store."""
    global _store_instance
    if _store_instance is None:
        _store_instance = SupabaseDocumentStore()
    return _store_instance
