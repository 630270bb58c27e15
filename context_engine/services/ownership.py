"""Ownership checks in front of every mutating ingestion entry point.

:class:`OwnershipGuard` holds the individual checks; :class:`SecureContextService`
is the only object external callers (CLI, web layer) should hold for
writes.  Each of its methods runs, before any other logic:

    1. id format check for the tenant (and context, on edit/delete)
    2. ownership check: the tenant's chatbot exists and is owned by the principal
    3. edit/delete only: the context belongs to the tenant

Step 3 repeats what the tenant-scoped store queries already enforce.
It stays as an independent check against cross-tenant id guessing.
"""

from __future__ import annotations

from typing import Any

import structlog

from context_engine.interfaces.document_store import IDocumentStore
from context_engine.models.context import ContextMetadata
from context_engine.models.rag import IngestionResult
from context_engine.services.ingestion_service import ContextIngestionService
from context_engine.utils.errors import AccessDeniedError, InvalidIdError, NotFoundError
from context_engine.utils.ids import is_valid_id

logger = structlog.get_logger(logger_name=__name__)


class OwnershipGuard:
    """Stateless checks against the tenant (chatbot) records."""

    def __init__(self, store: IDocumentStore) -> None:
        self._store = store

    @staticmethod
    def validate_id_format(value: Any, field: str = "id") -> str:
        """Return *value* unchanged if it has the opaque-id shape.

        Raises
        ------
        InvalidIdError
            For anything else, including non-strings.
        """
        if not is_valid_id(value):
            raise InvalidIdError(message=f"Malformed {field}", field=field)
        return value

    async def validate_ownership(self, tenant_id: str, principal_id: str) -> None:
        """Raise :class:`AccessDeniedError` unless *principal_id* owns *tenant_id*."""
        chatbot = await self._store.get_chatbot(tenant_id)
        if chatbot is None or not principal_id or chatbot.owner_id != principal_id:
            logger.warning(
                "ownership_denied",
                tenant_id=tenant_id,
                principal_id=principal_id,
                chatbot_exists=chatbot is not None,
            )
            raise AccessDeniedError(tenant_id=tenant_id, principal_id=principal_id)

    async def validate_context_belongs(self, tenant_id: str, context_id: str) -> None:
        """Raise :class:`NotFoundError` unless *context_id* is one of the tenant's Contexts."""
        owner = await self._store.get_context_tenant(context_id)
        if owner != tenant_id:
            raise NotFoundError(tenant_id=tenant_id, context_id=context_id)


class SecureContextService:
    """Ownership-checked facade over :class:`ContextIngestionService`.

    Parameters
    ----------
    ingestion:
        The unchecked pipeline this facade delegates to.
    guard:
        The ownership checks run before each delegation.
    """

    def __init__(self, ingestion: ContextIngestionService, guard: OwnershipGuard) -> None:
        self._ingestion = ingestion
        self._guard = guard

    async def ingest(
        self,
        principal_id: str,
        tenant_id: str,
        title: str,
        content: str,
        metadata: ContextMetadata | dict[str, Any],
        routes: list[str] | None = None,
        delimiter: str | None = None,
    ) -> IngestionResult:
        self._guard.validate_id_format(tenant_id, "tenant_id")
        await self._guard.validate_ownership(tenant_id, principal_id)
        return await self._ingestion.ingest(
            tenant_id, title, content, metadata, routes=routes, delimiter=delimiter
        )

    async def update_context(
        self,
        principal_id: str,
        tenant_id: str,
        context_id: str,
        *,
        title: str | None = None,
        content: str | None = None,
        metadata: ContextMetadata | dict[str, Any] | None = None,
        delimiter: str | None = None,
    ) -> IngestionResult:
        self._guard.validate_id_format(tenant_id, "tenant_id")
        self._guard.validate_id_format(context_id, "context_id")
        await self._guard.validate_ownership(tenant_id, principal_id)
        await self._guard.validate_context_belongs(tenant_id, context_id)
        return await self._ingestion.update_context(
            tenant_id,
            context_id,
            title=title,
            content=content,
            metadata=metadata,
            delimiter=delimiter,
        )

    async def delete_context(self, principal_id: str, tenant_id: str, context_id: str) -> int:
        self._guard.validate_id_format(tenant_id, "tenant_id")
        self._guard.validate_id_format(context_id, "context_id")
        await self._guard.validate_ownership(tenant_id, principal_id)
        await self._guard.validate_context_belongs(tenant_id, context_id)
        return await self._ingestion.delete_context(tenant_id, context_id)
