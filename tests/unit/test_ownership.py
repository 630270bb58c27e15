"""Unit tests for OwnershipGuard and SecureContextService."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from context_engine.models.context import TextMetadata
from context_engine.services.ownership import OwnershipGuard, SecureContextService
from context_engine.utils.errors import AccessDeniedError, InvalidIdError, NotFoundError
from context_engine.utils.ids import new_id

CONTENT = "Our support desk answers chats between eight and six on weekdays."


class TestValidateIdFormat:
    def test_accepts_opaque_id(self) -> None:
        value = new_id()
        assert OwnershipGuard.validate_id_format(value) == value

    @pytest.mark.parametrize(
        "bad",
        ["", "abc", "../../etc/passwd", None, 42, {"$gt": ""}, "0123456789abcdef01234567\n"],
    )
    def test_rejects_everything_else(self, bad) -> None:
        with pytest.raises(InvalidIdError) as exc_info:
            OwnershipGuard.validate_id_format(bad, "tenant_id")
        assert exc_info.value.details["field"] == "tenant_id"


class TestValidateOwnership:
    async def test_owner_passes(self, store, tenant) -> None:
        await OwnershipGuard(store).validate_ownership(tenant.tenant_id, "owner-1")

    async def test_other_principal_is_denied(self, store, tenant) -> None:
        with pytest.raises(AccessDeniedError):
            await OwnershipGuard(store).validate_ownership(tenant.tenant_id, "owner-2")

    async def test_missing_chatbot_is_denied(self, store) -> None:
        with pytest.raises(AccessDeniedError):
            await OwnershipGuard(store).validate_ownership(new_id(), "owner-1")

    async def test_blank_principal_is_denied(self, store, tenant) -> None:
        with pytest.raises(AccessDeniedError):
            await OwnershipGuard(store).validate_ownership(tenant.tenant_id, "")


class TestValidateContextBelongs:
    async def test_own_context_passes(self, store, ingestion, tenant) -> None:
        created = await ingestion.ingest(tenant.tenant_id, "Hours", CONTENT, TextMetadata())
        await OwnershipGuard(store).validate_context_belongs(tenant.tenant_id, created.context_id)

    async def test_foreign_context_is_not_found(self, store, ingestion, tenant, other_tenant) -> None:
        created = await ingestion.ingest(tenant.tenant_id, "Hours", CONTENT, TextMetadata())
        with pytest.raises(NotFoundError):
            await OwnershipGuard(store).validate_context_belongs(
                other_tenant.tenant_id, created.context_id
            )

    async def test_missing_context_is_not_found(self, store, tenant) -> None:
        with pytest.raises(NotFoundError):
            await OwnershipGuard(store).validate_context_belongs(tenant.tenant_id, new_id())


class TestSecureContextService:
    async def test_owner_can_ingest(self, secure_contexts, tenant) -> None:
        result = await secure_contexts.ingest("owner-1", tenant.tenant_id, "Hours", CONTENT, TextMetadata())
        assert result.embeddings_created == 1

    async def test_non_owner_cannot_ingest(self, secure_contexts, store, embedder, tenant) -> None:
        with pytest.raises(AccessDeniedError):
            await secure_contexts.ingest("owner-2", tenant.tenant_id, "Hours", CONTENT, TextMetadata())
        assert await store.list_contexts(tenant.tenant_id) == []
        assert embedder.calls == []

    async def test_malformed_tenant_fails_before_any_lookup(self) -> None:
        store = MagicMock()
        store.get_chatbot = AsyncMock()
        ingestion = MagicMock()
        ingestion.ingest = AsyncMock()
        service = SecureContextService(ingestion, OwnershipGuard(store))

        with pytest.raises(InvalidIdError):
            await service.ingest("owner-1", "not-an-id", "t", CONTENT, TextMetadata())
        store.get_chatbot.assert_not_awaited()
        ingestion.ingest.assert_not_awaited()

    async def test_cross_tenant_delete_is_blocked(
        self, secure_contexts, ingestion, store, tenant, other_tenant
    ) -> None:
        created = await ingestion.ingest(tenant.tenant_id, "Hours", CONTENT, TextMetadata())
        # owner-2 owns other_tenant but targets tenant's context through it.
        with pytest.raises(NotFoundError):
            await secure_contexts.delete_context("owner-2", other_tenant.tenant_id, created.context_id)
        assert await store.get_context(created.context_id, tenant.tenant_id) is not None

    async def test_owner_can_update_and_delete(self, secure_contexts, store, tenant) -> None:
        created = await secure_contexts.ingest("owner-1", tenant.tenant_id, "Hours", CONTENT, TextMetadata())

        await secure_contexts.update_context("owner-1", tenant.tenant_id, created.context_id, title="Desk hours")
        context = await store.get_context(created.context_id, tenant.tenant_id)
        assert context.title == "Desk hours"

        removed = await secure_contexts.delete_context("owner-1", tenant.tenant_id, created.context_id)
        assert removed == 1
        assert await store.get_context(created.context_id, tenant.tenant_id) is None

    async def test_update_rejects_malformed_context_id(self, secure_contexts, tenant) -> None:
        with pytest.raises(InvalidIdError):
            await secure_contexts.update_context("owner-1", tenant.tenant_id, "1; DROP TABLE", title="x")
