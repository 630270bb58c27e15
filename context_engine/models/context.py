"""Context models -- one knowledge item as a tenant submitted it.

A :class:`Context` is the source record behind a set of retrievable
:class:`~context_engine.models.rag.EmbeddingRecord` chunks.  Its
``metadata`` is a tagged union with one variant per
:class:`ContentType`, so each ingestion path only deals with the fields
that apply to it:

    TEXT      -> TextMetadata      (no extra fields)
    FILE      -> FileMetadata      (file name, mime type, size in bytes)
    LINK      -> LinkMetadata      (source URL)
    QUESTION  -> QuestionMetadata  (question / answer pair)

Pydantic picks the variant from the ``type`` discriminator, e.g.
``{"type": "LINK", "url": "https://example.com"}`` validates to
:class:`LinkMetadata`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ContentType(str, Enum):
    """Kind of knowledge item a Context holds."""

    TEXT = "TEXT"
    FILE = "FILE"
    LINK = "LINK"
    QUESTION = "QUESTION"


class TextMetadata(BaseModel):
    """Free text typed or pasted by the tenant."""

    model_config = ConfigDict(frozen=True)

    type: Literal["TEXT"] = "TEXT"


class FileMetadata(BaseModel):
    """An uploaded file whose text was extracted upstream."""

    model_config = ConfigDict(frozen=True)

    type: Literal["FILE"] = "FILE"
    file_name: str = Field(min_length=1)
    mime_type: str | None = None
    file_size: int | None = Field(default=None, ge=0, description="Size in bytes.")


class LinkMetadata(BaseModel):
    """A crawled web page.  ``url`` is unique per tenant."""

    model_config = ConfigDict(frozen=True)

    type: Literal["LINK"] = "LINK"
    url: str = Field(min_length=1)


class QuestionMetadata(BaseModel):
    """An FAQ entry."""

    model_config = ConfigDict(frozen=True)

    type: Literal["QUESTION"] = "QUESTION"
    question: str = Field(min_length=1)
    answer: str = Field(min_length=1)


ContextMetadata = Annotated[
    Union[TextMetadata, FileMetadata, LinkMetadata, QuestionMetadata],
    Field(discriminator="type"),
]

_METADATA_ADAPTER: TypeAdapter[ContextMetadata] = TypeAdapter(ContextMetadata)


def parse_metadata(raw: dict) -> TextMetadata | FileMetadata | LinkMetadata | QuestionMetadata:
    """Validate a plain dict (e.g. a stored JSON column) into its metadata variant."""
    return _METADATA_ADAPTER.validate_python(raw)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Context(BaseModel):
    """One knowledge item owned by a tenant's chatbot.

    ``embedding_ids`` is empty only while ingestion is running; a Context
    that finishes ingestion without embeddings is deleted.
    """

    model_config = ConfigDict(frozen=True)

    context_id: str
    tenant_id: str
    title: str
    raw_content: str
    metadata: ContextMetadata
    embedding_ids: list[str] = Field(default_factory=list)
    size_kb: int = Field(default=0, ge=0)
    routes: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime | None = None

    @property
    def content_type(self) -> ContentType:
        return ContentType(self.metadata.type)

    @property
    def source_url(self) -> str | None:
        return self.metadata.url if isinstance(self.metadata, LinkMetadata) else None


class Chatbot(BaseModel):
    """The tenant record: a chatbot and the principal who owns it."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    owner_id: str
    name: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
