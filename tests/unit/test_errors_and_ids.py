"""Unit tests for the exception hierarchy and opaque id helpers."""

from __future__ import annotations

from context_engine.utils.errors import (
    AccessDeniedError,
    AllContentDuplicateError,
    ContextEngineError,
    DuplicateSourceError,
    EmptyContentError,
    ExtractionError,
    ExtractionFailedError,
    InvalidIdError,
    NotFoundError,
    SearchUnavailableError,
    UnsupportedFormatError,
    ValidationError,
)
from context_engine.utils.ids import is_valid_id, new_id


class TestErrorHierarchy:
    def test_validation_family(self) -> None:
        assert issubclass(EmptyContentError, ValidationError)
        assert issubclass(InvalidIdError, ValidationError)
        assert issubclass(ValidationError, ContextEngineError)

    def test_extraction_family(self) -> None:
        assert issubclass(UnsupportedFormatError, ExtractionError)
        assert issubclass(ExtractionFailedError, ExtractionError)

    def test_outcome_errors_are_not_validation_errors(self) -> None:
        for cls in (DuplicateSourceError, AllContentDuplicateError, AccessDeniedError, NotFoundError):
            assert issubclass(cls, ContextEngineError)
            assert not issubclass(cls, ValidationError)

    def test_default_message(self) -> None:
        assert str(EmptyContentError()) == "No content to process"

    def test_str_prefixes_provider(self) -> None:
        err = SearchUnavailableError("index missing", provider_name="sqlite")
        assert str(err) == "[sqlite] index missing"
        assert err.message == "index missing"

    def test_details_drop_none_values(self) -> None:
        err = NotFoundError(tenant_id="t1", context_id="c1", field=None)
        assert err.details == {"tenant_id": "t1", "context_id": "c1"}

    def test_details_are_a_copy(self) -> None:
        err = NotFoundError(tenant_id="t1")
        err.details["tenant_id"] = "mutated"
        assert err.details["tenant_id"] == "t1"


class TestIds:
    def test_new_id_has_opaque_shape(self) -> None:
        value = new_id()
        assert len(value) == 24
        assert is_valid_id(value)

    def test_new_ids_are_unique(self) -> None:
        assert len({new_id() for _ in range(200)}) == 200

    def test_rejects_malformed_values(self) -> None:
        for bad in ("", "xyz", "0" * 23, "0" * 25, "G" * 24, "ABCDEF0123456789abcdef01", None, 123):
            assert not is_valid_id(bad)

    def test_rejects_injection_payloads(self) -> None:
        assert not is_valid_id("507f1f77bcf86cd799439011' OR 1=1 --")
        assert not is_valid_id({"$ne": None})

    def test_rejects_surrounding_whitespace(self) -> None:
        value = new_id()
        for padded in (value + "\n", "\n" + value, value + " ", value + "\r\n"):
            assert not is_valid_id(padded)
