"""Tests for error types and codes."""

import pytest

from queryplane.core.errors import (
    ConfigError,
    ErrorCode,
    QueryPlaneError,
    RefactorError,
    SchemaError,
)


class TestErrorCode:
    """Error code value tests."""

    @pytest.mark.parametrize(
        ("code", "expected_range"),
        [
            (ErrorCode.CONFIG_PARSE_ERROR, 2000),
            (ErrorCode.CONFIG_INVALID_VALUE, 2000),
            (ErrorCode.SCHEMA_FILE_NOT_FOUND, 3000),
            (ErrorCode.REFACTOR_INVALID_MAPPING, 5000),
            (ErrorCode.REFACTOR_SYNTAX_BROKEN, 5000),
        ],
    )
    def test_given_error_code_when_checked_then_in_correct_range(
        self, code: ErrorCode, expected_range: int
    ) -> None:
        """Error codes fall within their designated numeric range."""
        assert expected_range <= code.value < expected_range + 1000


class TestQueryPlaneError:
    """Base error behavior tests."""

    def test_given_error_when_to_dict_then_serializes_all_fields(self) -> None:
        """Error serializes to dict with all required fields."""
        error = QueryPlaneError(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message="Test message",
            retryable=True,
            details={"key": "value"},
        )

        assert error.to_dict() == {
            "code": 2001,
            "error": "CONFIG_PARSE_ERROR",
            "message": "Test message",
            "retryable": True,
            "details": {"key": "value"},
        }

    def test_given_error_when_str_then_includes_code_and_message(self) -> None:
        error = SchemaError.file_not_found("schema.json")
        assert str(error) == "[3001] SCHEMA_FILE_NOT_FOUND: Schema metadata file not found: schema.json"
        assert error.details == {"path": "schema.json"}

    def test_given_error_when_raised_then_is_exception(self) -> None:
        with pytest.raises(QueryPlaneError) as exc_info:
            raise ConfigError.parse_error("config.yaml", "bad indent")
        assert exc_info.value.code == ErrorCode.CONFIG_PARSE_ERROR
        assert not exc_info.value.retryable


class TestFactories:
    """Classmethod constructors carry their context in details."""

    def test_config_invalid_value(self) -> None:
        error = ConfigError.invalid_value("refactor.text_block_width", 5, "too small")
        assert error.code == ErrorCode.CONFIG_INVALID_VALUE
        assert error.details == {
            "field": "refactor.text_block_width",
            "value": "5",
            "reason": "too small",
        }

    def test_schema_parse_error(self) -> None:
        error = SchemaError.parse_error("/tmp/idx.yaml", "not a mapping")
        assert error.error_name == "SCHEMA_PARSE_ERROR"
        assert "/tmp/idx.yaml" in error.message

    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (RefactorError.invalid_mapping("not a permutation"), ErrorCode.REFACTOR_INVALID_MAPPING),
            (RefactorError.declaration_not_found("com.acme.Repo", "find"), ErrorCode.REFACTOR_DECLARATION_NOT_FOUND),
            (RefactorError.arity_mismatch("Svc.java:10", 2, 3), ErrorCode.REFACTOR_ARITY_MISMATCH),
            (RefactorError.overlapping_edits("Svc.java"), ErrorCode.REFACTOR_OVERLAPPING_EDITS),
            (RefactorError.source_not_loaded("com.acme.Repo"), ErrorCode.REFACTOR_SOURCE_NOT_LOADED),
            (RefactorError.ambiguous_overload("com.acme.Repo", "find", 2), ErrorCode.REFACTOR_AMBIGUOUS_OVERLOAD),
            (RefactorError.unsafe_reference("Svc.java:4", "find"), ErrorCode.REFACTOR_UNSAFE_REFERENCE),
            (RefactorError.syntax_broken("Svc.java"), ErrorCode.REFACTOR_SYNTAX_BROKEN),
        ],
    )
    def test_refactor_codes(self, error: RefactorError, code: ErrorCode) -> None:
        assert error.code == code
        assert isinstance(error, QueryPlaneError)

    def test_arity_mismatch_message(self) -> None:
        error = RefactorError.arity_mismatch("Svc.java:10", 2, 3)
        assert error.message == "Arity mismatch at Svc.java:10: expected 2, got 3"
