"""QueryPlane error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Schema
- 5xxx: Refactor
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Schema (3xxx)
    SCHEMA_FILE_NOT_FOUND = 3001
    SCHEMA_PARSE_ERROR = 3002

    # Refactor (5xxx)
    REFACTOR_INVALID_MAPPING = 5001
    REFACTOR_DECLARATION_NOT_FOUND = 5002
    REFACTOR_ARITY_MISMATCH = 5003
    REFACTOR_OVERLAPPING_EDITS = 5004
    REFACTOR_SOURCE_NOT_LOADED = 5005
    REFACTOR_AMBIGUOUS_OVERLOAD = 5006
    REFACTOR_UNSAFE_REFERENCE = 5007
    REFACTOR_SYNTAX_BROKEN = 5008


@dataclass(frozen=True, slots=True)
class QueryPlaneError(Exception):
    """Base error with structured context for reports."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'CONFIG_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON reports."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(QueryPlaneError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class SchemaError(QueryPlaneError):
    """Index metadata could not be loaded."""

    @classmethod
    def file_not_found(cls, path: str) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_FILE_NOT_FOUND,
            message=f"Schema metadata file not found: {path}",
            details={"path": path},
        )

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "SchemaError":
        return cls(
            code=ErrorCode.SCHEMA_PARSE_ERROR,
            message=f"Failed to parse schema metadata at {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class RefactorError(QueryPlaneError):
    """A planned rename could not be applied safely."""

    @classmethod
    def invalid_mapping(cls, reason: str, **details: Any) -> "RefactorError":
        return cls(
            code=ErrorCode.REFACTOR_INVALID_MAPPING,
            message=f"Invalid position mapping: {reason}",
            details=details,
        )

    @classmethod
    def declaration_not_found(cls, owner: str, method: str) -> "RefactorError":
        return cls(
            code=ErrorCode.REFACTOR_DECLARATION_NOT_FOUND,
            message=f"No declaration of {method} in {owner}",
            details={"owner": owner, "method": method},
        )

    @classmethod
    def arity_mismatch(cls, where: str, expected: int, actual: int) -> "RefactorError":
        return cls(
            code=ErrorCode.REFACTOR_ARITY_MISMATCH,
            message=f"Arity mismatch at {where}: expected {expected}, got {actual}",
            details={"where": where, "expected": expected, "actual": actual},
        )

    @classmethod
    def overlapping_edits(cls, path: str) -> "RefactorError":
        return cls(
            code=ErrorCode.REFACTOR_OVERLAPPING_EDITS,
            message=f"Overlapping edits planned for {path}",
            details={"path": path},
        )

    @classmethod
    def source_not_loaded(cls, fqn: str) -> "RefactorError":
        return cls(
            code=ErrorCode.REFACTOR_SOURCE_NOT_LOADED,
            message=f"Source for {fqn} is not loaded",
            details={"fqn": fqn},
        )

    @classmethod
    def ambiguous_overload(cls, owner: str, method: str, arity: int) -> "RefactorError":
        return cls(
            code=ErrorCode.REFACTOR_AMBIGUOUS_OVERLOAD,
            message=f"Another overload of {owner}.{method} takes {arity} arguments",
            details={"owner": owner, "method": method, "arity": arity},
        )

    @classmethod
    def unsafe_reference(cls, where: str, method: str) -> "RefactorError":
        return cls(
            code=ErrorCode.REFACTOR_UNSAFE_REFERENCE,
            message=f"Method reference to {method} at {where} cannot follow a parameter reorder",
            details={"where": where, "method": method},
        )

    @classmethod
    def syntax_broken(cls, path: str) -> "RefactorError":
        return cls(
            code=ErrorCode.REFACTOR_SYNTAX_BROKEN,
            message=f"Rewrite left {path} with syntax errors",
            details={"path": path},
        )
