"""Error taxonomy shared by every layer of the pipeline.

Each error carries a machine-readable ``kind`` next to its message so
callers (and failed pipeline states) can report exactly what went wrong
without parsing strings.
"""

from typing import Any, Optional


class FrontweaveError(Exception):
    """Base class for all structured pipeline errors."""

    default_kind = "UnexpectedError"

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        **details: Any,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serializable view used in failure reports."""
        return {
            "type": type(self).__name__,
            "kind": self.kind,
            "message": self.message,
            "details": {k: _safe(v) for k, v in self.details.items()},
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r}, message={self.message!r})"


def _safe(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_safe(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _safe(v) for k, v in value.items()}
    return str(value)


class ConfigurationError(FrontweaveError):
    """Bad configuration, or a command invoked against the wrong state."""

    default_kind = "ConfigurationError"


class SchemaError(FrontweaveError):
    """Schema could not be loaded or is structurally unusable.

    Kinds: SchemaNotFound, InvalidSchema, RefResolutionFailed,
    CircularReference, InvalidTemplate.
    """

    default_kind = "InvalidSchema"


class DataValidationError(FrontweaveError):
    """Data or path failed validation.

    Kinds: OutOfRange, PatternMismatch, EmptyInput, InvalidType,
    MissingRequired, FieldNotFound.
    """

    default_kind = "PatternMismatch"


class DirectiveError(FrontweaveError):
    """A schema directive could not be applied.

    Kinds: DerivationFailed, InvalidFlattenInput, FilterCompileFailed,
    FilterExecutionFailed, ExtractionFailed, InvalidDirective.
    """

    default_kind = "InvalidDirective"

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        *,
        directive: str,
        property_path: str = "",
        required: bool = False,
        **details: Any,
    ):
        super().__init__(
            message,
            kind,
            directive=directive,
            property_path=property_path,
            required=required,
            **details,
        )
        self.directive = directive
        self.property_path = property_path
        self.required = required


class DocumentError(FrontweaveError):
    """Input documents could not be enumerated or parsed.

    Kinds: DocumentNotFound, FrontmatterParseFailed, NoDocuments.
    """

    default_kind = "FrontmatterParseFailed"


class TemplateError(FrontweaveError):
    """Template resolution or rendering failed.

    Kinds: TemplateNotFound, TemplateRenderFailed, UnsupportedFormat.
    """

    default_kind = "TemplateRenderFailed"


def wrap_unexpected(exc: BaseException, operation: str) -> FrontweaveError:
    """Wrap an arbitrary exception so it can travel inside a failed state."""
    if isinstance(exc, FrontweaveError):
        return exc
    return FrontweaveError(
        f"{operation} failed unexpectedly: {exc}",
        "UnexpectedError",
        operation=operation,
        exception_type=type(exc).__name__,
    )
