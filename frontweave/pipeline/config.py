"""Pipeline configuration."""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from frontweave.settings import DEFAULT_MAX_WORKERS, DEFAULT_OUTPUT_FORMAT, SUPPORTED_OUTPUT_FORMATS


class PipelineConfig(BaseModel):
    """One run's configuration; read-only once created.

    Empty paths are accepted here and reported by InitializeCommand, so a
    half-filled config still yields a structured failure instead of a
    construction error.
    """

    model_config = ConfigDict(frozen=True)

    schema_path: str = Field(default="", description="JSON/YAML schema file")
    template_path: Optional[str] = Field(
        default=None, description="Main template; falls back to the schema's x-template"
    )
    items_template_path: Optional[str] = Field(
        default=None, description="Per-item template; falls back to x-template-items"
    )
    input_pattern: Union[str, list[str]] = Field(
        default="", description="Glob pattern(s), directories or files to read"
    )
    output_path: str = Field(default="", description="File the rendered output is written to")
    output_format: str = Field(
        default=DEFAULT_OUTPUT_FORMAT,
        description=f"One of: {', '.join(SUPPORTED_OUTPUT_FORMATS)}",
    )
    verbose: bool = False
    max_workers: int = Field(
        default=DEFAULT_MAX_WORKERS, ge=1, description="Parallel document extraction workers"
    )
    ordering_strategy: Optional[str] = Field(
        default=None, description="Directive ordering strategy name (default from env)"
    )

    @field_validator("output_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value not in SUPPORTED_OUTPUT_FORMATS:
            raise ValueError(
                f"output_format must be one of {', '.join(SUPPORTED_OUTPUT_FORMATS)}"
            )
        return value

    def missing_fields(self) -> list[str]:
        """Required settings that are empty."""
        missing = []
        if not self.schema_path.strip():
            missing.append("schema_path")
        patterns = [self.input_pattern] if isinstance(self.input_pattern, str) else self.input_pattern
        if not any(p.strip() for p in patterns):
            missing.append("input_pattern")
        if not self.output_path.strip():
            missing.append("output_path")
        return missing
