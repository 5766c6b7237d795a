"""Pipeline states and partial-data snapshots.

Each state is an immutable pydantic model tagged by ``kind`` and holding
only what is legitimately available at that stage. The success path is
strictly forward:

    initializing -> schema-loading -> template-resolving ->
    document-processing -> data-preparing -> output-rendering -> completed

Any non-terminal state may move to ``failed``, which carries the error,
the failing stage and a PartialData snapshot of what had been computed.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from frontweave.errors import FrontweaveError
from frontweave.frontmatter.store import FrontmatterContent
from frontweave.schema.schemas import Schema
from frontweave.templates.resolver import TemplatePaths

from .config import PipelineConfig


class PipelineStage(str, Enum):
    """State kinds, in success-path order."""
    INITIALIZING = "initializing"
    SCHEMA_LOADING = "schema-loading"
    TEMPLATE_RESOLVING = "template-resolving"
    DOCUMENT_PROCESSING = "document-processing"
    DATA_PREPARING = "data-preparing"
    OUTPUT_RENDERING = "output-rendering"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STAGES = frozenset({PipelineStage.COMPLETED.value, PipelineStage.FAILED.value})


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


# ── Partial data ─────────────────────────────────────


class NoData(_Frozen):
    kind: Literal["no-data"] = "no-data"


class SchemaLoaded(_Frozen):
    kind: Literal["schema-loaded"] = "schema-loaded"
    schema_: Schema = Field(alias="schema")


class TemplateResolved(_Frozen):
    kind: Literal["template-resolved"] = "template-resolved"
    schema_: Schema = Field(alias="schema")
    template_paths: TemplatePaths


class DocumentsProcessed(_Frozen):
    kind: Literal["documents-processed"] = "documents-processed"
    schema_: Schema = Field(alias="schema")
    template_paths: TemplatePaths
    processed_documents: list[FrontmatterContent]


class DataPrepared(_Frozen):
    kind: Literal["data-prepared"] = "data-prepared"
    schema_: Schema = Field(alias="schema")
    template_paths: TemplatePaths
    processed_documents: list[FrontmatterContent]
    main_data: list[dict[str, Any]]
    items_data: Optional[list[Any]] = None


PartialData = Annotated[
    Union[NoData, SchemaLoaded, TemplateResolved, DocumentsProcessed, DataPrepared],
    Field(discriminator="kind"),
]


# ── States ───────────────────────────────────────────


class _StateBase(_Frozen):
    started_at: datetime = Field(default_factory=_now, description="When this state was entered")
    run_started_at: datetime = Field(default_factory=_now, description="When the run began")

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_STAGES


class InitializingState(_StateBase):
    kind: Literal["initializing"] = "initializing"
    config: PipelineConfig


class SchemaLoadingState(_StateBase):
    kind: Literal["schema-loading"] = "schema-loading"
    config: PipelineConfig


class TemplateResolvingState(_StateBase):
    kind: Literal["template-resolving"] = "template-resolving"
    config: PipelineConfig
    schema_: Schema = Field(alias="schema")


class DocumentProcessingState(_StateBase):
    kind: Literal["document-processing"] = "document-processing"
    config: PipelineConfig
    schema_: Schema = Field(alias="schema")
    template_paths: TemplatePaths


class DataPreparingState(_StateBase):
    kind: Literal["data-preparing"] = "data-preparing"
    config: PipelineConfig
    schema_: Schema = Field(alias="schema")
    template_paths: TemplatePaths
    processed_documents: list[FrontmatterContent]
    main_data: list[dict[str, Any]]


class OutputRenderingState(_StateBase):
    kind: Literal["output-rendering"] = "output-rendering"
    config: PipelineConfig
    schema_: Schema = Field(alias="schema")
    template_paths: TemplatePaths
    processed_documents: list[FrontmatterContent]
    main_data: list[dict[str, Any]]
    items_data: Optional[list[Any]] = None


class CompletedState(_StateBase):
    kind: Literal["completed"] = "completed"
    config: PipelineConfig
    output_path: str
    duration_ms: int = 0


class FailedState(_StateBase):
    kind: Literal["failed"] = "failed"
    error: FrontweaveError
    stage: str = Field(description="Kind of the state the failure happened in")
    partial: PartialData = Field(default_factory=NoData)

    def describe(self, verbose: bool = False) -> dict[str, Any]:
        """Structured failure report; ``verbose`` adds the partial-data snapshot."""
        report: dict[str, Any] = {
            "stage": self.stage,
            "error": self.error.to_dict(),
            "partial_data": self.partial.kind,
        }
        if verbose:
            report["partial"] = _describe_partial(self.partial)
        return report


PipelineState = Annotated[
    Union[
        InitializingState,
        SchemaLoadingState,
        TemplateResolvingState,
        DocumentProcessingState,
        DataPreparingState,
        OutputRenderingState,
        CompletedState,
        FailedState,
    ],
    Field(discriminator="kind"),
]


def _describe_partial(partial: BaseModel) -> dict[str, Any]:
    summary: dict[str, Any] = {"kind": partial.kind}
    schema = getattr(partial, "schema_", None)
    if schema is not None:
        summary["schema_path"] = schema.path
    paths = getattr(partial, "template_paths", None)
    if paths is not None:
        summary["template_paths"] = paths.model_dump()
    documents = getattr(partial, "processed_documents", None)
    if documents is not None:
        summary["processed_documents"] = [d.source or "<memory>" for d in documents]
    main_data = getattr(partial, "main_data", None)
    if main_data is not None:
        summary["main_data"] = main_data
    if getattr(partial, "items_data", None) is not None:
        summary["items_count"] = len(partial.items_data)
    return summary


class StateFactory:
    """Builds every state variant, stamping entry times.

    Failures always receive the partial-data variant matching the state
    they happened in (see ``failed_from``).
    """

    def initializing(self, config: PipelineConfig) -> InitializingState:
        now = _now()
        return InitializingState(config=config, started_at=now, run_started_at=now)

    def schema_loading(self, previous: _StateBase, config: PipelineConfig) -> SchemaLoadingState:
        return SchemaLoadingState(config=config, run_started_at=previous.run_started_at)

    def template_resolving(
        self, previous: _StateBase, config: PipelineConfig, schema: Schema
    ) -> TemplateResolvingState:
        return TemplateResolvingState(
            config=config, schema=schema, run_started_at=previous.run_started_at
        )

    def document_processing(
        self,
        previous: _StateBase,
        config: PipelineConfig,
        schema: Schema,
        template_paths: TemplatePaths,
    ) -> DocumentProcessingState:
        return DocumentProcessingState(
            config=config,
            schema=schema,
            template_paths=template_paths,
            run_started_at=previous.run_started_at,
        )

    def data_preparing(
        self,
        previous: DocumentProcessingState,
        processed_documents: list[FrontmatterContent],
        main_data: list[dict[str, Any]],
    ) -> DataPreparingState:
        return DataPreparingState(
            config=previous.config,
            schema=previous.schema_,
            template_paths=previous.template_paths,
            processed_documents=processed_documents,
            main_data=main_data,
            run_started_at=previous.run_started_at,
        )

    def output_rendering(
        self,
        previous: DataPreparingState,
        items_data: Optional[list[Any]],
    ) -> OutputRenderingState:
        return OutputRenderingState(
            config=previous.config,
            schema=previous.schema_,
            template_paths=previous.template_paths,
            processed_documents=previous.processed_documents,
            main_data=previous.main_data,
            items_data=items_data,
            run_started_at=previous.run_started_at,
        )

    def completed(self, previous: _StateBase, config: PipelineConfig, output_path: str) -> CompletedState:
        now = _now()
        duration_ms = int((now - previous.run_started_at).total_seconds() * 1000)
        return CompletedState(
            config=config,
            output_path=output_path,
            duration_ms=duration_ms,
            started_at=now,
            run_started_at=previous.run_started_at,
        )

    # ── Failures ──────────────────────────────────────

    def failed(
        self,
        error: FrontweaveError,
        stage: str,
        partial: Optional[BaseModel] = None,
        run_started_at: Optional[datetime] = None,
    ) -> FailedState:
        return FailedState(
            error=error,
            stage=stage,
            partial=partial or NoData(),
            run_started_at=run_started_at or _now(),
        )

    def failed_from(self, state: _StateBase, error: FrontweaveError) -> FailedState:
        """Fail out of ``state`` with exactly the data computed so far."""
        return self.failed(error, state.kind, self.partial_for(state), state.run_started_at)

    @staticmethod
    def partial_for(state: _StateBase) -> BaseModel:
        if isinstance(state, TemplateResolvingState):
            return SchemaLoaded(schema=state.schema_)
        if isinstance(state, DocumentProcessingState):
            return TemplateResolved(schema=state.schema_, template_paths=state.template_paths)
        if isinstance(state, DataPreparingState):
            return DocumentsProcessed(
                schema=state.schema_,
                template_paths=state.template_paths,
                processed_documents=state.processed_documents,
            )
        if isinstance(state, OutputRenderingState):
            return DataPrepared(
                schema=state.schema_,
                template_paths=state.template_paths,
                processed_documents=state.processed_documents,
                main_data=state.main_data,
                items_data=state.items_data,
            )
        return NoData()


def is_terminal(state: BaseModel) -> bool:
    return getattr(state, "kind", None) in TERMINAL_STAGES
