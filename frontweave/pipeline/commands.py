"""Pipeline commands - one per stage.

Every command checks it can run from the current state, does its work
through the PipelineContext and returns the next state. Expected and
unexpected failures alike become a ``failed`` state carrying the
partial data computed so far; no exception escapes ``execute``.
"""

import logging
import time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from frontweave.directives.engine import DirectiveEngine, get_directive_engine
from frontweave.directives.ordering import get_ordering_strategy
from frontweave.errors import (
    ConfigurationError,
    DataValidationError,
    FrontweaveError,
    TemplateError,
    wrap_unexpected,
)
from frontweave.frontmatter.extractor import ExtractionOptions

from .context import PipelineContext
from .states import (
    DataPreparingState,
    DocumentProcessingState,
    InitializingState,
    OutputRenderingState,
    PipelineStage,
    SchemaLoadingState,
    StateFactory,
    TemplateResolvingState,
)

logger = logging.getLogger(__name__)


class CommandResult(BaseModel):
    """Outcome of one command execution."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    state: Any = None
    error: Optional[FrontweaveError] = None
    execution_time_ms: int = 0


class PipelineCommand:
    """Base class: state check, error folding and timing."""

    name = "PipelineCommand"
    expected_kind: str = ""

    def __init__(self, context: PipelineContext, factory: Optional[StateFactory] = None):
        self.context = context
        self.factory = factory or StateFactory()

    def can_execute(self, state: Any) -> bool:
        return getattr(state, "kind", None) == self.expected_kind

    def execute(self, state: Any) -> CommandResult:
        if not self.can_execute(state):
            kind = getattr(state, "kind", type(state).__name__)
            error = ConfigurationError(
                f"{self.name} cannot execute in state '{kind}' "
                f"(expected '{self.expected_kind}')",
                command=self.name,
                state_kind=kind,
                expected=self.expected_kind,
            )
            return CommandResult(success=False, state=state, error=error)

        start_time = time.time()
        try:
            result = self._run(state)
        except FrontweaveError as e:
            logger.warning(f"{self.name} failed in {state.kind}: [{e.kind}] {e.message}")
            result = CommandResult(
                success=False, state=self.factory.failed_from(state, e), error=e
            )
        except Exception as e:
            logger.error(f"{self.name} raised unexpectedly: {e}", exc_info=True)
            error = wrap_unexpected(e, self.name)
            result = CommandResult(
                success=False, state=self.factory.failed_from(state, error), error=error
            )

        result.execution_time_ms = int((time.time() - start_time) * 1000)
        return result

    def _run(self, state: Any) -> CommandResult:
        raise NotImplementedError


class InitializeCommand(PipelineCommand):
    """Validates the configuration; errors are returned without a state change."""

    name = "InitializeCommand"
    expected_kind = PipelineStage.INITIALIZING.value

    def _run(self, state: InitializingState) -> CommandResult:
        missing = state.config.missing_fields()
        if missing:
            error = ConfigurationError(
                f"Pipeline configuration incomplete: {', '.join(missing)} must be set",
                missing=missing,
            )
            logger.error(error.message)
            return CommandResult(success=False, state=state, error=error)
        return CommandResult(
            success=True, state=self.factory.schema_loading(state, state.config)
        )


class LoadSchemaCommand(PipelineCommand):
    name = "LoadSchemaCommand"
    expected_kind = PipelineStage.SCHEMA_LOADING.value

    def _run(self, state: SchemaLoadingState) -> CommandResult:
        schema = self.context.load_schema(state.config.schema_path)
        return CommandResult(
            success=True,
            state=self.factory.template_resolving(state, state.config, schema),
        )


class ResolveTemplateCommand(PipelineCommand):
    name = "ResolveTemplateCommand"
    expected_kind = PipelineStage.TEMPLATE_RESOLVING.value

    def _run(self, state: TemplateResolvingState) -> CommandResult:
        paths = self.context.resolve_template_paths(state.schema_, state.config)
        if not isinstance(paths.template_path, str) or not paths.template_path:
            raise TemplateError("Resolved template path is empty", "TemplateNotFound")
        if not isinstance(paths.output_format, str) or not paths.output_format:
            raise TemplateError("Resolved output format is empty", "UnsupportedFormat")
        return CommandResult(
            success=True,
            state=self.factory.document_processing(state, state.config, state.schema_, paths),
        )


class ProcessDocumentsCommand(PipelineCommand):
    """Extracts every document, then aggregates them through the directive engine."""

    name = "ProcessDocumentsCommand"
    expected_kind = PipelineStage.DOCUMENT_PROCESSING.value

    def __init__(
        self,
        context: PipelineContext,
        factory: Optional[StateFactory] = None,
        engine: Optional[DirectiveEngine] = None,
    ):
        super().__init__(context, factory)
        self.engine = engine

    def _engine_for(self, state: DocumentProcessingState) -> DirectiveEngine:
        if self.engine is not None:
            return self.engine
        if state.config.ordering_strategy:
            return DirectiveEngine(strategy=get_ordering_strategy(state.config.ordering_strategy))
        return get_directive_engine()

    def _run(self, state: DocumentProcessingState) -> CommandResult:
        config, schema = state.config, state.schema_
        engine = self._engine_for(state)

        documents = self.context.transform_documents(
            config.input_pattern,
            schema.validation_rules(),
            schema,
            ExtractionOptions(max_workers=config.max_workers),
        )

        main_data: list[dict[str, Any]] = []
        if not documents:
            logger.warning(f"No documents matched {config.input_pattern!r}")
        else:
            outcome = engine.aggregate(schema, documents)
            fatal = outcome.fatal_errors()
            if fatal:
                raise fatal[0]
            for warning in outcome.warnings():
                logger.warning(
                    f"Directive {warning.directive} skipped at {warning.property_path}: "
                    f"{warning.message}"
                )
            main_data = [outcome.data]

        logger.info(
            f"Processed {len(documents)} documents "
            f"({'aggregate built' if main_data else 'no data'})"
        )
        return CommandResult(
            success=True,
            state=self.factory.data_preparing(state, documents, main_data),
        )


class PrepareDataCommand(PipelineCommand):
    name = "PrepareDataCommand"
    expected_kind = PipelineStage.DATA_PREPARING.value

    def _run(self, state: DataPreparingState) -> CommandResult:
        if not state.main_data:
            raise DataValidationError(
                "No data to render: no documents produced any frontmatter",
                "EmptyInput",
            )

        items_data = None
        if state.template_paths.items_template_path:
            items_data = self.context.extract_items_data(
                state.schema_, state.processed_documents, state.main_data
            )
            if not isinstance(items_data, list):
                raise DataValidationError(
                    f"Items data must be a list, got {type(items_data).__name__}",
                    "InvalidType",
                    expected="array",
                    actual=type(items_data).__name__,
                )
            logger.debug(f"Prepared {len(items_data)} items for the items template")

        return CommandResult(
            success=True, state=self.factory.output_rendering(state, items_data)
        )


class RenderOutputCommand(PipelineCommand):
    name = "RenderOutputCommand"
    expected_kind = PipelineStage.OUTPUT_RENDERING.value

    def _run(self, state: OutputRenderingState) -> CommandResult:
        paths = state.template_paths
        self.context.render_output(
            paths.template_path,
            paths.items_template_path,
            state.main_data,
            state.items_data,
            state.config.output_path,
            paths.output_format,
            state.config.verbose,
        )
        return CommandResult(
            success=True,
            state=self.factory.completed(state, state.config, state.config.output_path),
        )


def default_commands(
    context: PipelineContext,
    factory: Optional[StateFactory] = None,
    engine: Optional[DirectiveEngine] = None,
) -> list[PipelineCommand]:
    """The full command sequence in success-path order."""
    factory = factory or StateFactory()
    return [
        InitializeCommand(context, factory),
        LoadSchemaCommand(context, factory),
        ResolveTemplateCommand(context, factory),
        ProcessDocumentsCommand(context, factory, engine),
        PrepareDataCommand(context, factory),
        RenderOutputCommand(context, factory),
    ]
