"""Pipeline state machine.

- config.py   - PipelineConfig
- states.py   - state variants, PartialData snapshots, StateFactory
- context.py  - collaborator Protocol and the default implementation
- commands.py - one command per stage
- service.py  - time-budgeted, cancellable command runner
"""

from .commands import (
    CommandResult,
    InitializeCommand,
    LoadSchemaCommand,
    PipelineCommand,
    PrepareDataCommand,
    ProcessDocumentsCommand,
    RenderOutputCommand,
    ResolveTemplateCommand,
    default_commands,
)
from .config import PipelineConfig
from .context import DefaultPipelineContext, PipelineContext
from .service import ExecutionReport, PipelineExecutionService, run_pipeline
from .states import (
    CompletedState,
    DataPrepared,
    DataPreparingState,
    DocumentProcessingState,
    DocumentsProcessed,
    FailedState,
    InitializingState,
    NoData,
    OutputRenderingState,
    PartialData,
    PipelineStage,
    PipelineState,
    SchemaLoaded,
    SchemaLoadingState,
    StateFactory,
    TemplateResolved,
    TemplateResolvingState,
    is_terminal,
)

__all__ = [
    "CommandResult",
    "CompletedState",
    "DataPrepared",
    "DataPreparingState",
    "DefaultPipelineContext",
    "DocumentProcessingState",
    "DocumentsProcessed",
    "ExecutionReport",
    "FailedState",
    "InitializeCommand",
    "InitializingState",
    "LoadSchemaCommand",
    "NoData",
    "OutputRenderingState",
    "PartialData",
    "PipelineCommand",
    "PipelineConfig",
    "PipelineContext",
    "PipelineExecutionService",
    "PipelineStage",
    "PipelineState",
    "PrepareDataCommand",
    "ProcessDocumentsCommand",
    "RenderOutputCommand",
    "ResolveTemplateCommand",
    "SchemaLoaded",
    "SchemaLoadingState",
    "StateFactory",
    "TemplateResolved",
    "TemplateResolvingState",
    "default_commands",
    "is_terminal",
    "run_pipeline",
]
