"""Pipeline execution service.

Drives the command sequence end-to-end. Between commands it checks the
time budget and the cancellation event; it stops as soon as a command
fails, a terminal state is reached, the deadline passes or cancellation
is requested.
"""

import logging
import threading
import time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from frontweave.directives.engine import DirectiveEngine
from frontweave.errors import FrontweaveError
from frontweave.settings import DEFAULT_MAX_DURATION_MS

from .commands import PipelineCommand, default_commands
from .config import PipelineConfig
from .context import DefaultPipelineContext, PipelineContext
from .states import FailedState, StateFactory, is_terminal

logger = logging.getLogger(__name__)


class ExecutionReport(BaseModel):
    """What a pipeline run did and where it stopped."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    executed_commands: list[str] = Field(
        default_factory=list, description="Command names, in execution order"
    )
    stages_completed: list[str] = Field(
        default_factory=list, description="State kinds successfully left behind"
    )
    elapsed_ms: int = 0
    final_state: Any = None
    error: Optional[FrontweaveError] = None
    timed_out: bool = False
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return getattr(self.final_state, "kind", None) == "completed"

    def summary(self, verbose: bool = False) -> dict[str, Any]:
        report: dict[str, Any] = {
            "success": self.success,
            "final_state": getattr(self.final_state, "kind", None),
            "executed_commands": self.executed_commands,
            "stages_completed": self.stages_completed,
            "elapsed_ms": self.elapsed_ms,
            "timed_out": self.timed_out,
            "cancelled": self.cancelled,
        }
        if isinstance(self.final_state, FailedState):
            report["failure"] = self.final_state.describe(verbose)
        elif self.error is not None:
            report["failure"] = {"error": self.error.to_dict()}
        return report


class PipelineExecutionService:
    """Runs commands in order under a time budget."""

    def __init__(
        self,
        commands: list[PipelineCommand],
        factory: Optional[StateFactory] = None,
        max_duration_ms: int = DEFAULT_MAX_DURATION_MS,
        clock=time.monotonic,
    ):
        self.commands = commands
        self.factory = factory or StateFactory()
        self.max_duration_ms = max_duration_ms
        self._clock = clock

    def execute(
        self,
        config: PipelineConfig,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExecutionReport:
        start = self._clock()
        deadline = start + self.max_duration_ms / 1000.0
        state: Any = self.factory.initializing(config)
        report = ExecutionReport(final_state=state)

        for command in self.commands:
            if is_terminal(state):
                break
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Pipeline cancelled before {command.name}")
                report.cancelled = True
                break
            if self._clock() >= deadline:
                logger.warning(
                    f"Pipeline time budget of {self.max_duration_ms}ms exhausted "
                    f"before {command.name} (state {state.kind})"
                )
                report.timed_out = True
                break

            logger.debug(f"Executing {command.name} from {state.kind}")
            result = command.execute(state)
            report.executed_commands.append(command.name)

            if not result.success:
                report.error = result.error
                if result.state is not None:
                    state = result.state
                break

            report.stages_completed.append(state.kind)
            state = result.state

        report.final_state = state
        report.elapsed_ms = int((self._clock() - start) * 1000)

        if report.success:
            logger.info(
                f"Pipeline completed in {report.elapsed_ms}ms "
                f"({len(report.executed_commands)} commands)"
            )
        elif isinstance(state, FailedState):
            logger.error(
                f"Pipeline failed during {state.stage}: [{state.error.kind}] {state.error.message}"
            )
        elif report.error is not None:
            logger.error(f"Pipeline stopped: [{report.error.kind}] {report.error.message}")
        return report


def run_pipeline(
    config: PipelineConfig,
    context: Optional[PipelineContext] = None,
    engine: Optional[DirectiveEngine] = None,
    max_duration_ms: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ExecutionReport:
    """Run the whole pipeline with the default collaborators."""
    factory = StateFactory()
    service = PipelineExecutionService(
        default_commands(context or DefaultPipelineContext(), factory, engine),
        factory=factory,
        max_duration_ms=max_duration_ms if max_duration_ms is not None else DEFAULT_MAX_DURATION_MS,
    )
    return service.execute(config, cancel_event=cancel_event)
