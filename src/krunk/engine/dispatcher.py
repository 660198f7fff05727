"""Step dispatch: turn a declared step into a concrete Invocation."""

import logging
from pathlib import Path
from typing import Optional, Union

from krunk.core.error_handling import ConfigurationError, ErrorKind, StepExecutionError
from krunk.engine.backends import TargetBackend
from krunk.engine.executor import Invocation
from krunk.scenario.schema import (
    ControlPlaneStep,
    LocalStep,
    Step,
    TransferStep,
    WorkerStep,
)

logger = logging.getLogger(__name__)

LOCAL_SHELL = "sh"


class StepDispatcher:
    """
    Resolves steps against a target backend.

    resolve() is pure: it builds argument vectors and never touches the
    filesystem or starts processes. Relative paths are anchored to
    ``base_path`` (the scene directory) instead of the process's current
    directory.
    """

    def __init__(self, backend: TargetBackend, base_path: Optional[Union[str, Path]] = None):
        self.backend = backend
        self.base_path = Path(base_path).resolve() if base_path is not None else None

    def resolve(self, step: Step) -> Invocation:
        """
        Resolve a step into the process that carries it out.

        Raises:
            StepExecutionError: UNSUPPORTED_VARIANT for worker steps
            ConfigurationError: For objects that are not a known step variant
        """
        if isinstance(step, LocalStep):
            invocation = Invocation(LOCAL_SHELL, ("-c", step.command))
        elif isinstance(step, ControlPlaneStep):
            invocation = self.backend.exec_on(self.backend.control_plane_node, step.command)
        elif isinstance(step, TransferStep):
            node = self.backend.resolve_node(step.target)
            invocation = self.backend.copy_to(self._anchor(step.source), node, step.dest)
        elif isinstance(step, WorkerStep):
            raise StepExecutionError(
                ErrorKind.UNSUPPORTED_VARIANT,
                message=f"worker steps are not supported yet: {step.command!r}",
                component="dispatcher",
            )
        else:
            raise ConfigurationError(
                f"Not a step: {step!r}", component="dispatcher"
            )

        return Invocation(invocation.program, invocation.args, cwd=self.base_path)

    def _anchor(self, path: str) -> str:
        if self.base_path is None or Path(path).is_absolute():
            return path
        return str(self.base_path / path)
