"""Requirement provisioning: one cluster-control call before any step runs."""

import logging

from krunk.core.error_handling import ProvisioningFailure, StepExecutionError
from krunk.engine.backends import TargetBackend
from krunk.engine.executor import CommandExecutor, ExecutionResult
from krunk.scenario.schema import Requirements

logger = logging.getLogger(__name__)


class RequirementProvisioner:
    """Brings the target cluster to the declared requirements."""

    def __init__(self, backend: TargetBackend, executor: CommandExecutor):
        self.backend = backend
        self.executor = executor

    async def ensure(self, requirements: Requirements, timeout: float) -> ExecutionResult:
        """
        Run the backend's provisioning command under the step deadline.

        Any non-zero exit or timeout counts as total failure: partial
        cluster state cannot be detected from here.

        Raises:
            ProvisioningFailure: If the command did not succeed
        """
        logger.info(
            f"Ensuring requirements are met: {requirements.model_dump()}",
            extra={"target": self.backend.name},
        )
        invocation = self.backend.provision(requirements)
        logger.info(f"Setting up cluster: {invocation}")
        try:
            return await self.executor.run(invocation, timeout)
        except StepExecutionError as e:
            raise ProvisioningFailure(
                f"unable to meet requirements on {self.backend.name}: {e}", cause=e
            ) from e
