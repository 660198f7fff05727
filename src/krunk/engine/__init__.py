"""
Scenario execution engine.

- backends: per-target command syntax (minikube, kind, k3d, remote)
- dispatcher: step → Invocation
- executor: Invocation → ExecutionResult under a deadline
- provisioner: one-shot requirement provisioning
- runner: step sequencing, background steps and run outcome
"""

from .executor import CommandExecutor, ExecutionResult, Invocation
from .backends import (
    TargetBackend,
    MinikubeBackend,
    KindBackend,
    K3dBackend,
    RemoteBackend,
    BACKENDS,
    get_backend,
)
from .dispatcher import StepDispatcher
from .provisioner import RequirementProvisioner
from .runner import (
    ScenarioRunner,
    RunState,
    ProcessOutcome,
    EXIT_OK,
    EXIT_PROVISIONING_FAILED,
    EXIT_STEP_FAILED,
    EXIT_CONFIGURATION_ERROR,
    EXIT_INTERRUPTED,
)

__all__ = [
    "CommandExecutor",
    "ExecutionResult",
    "Invocation",
    "TargetBackend",
    "MinikubeBackend",
    "KindBackend",
    "K3dBackend",
    "RemoteBackend",
    "BACKENDS",
    "get_backend",
    "StepDispatcher",
    "RequirementProvisioner",
    "ScenarioRunner",
    "RunState",
    "ProcessOutcome",
    "EXIT_OK",
    "EXIT_PROVISIONING_FAILED",
    "EXIT_STEP_FAILED",
    "EXIT_CONFIGURATION_ERROR",
    "EXIT_INTERRUPTED",
]
