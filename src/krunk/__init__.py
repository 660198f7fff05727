"""
krunk - declarative chaos scenarios for Kubernetes test clusters

A scene declares cluster requirements and an ordered list of steps (local
shell commands, control-plane commands, file transfers). krunk provisions
the cluster once, runs the steps in order under a per-step deadline, and
keeps background steps running until it is interrupted.

Usage:
    # Command line
    krunk --scene scenarios/005

    # Programmatically
    import asyncio
    from krunk import (
        CommandExecutor, ScenarioRunner, StepDispatcher, get_backend, load_scenario,
    )

    scenario = load_scenario("scenarios/005")
    backend = get_backend("minikube")
    runner = ScenarioRunner(StepDispatcher(backend, "scenarios/005"), CommandExecutor(), 360)
    outcome = asyncio.run(runner.execute(scenario))
"""

__version__ = "0.1.0"

from .core.error_handling import (
    KrunkException,
    ConfigurationError,
    ProvisioningFailure,
    StepExecutionError,
    ErrorKind,
)
from .scenario.schema import Scenario, Requirements, load_scenario
from .engine.executor import CommandExecutor, ExecutionResult, Invocation
from .engine.backends import get_backend
from .engine.dispatcher import StepDispatcher
from .engine.provisioner import RequirementProvisioner
from .engine.runner import ScenarioRunner, RunState, ProcessOutcome

__all__ = [
    "__version__",
    "KrunkException",
    "ConfigurationError",
    "ProvisioningFailure",
    "StepExecutionError",
    "ErrorKind",
    "Scenario",
    "Requirements",
    "load_scenario",
    "CommandExecutor",
    "ExecutionResult",
    "Invocation",
    "get_backend",
    "StepDispatcher",
    "RequirementProvisioner",
    "ScenarioRunner",
    "RunState",
    "ProcessOutcome",
]
