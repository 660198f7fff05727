"""Chaos scene schema and loading."""

from .schema import (
    Requirements,
    LocalStep,
    ControlPlaneStep,
    WorkerStep,
    TransferStep,
    Step,
    Scenario,
    parse_scenario,
    find_scene_file,
    load_scenario,
    summarize_scenario,
    SCENARIO_SCHEMA,
)

__all__ = [
    "Requirements",
    "LocalStep",
    "ControlPlaneStep",
    "WorkerStep",
    "TransferStep",
    "Step",
    "Scenario",
    "parse_scenario",
    "find_scene_file",
    "load_scenario",
    "summarize_scenario",
    "SCENARIO_SCHEMA",
]
